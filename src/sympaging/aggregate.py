"""
Flattening resolved holds into report rows.
"""

from collections.abc import Iterable

from .models import EXPIRED, ReportRow, ResolvedHold


def to_row(hold: ResolvedHold) -> ReportRow:
    """Copy a resolved hold into the flat row shape. Missing values become ''."""
    return ReportRow(
        hold_type=hold.hold_type or "",
        barcode=hold.barcode or "",
        title=hold.title or "",
        author=hold.author or "",
        call_number=hold.call_number or "",
        volume=hold.volume or "",
        current_location=hold.current_location or "",
        location_description=hold.location_description or "",
        bib_control_number=hold.bib_control_number or "",
    )


def aggregate(resolved: Iterable[ResolvedHold]) -> list[ReportRow]:
    """Build report rows from resolved holds, leaving out expired holds."""
    return [to_row(hold) for hold in resolved if hold.status != EXPIRED]
