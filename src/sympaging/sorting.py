"""
Multi-key ordering of report rows.
"""

import locale
from collections.abc import Iterable

from .models import ReportRow

SORT_FIELDS = (
    "barcode",
    "title",
    "author",
    "call_number",
    "volume",
    "current_location",
    "location_description",
    "bib_control_number",
    "hold_type",
)

# Field names used by older config files
SORT_FIELD_ALIASES = {
    "callNumber": "call_number",
    "currentLocation": "current_location",
    "locationDesc": "location_description",
    "holdType": "hold_type",
    "bib": "bib_control_number",
}


def resolve_sort_fields(key_order: Iterable[str]) -> list[str]:
    """
    Map configured sort keys to ReportRow attribute names.

    Raises:
        ValueError: For a name that is not a row field
    """
    fields = []
    for name in key_order:
        resolved = SORT_FIELD_ALIASES.get(name, name)
        if resolved not in SORT_FIELDS:
            raise ValueError(f"Unknown sort field {name!r}; expected one of {SORT_FIELDS}")
        fields.append(resolved)
    return fields


def sort_rows(rows: Iterable[ReportRow], key_order: Iterable[str]) -> list[ReportRow]:
    """
    Sort rows by the given fields, first field most significant.

    Strings compare with the current locale's collation. The sort is stable,
    so rows equal on every key keep their input order.
    """
    fields = resolve_sort_fields(key_order)

    def sort_key(row: ReportRow) -> tuple[str, ...]:
        return tuple(locale.strxfrm(getattr(row, f)) for f in fields)

    return sorted(rows, key=sort_key)
