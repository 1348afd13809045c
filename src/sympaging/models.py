"""
Data models for the hold enrichment pipeline.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

EXPIRED = "EXPIRED"


class HoldType(str, Enum):
    """Symphony hold type.

    COPY holds go to the title-level report and TITLE holds to the
    item-level report. Downstream display tooling relies on these file names.
    """

    COPY = "COPY"
    TITLE = "TITLE"


@dataclass(frozen=True)
class Branch:
    """A library branch: ILSWS key plus display name used for output paths."""

    key: str
    display_name: str


@dataclass(frozen=True)
class Session:
    """An ILSWS session token."""

    token: str
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class HoldListEntry:
    """A pull list entry, normalized from either the thin or thick shape."""

    hold_key: str
    item_key: str
    hold_record: dict[str, Any] | None = None  # Embedded field bag, thick shape
    item: dict[str, Any] | None = None


@dataclass
class HoldChain:
    """Field bags resolved for one hold, one per record in its dependency chain."""

    hold_record: dict[str, Any]
    item: dict[str, Any]
    call: dict[str, Any]
    bib: dict[str, Any]
    patron: dict[str, Any] | None = None  # Only gates inclusion; no report field reads it


@dataclass(frozen=True)
class ResolvedHold:
    """A hold whose dependent records were all resolved."""

    hold_type: str
    status: str
    current_location: str
    location_description: str
    barcode: str
    title: str
    author: str
    call_number: str
    volume: str | None
    bib_control_number: str

    @classmethod
    def from_chain(cls, chain: HoldChain) -> "ResolvedHold":
        """Build from a resolved dependency chain."""
        location = chain.item.get("currentLocation") or {}
        return cls(
            hold_type=chain.hold_record.get("holdType", ""),
            status=chain.hold_record.get("status", ""),
            current_location=location.get("key", ""),
            location_description=(location.get("fields") or {}).get("description", ""),
            barcode=chain.item.get("barcode", ""),
            title=chain.bib.get("title", ""),
            author=chain.bib.get("author", ""),
            call_number=chain.call.get("callNumber", ""),
            volume=chain.call.get("volumetric"),
            bib_control_number=chain.bib.get("titleControlNumber", ""),
        )


@dataclass
class HoldOutcome:
    """Tagged result of resolving one hold: either `resolved` or `error` is set."""

    entry: HoldListEntry
    resolved: ResolvedHold | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.resolved is not None


@dataclass(frozen=True)
class ReportRow:
    """A flat report row. Every field is a string."""

    hold_type: str
    barcode: str
    title: str
    author: str
    call_number: str
    volume: str
    current_location: str
    location_description: str
    bib_control_number: str

    def to_csv_dict(self) -> dict[str, str]:
        return {
            "BARCODE": self.barcode,
            "TITLE": self.title,
            "AUTHOR": self.author,
            "CALL #": self.call_number,
            "VOLUME": self.volume,
            "LOCATION": self.current_location,
        }


@dataclass
class BranchStats:
    """Counters for a single branch run."""

    branch: str
    requests: int = 0
    errors: int = 0
    rows: int = 0
    elapsed_ms: int = 0
    failed: bool = False
    error: str | None = None


@dataclass
class RunStats:
    """Counters accumulated over all branches of a run."""

    branches: list[BranchStats] = field(default_factory=list)

    def add(self, stats: BranchStats) -> None:
        self.branches.append(stats)

    @property
    def requests(self) -> int:
        return sum(b.requests for b in self.branches)

    @property
    def errors(self) -> int:
        return sum(b.errors for b in self.branches)

    @property
    def rows(self) -> int:
        return sum(b.rows for b in self.branches)

    @property
    def failed_branches(self) -> list[str]:
        return [b.branch for b in self.branches if b.failed]
