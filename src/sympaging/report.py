"""
Paging report output.

For every branch and hold type two artifacts are written:

- a CSV file, {csv_dir}/{branch}_{Title|Items}.csv
- an HTML page, {html_dir}/{branch}/latest_{title|item}.html, made by running
  an XML paging list through the hold type's XSL stylesheet

A hold type with no rows gets a symlink to the shared
{html_dir}/no_{title|item}_list.html page instead of a generated page.
"""

import csv
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from lxml import etree

from .config import OutputConfig
from .errors import ReportError
from .models import Branch, HoldType, ReportRow

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["BARCODE", "TITLE", "AUTHOR", "CALL #", "VOLUME", "LOCATION"]

# Characters XML 1.0 cannot carry
XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


@dataclass(frozen=True)
class HoldTypeReport:
    """File naming for one hold type's report."""

    hold_type: HoldType
    csv_suffix: str
    html_suffix: str
    xsl_option: str  # OutputConfig attribute holding the stylesheet path


# COPY holds are listed on the title report, TITLE holds on the item report.
HOLD_TYPE_REPORTS = (
    HoldTypeReport(HoldType.COPY, csv_suffix="Title", html_suffix="title", xsl_option="xsl_title"),
    HoldTypeReport(HoldType.TITLE, csv_suffix="Items", html_suffix="item", xsl_option="xsl_item"),
)


REPORTED_HOLD_TYPES = frozenset(r.hold_type.value for r in HOLD_TYPE_REPORTS)


def reportable_rows(rows: Iterable[ReportRow]) -> list[ReportRow]:
    """Rows whose hold type has a report. The rest are logged and left out."""
    kept = []
    for row in rows:
        if row.hold_type in REPORTED_HOLD_TYPES:
            kept.append(row)
        else:
            logger.warning(
                f"Hold type {row.hold_type!r} has no report; skipping item {row.barcode}"
            )
    return kept


def partition_rows(rows: Iterable[ReportRow]) -> dict[HoldType, list[ReportRow]]:
    """Split rows by hold type, keeping their order within each partition."""
    partitions: dict[HoldType, list[ReportRow]] = {r.hold_type: [] for r in HOLD_TYPE_REPORTS}
    for row in rows:
        try:
            partitions[HoldType(row.hold_type)].append(row)
        except ValueError:
            logger.warning(
                f"Hold type {row.hold_type!r} has no report; skipping item {row.barcode}"
            )
    return partitions


def paging_timestamp(utc_offset_hours: float, now: datetime | None = None) -> str:
    """ISO 8601 timestamp with milliseconds at a fixed UTC offset."""
    tz = timezone(timedelta(hours=utc_offset_hours))
    moment = now.astimezone(tz) if now else datetime.now(tz)
    return moment.isoformat(timespec="milliseconds")


def xml_text(value: str) -> str:
    """Drop characters that cannot appear in an XML document."""
    return XML_ILLEGAL_CHARS.sub("", value)


def build_paging_document(
    location: str,
    rows: list[ReportRow],
    timestamp: str,
) -> etree._ElementTree:
    """Build the XML paging list fed to the XSL stylesheets."""
    root = etree.Element(
        "paging_list",
        count=str(len(rows)),
        location=xml_text(location),
        timestamp=timestamp,
    )
    for row in rows:
        record = etree.SubElement(root, "record")
        for tag, value in (
            ("location", row.current_location),
            ("loc_desc", row.location_description),
            ("title", row.title),
            ("call_number", row.call_number),
            ("barcode", row.barcode),
            ("author", row.author),
        ):
            etree.SubElement(record, tag).text = xml_text(value)
    return etree.ElementTree(root)


class ReportEmitter:
    """Writes the CSV and HTML paging reports for a branch."""

    def __init__(self, config: OutputConfig):
        self.config = config
        self._stylesheets: dict[Path, etree.XSLT] = {}

    def emit(
        self,
        branch: Branch,
        rows: list[ReportRow],
        now: datetime | None = None,
    ) -> list[Path]:
        """
        Write every report for a branch. Returns the paths written.

        Raises:
            ReportError: If a file cannot be written or a stylesheet fails
        """
        partitions = partition_rows(rows)
        timestamp = paging_timestamp(self.config.utc_offset_hours, now)

        written = []
        for report in HOLD_TYPE_REPORTS:
            report_rows = partitions[report.hold_type]
            try:
                written.append(self.write_csv(branch, report, report_rows))
                written.append(self.write_html(branch, report, report_rows, timestamp))
            except (OSError, ValueError, etree.Error) as e:
                raise ReportError(
                    f"writing {report.html_suffix} report failed: {e}", branch=branch.key
                ) from e
            logger.info(
                f"{branch.key} {report.html_suffix} list: {len(report_rows)} row(s)"
            )
        return written

    def csv_path(self, branch: Branch, report: HoldTypeReport) -> Path:
        return self.config.csv_dir / f"{branch.display_name}_{report.csv_suffix}.csv"

    def html_path(self, branch: Branch, report: HoldTypeReport) -> Path:
        return self.config.html_dir / branch.display_name / f"latest_{report.html_suffix}.html"

    def placeholder_path(self, report: HoldTypeReport) -> Path:
        return self.config.html_dir / f"no_{report.html_suffix}_list.html"

    def write_csv(self, branch: Branch, report: HoldTypeReport, rows: list[ReportRow]) -> Path:
        """Write the CSV report. An empty partition gets just the header."""
        path = self.csv_path(branch, report)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for row in rows:
                writer.writerow(row.to_csv_dict())
        return path

    def write_html(
        self,
        branch: Branch,
        report: HoldTypeReport,
        rows: list[ReportRow],
        timestamp: str,
    ) -> Path:
        """Render the HTML page, or link the placeholder when there are no rows."""
        path = self.html_path(branch, report)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.unlink(missing_ok=True)

        if not rows:
            path.symlink_to(self.placeholder_path(report).absolute())
            return path

        document = build_paging_document(branch.display_name, rows, timestamp)
        result = self._stylesheet(branch, report)(document)
        result.write_output(str(path))
        return path

    def _stylesheet(self, branch: Branch, report: HoldTypeReport) -> etree.XSLT:
        xsl_path = getattr(self.config, report.xsl_option)
        if xsl_path is None:
            raise ReportError(
                f"output.{report.xsl_option} is not configured", branch=branch.key
            )
        if xsl_path not in self._stylesheets:
            self._stylesheets[xsl_path] = etree.XSLT(etree.parse(str(xsl_path)))
        return self._stylesheets[xsl_path]
