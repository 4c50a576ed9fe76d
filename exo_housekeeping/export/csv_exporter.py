"""CSV report writer for the housekeeping drivers.

Each driver produces a flat list of row dicts and a column list; this module
turns them into a UTF-8 CSV file named ``<report>_<UTC timestamp>.csv`` in
the report directory.

Pure logic is separated from file I/O so it can be unit-tested without
touching disk.
"""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def format_value(value: Any) -> str:
    """Convert a row value to its CSV cell text.

    Booleans render as ``Yes``/``No`` (the flag style of the Exchange admin
    reports), lists as ``;``-joined strings, ``None`` as an empty cell.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ";".join(format_value(item) for item in value)
    return str(value)


def build_csv_content(
    rows: Iterable[Mapping[str, Any]],
    fields: Sequence[str],
) -> str:
    """Build CSV content as a string.  Pure function, no IO.

    Returns a string containing the header plus one line per row; keys of a
    row not listed in *fields* are ignored, missing keys become empty cells.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(fields)
    for row in rows:
        writer.writerow([format_value(row.get(f)) for f in fields])
    return buf.getvalue()


def report_file_name(report: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    return f"{report}_{stamp}.csv"


# ---------------------------------------------------------------------------
# File output
# ---------------------------------------------------------------------------


def write_report(
    rows: Sequence[Mapping[str, Any]],
    fields: Sequence[str],
    output_dir: Path,
    report: str,
    *,
    now: datetime | None = None,
) -> Path:
    """Write *rows* to ``output_dir/<report>_<timestamp>.csv`` and return the path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / report_file_name(report, now)
    file_path.write_text(build_csv_content(rows, fields), encoding="utf-8")
    logger.info("Wrote %d row(s) to %s", len(rows), file_path)
    return file_path
