"""CSV reader: pandas chunksize streaming.

Rules
-----
- Never call pd.read_csv() on the full file; always use the chunksize
  iterator so large directory exports are processed without loading them
  entirely into memory.
- Every column is read as ``str`` with ``keep_default_na=False`` so an
  empty cell stays ``""`` and aliases such as ``NA`` or ``null`` are not
  turned into NaN.
- A leading ``#TYPE ...`` line (Windows PowerShell ``Export-Csv`` without
  ``-NoTypeInformation``) is skipped.
- Header names are stripped of surrounding whitespace and a UTF-8 BOM, as
  written by ``Export-Csv`` on Windows PowerShell.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

CHUNK_SIZE: int = 1_000  # rows per pandas iterator chunk


def _clean_header(name: object) -> str:
    return str(name).lstrip("\ufeff").strip()


def _type_line_rows(path: Path) -> int:
    """Return 1 if the file starts with an ``Export-Csv`` ``#TYPE`` line, else 0."""
    with path.open(encoding="utf-8-sig") as fh:
        first = fh.readline()
    return 1 if first.startswith("#TYPE") else 0


def read_rows(
    path: str | Path,
    required_columns: Sequence[str] = (),
) -> Iterator[dict[str, str]]:
    """Yield one ``{column: value}`` dict per data row of the CSV at *path*.

    Raises
    ------
    FileNotFoundError
        *path* does not exist.
    ValueError
        One or more of *required_columns* is missing from the header.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"CSV file not found: {path}")

    skip = _type_line_rows(path)
    header_checked = False
    row_count = 0
    for chunk in pd.read_csv(
        str(path),
        skiprows=skip,
        chunksize=CHUNK_SIZE,
        dtype=str,
        keep_default_na=False,
        encoding="utf-8-sig",
    ):
        chunk = chunk.rename(columns=_clean_header)

        if not header_checked:
            missing = [c for c in required_columns if c not in chunk.columns]
            if missing:
                raise ValueError(
                    f"{path.name} is missing required column(s): {', '.join(missing)}"
                )
            header_checked = True

        for record in chunk.to_dict(orient="records"):
            row_count += 1
            yield {key: str(value).strip() for key, value in record.items()}

    if not header_checked and required_columns:
        # Header-only file: pandas yields no chunks, so validate separately
        header = pd.read_csv(
            str(path), nrows=0, skiprows=skip, encoding="utf-8-sig"
        ).rename(columns=_clean_header)
        missing = [c for c in required_columns if c not in header.columns]
        if missing:
            raise ValueError(
                f"{path.name} is missing required column(s): {', '.join(missing)}"
            )

    logger.info("Read %d row(s) from %s", row_count, path.name)
