"""Spreadsheet row extraction."""

from __future__ import annotations

import logging
import math
import os
from io import BytesIO
from typing import Any

import pandas as pd

from ..errors import EmptyInputError, InputValidationError
from ..models import RowRecord, make_row

logger = logging.getLogger("certbatch.pipeline")


def _read_frame(data: bytes, filename: str | None) -> pd.DataFrame:
    ext = os.path.splitext(filename or "")[1].lower()
    buffer = BytesIO(data)
    # Only empty cells are missing; literal "NA" or "None" is a real name.
    na_options = {"keep_default_na": False, "na_values": [""]}
    if ext == ".csv":
        return pd.read_csv(buffer, dtype=object, skip_blank_lines=True, **na_options)
    # First sheet only.
    return pd.read_excel(buffer, sheet_name=0, dtype=object, **na_options)


def _coerce_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if pd.isna(value):
        return None
    return value


def cell_text(value: Any) -> str:
    """Return the trimmed text of a cell; blank cells become ``""``."""

    value = _coerce_cell(value)
    if value is None:
        return ""
    return str(value).strip()


def extract_rows(data: bytes, filename: str | None = None) -> list[RowRecord]:
    """Parse an uploaded spreadsheet into ordered, read-only row records.

    Column names are kept exactly as written in the header row; callers match
    them case-sensitively. Fully blank rows are dropped.
    """

    if not data:
        raise InputValidationError("Spreadsheet file is empty.")
    try:
        frame = _read_frame(data, filename)
    except pd.errors.EmptyDataError as exc:
        raise EmptyInputError("Excel file is empty or incorrectly formatted.") from exc
    except Exception as exc:
        logger.warning("[BATCH] unreadable spreadsheet filename=%s error=%s", filename, exc)
        raise InputValidationError(
            "Excel file is empty or incorrectly formatted."
        ) from exc

    frame = frame.dropna(how="all")
    columns = [str(column) for column in frame.columns]
    rows = [
        make_row({column: _coerce_cell(value) for column, value in zip(columns, values)})
        for values in frame.itertuples(index=False, name=None)
    ]
    if not rows:
        raise EmptyInputError("Excel file is empty or incorrectly formatted.")
    logger.info("[BATCH] extracted rows=%s columns=%s", len(rows), columns)
    return rows
