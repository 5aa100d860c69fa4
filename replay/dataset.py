"""
Dataset I/O

Reads uploaded telemetry spreadsheets into RawRows and writes annotated
datasets back out. Excel workbooks go through openpyxl; CSV through pandas.
"""

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import DatasetFormatError, EmptyDatasetError
from .models import DERIVED_FIELDS, RAW_FIELDS, AnnotatedRow, RawRow

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv"}
EXPORT_FORMATS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


def read_dataset(data: bytes, filename: str) -> pd.DataFrame:
    """
    Parse an uploaded spreadsheet.

    Only the first worksheet of a workbook is read.

    Raises:
        DatasetFormatError: Unsupported extension or unreadable content
        EmptyDatasetError: The sheet has no data rows
    """
    suffix = Path(filename).suffix.lower()
    buffer = io.BytesIO(data)
    try:
        if suffix in EXCEL_SUFFIXES:
            df = pd.read_excel(buffer, sheet_name=0)
        elif suffix in CSV_SUFFIXES:
            df = pd.read_csv(buffer)
        else:
            raise DatasetFormatError(f"Unsupported file type '{suffix or filename}'")
    except DatasetFormatError:
        raise
    except pd.errors.EmptyDataError as e:
        raise EmptyDatasetError(f"{filename} contains no rows") from e
    except Exception as e:
        raise DatasetFormatError(f"Could not read {filename}: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    if df.empty:
        raise EmptyDatasetError(f"{filename} contains no rows")

    missing = [name for name in RAW_FIELDS if name not in df.columns]
    if missing:
        logger.warning("Dataset %s is missing columns: %s", filename, ", ".join(missing))

    logger.info("Read %d rows from %s", len(df), filename)
    return df


def _to_python(value: Any) -> Any:
    """Convert pandas/numpy cell values to plain Python (NaN -> None)."""
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, np.generic):
        return value.item()
    return value


def rows_from_frame(df: pd.DataFrame) -> List[RawRow]:
    """Normalize a telemetry DataFrame into RawRows, one per sheet row."""
    records = df.astype(object).to_dict(orient="records")
    return [
        RawRow.from_record({str(k): _to_python(v) for k, v in record.items()})
        for record in records
    ]


def annotated_frame(
    rows: Sequence[RawRow], history: Sequence[AnnotatedRow]
) -> pd.DataFrame:
    """
    Build the export table: every input row, annotated where it was advanced.

    Rows past the replay cursor keep empty derived cells.
    """
    by_index = {row.row_index: row for row in history}
    records: List[Dict[str, Any]] = []
    for index, raw in enumerate(rows):
        annotated: Optional[AnnotatedRow] = by_index.get(index)
        if annotated is not None:
            records.append(annotated.to_record())
        else:
            record = raw.to_record()
            record.update({name: None for name in DERIVED_FIELDS})
            records.append(record)

    extras: List[str] = []
    for raw in rows:
        for name in raw.extras:
            if name not in extras:
                extras.append(name)

    columns = list(RAW_FIELDS) + extras + list(DERIVED_FIELDS)
    return pd.DataFrame.from_records(records, columns=columns)


def write_dataset(df: pd.DataFrame, fmt: str = "xlsx") -> bytes:
    """Serialize an annotated dataset for download."""
    if fmt not in EXPORT_FORMATS:
        raise DatasetFormatError(f"Unsupported export format '{fmt}'")

    buffer = io.BytesIO()
    if fmt == "csv":
        df.to_csv(buffer, index=False)
    else:
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Sheet1")
    return buffer.getvalue()
