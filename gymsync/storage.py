import json
import os
from dataclasses import asdict
from typing import Any, Dict, List, Optional
import numpy as np
import pandas as pd
from loguru import logger

from gymsync.models import BaselineRecord, MergeResult


def _clean(value: Any) -> Any:
    """Convert pandas/numpy cell values to plain Python, NaN to None."""
    if isinstance(value, (list, dict)):
        return value
    if isinstance(value, np.ndarray):
        return value.tolist()
    if pd.isna(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def load_baseline(file_path: str, nrows: Optional[int] = None) -> List[BaselineRecord]:
    """
    Load baseline gym records from a JSON array or a CSV file.

    Args:
        file_path (str): Path ending in .json or .csv.
        nrows (Optional[int]): Only load the first rows.

    Returns:
        List[BaselineRecord]: One record per row; keys may be camelCase or snake_case.
    """
    if file_path.lower().endswith(".csv"):
        # Keep phone numbers and management numbers as text
        df = pd.read_csv(file_path, nrows=nrows, dtype=str)
    else:
        df = pd.read_json(file_path, orient="records", dtype=False, convert_dates=False)
        if nrows is not None:
            df = df.head(nrows)

    records = []
    for _, row in df.iterrows():
        data = {str(col): _clean(row[col]) for col in row.index}
        records.append(BaselineRecord.from_dict(data))
    logger.info(f"📂 Loaded {len(records)} baseline records from {file_path}")
    return records


def _write_json(path: str, payload: Any) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, default=str)


def save_merge_result(
    result: MergeResult,
    output_path: str,
    conflicts_path: Optional[str] = None,
    csv_path: Optional[str] = None,
) -> None:
    """Write merged records (and optionally the conflict log and a CSV export)."""
    records: List[Dict[str, Any]] = [record.to_dict() for record in result.merged_data]
    _write_json(output_path, records)
    logger.info(f"💾 Saved {len(records)} merged records to {output_path}")

    if conflicts_path:
        _write_json(conflicts_path, [asdict(conflict) for conflict in result.conflicts])
        logger.info(f"💾 Saved {len(result.conflicts)} conflicts to {conflicts_path}")

    if csv_path:
        df = pd.DataFrame(records)
        for column in ("facilities", "services"):
            if column in df.columns:
                df[column] = df[column].apply(lambda items: ", ".join(items or []))
        df.to_csv(csv_path, index=False)
        logger.info(f"💾 Exported CSV to {csv_path}")
