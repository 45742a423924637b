# csv_normalizer.py
"""
Marketplace export CSV -> Transaction objects.

Responsibilities:
- Read CSV bytes (or a file path) safely.
- Skip the header row; columns are positional:
    1  timestamp  "YYYY-MM-DD HH:MM:SS.fff" (UTC)
    2  event
    3  project id
    14 props JSON  {"currencySymbol", "chainId", "collectionAddress", "currencyAddress"}
    15 nums JSON   {"currencyValueDecimal"}
- Return (valid_rows, errors); a bad row is reported, not fatal.

This module is "pure" (no DB calls).
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from io import BytesIO, TextIOWrapper
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from pydantic import ValidationError

from .schemas import Transaction

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

COL_TIMESTAMP = 1
COL_EVENT = 2
COL_PROJECT_ID = 3
COL_PROPS = 14
COL_NUMS = 15
MIN_COLUMNS = COL_NUMS + 1


def parse_record(record: Sequence[str]) -> Transaction:
    """
    Map one CSV row to a Transaction.

    Raises ValueError (bad timestamp, bad JSON, short row) or
    pydantic.ValidationError.
    """
    if len(record) < MIN_COLUMNS:
        raise ValueError(f"expected at least {MIN_COLUMNS} columns, got {len(record)}")

    timestamp = datetime.strptime(record[COL_TIMESTAMP].strip(), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    props = _parse_json_object(record[COL_PROPS], "props")
    nums = _parse_json_object(record[COL_NUMS], "nums")

    return Transaction(
        timestamp=timestamp,
        event=record[COL_EVENT].strip(),
        project_id=record[COL_PROJECT_ID].strip(),
        currency_symbol=str(props.get("currencySymbol") or ""),
        chain_id=str(props.get("chainId") or ""),
        currency_value_decimal=str(nums.get("currencyValueDecimal") or ""),
        collection_address=props.get("collectionAddress") or None,
        currency_address=props.get("currencyAddress") or None,
    )


def _parse_json_object(raw: str, column: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid {column} JSON: {e.msg}") from e
    if not isinstance(value, dict):
        raise ValueError(f"invalid {column} JSON: expected an object")
    return value


def parse_csv(file_bytes: bytes, encoding: str = "utf-8") -> Tuple[List[Transaction], List[Dict[str, Any]]]:
    """
    Parse CSV bytes into Transaction objects.
    Returns:
      valid_rows: list[Transaction]
      errors: list of {row_number, error, raw_row}
    """
    valid: List[Transaction] = []
    errors: List[Dict[str, Any]] = []

    text_stream = TextIOWrapper(BytesIO(file_bytes), encoding=encoding, newline="")
    reader = csv.reader(text_stream)

    header = next(reader, None)
    if header is None:
        errors.append({"row_number": 0, "error": "CSV has no header", "raw_row": None})
        return valid, errors

    for i, row in enumerate(reader, start=2):  # start=2 because row 1 is the header
        if not any(cell.strip() for cell in row):
            continue
        try:
            valid.append(parse_record(row))
        except ValidationError as ve:
            errors.append({"row_number": i, "error": ve.errors(), "raw_row": row})
        except ValueError as e:
            errors.append({"row_number": i, "error": str(e), "raw_row": row})

    return valid, errors


def parse_csv_file(path: Union[str, Path]) -> Tuple[List[Transaction], List[Dict[str, Any]]]:
    return parse_csv(Path(path).read_bytes())
