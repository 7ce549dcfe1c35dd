"""
sources.py – Inventory record sources: header mapping and a CSV-file backed
source with per-record write-back.
"""

import csv
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

import yaml

from .models import InventoryRecord

logger = logging.getLogger(__name__)

# Path to the built-in header map shipped with the package.
_DEFAULT_HEADERS_FILE = Path(__file__).parent / "default_headers.yaml"


class RecordSource(Protocol):
    """The tabular store the inventory is read from and written back to."""

    def read_records(self) -> list[InventoryRecord]:
        ...

    def write_fields(self, record: InventoryRecord, values: dict[str, Any]) -> None:
        ...


# ---------------------------------------------------------------------------
# Header map loading
# ---------------------------------------------------------------------------

def load_header_map(path: Optional[str] = None) -> dict[str, str]:
    """Load a sheet header → record field map from a YAML file.

    Keys are header texts (matched case-insensitively, surrounding whitespace
    ignored); values are the internal field keys. If *path* is None the
    built-in ``default_headers.yaml`` is used.

    Example YAML entries::

        ordencompra: ordencompra
        numerosiniestros: nosiniestros

    Raises ``SystemExit`` with a descriptive message when the file cannot be
    read or contains an invalid entry.
    """
    file_path = Path(path) if path else _DEFAULT_HEADERS_FILE
    try:
        with open(file_path) as fh:
            raw = yaml.safe_load(fh) or {}
    except FileNotFoundError:
        logger.error("Header map file not found: %s", file_path)
        raise SystemExit(f"ERROR: header map file not found: {file_path}")
    except yaml.YAMLError as exc:
        logger.error("Failed to parse header map %s: %s", file_path, exc)
        raise SystemExit(f"ERROR: failed to parse YAML in {file_path}: {exc}")

    if not isinstance(raw, dict):
        raise SystemExit(f"ERROR: header map {file_path} must be a mapping")

    result: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str) or not value:
            raise SystemExit(
                f"ERROR: invalid entry in {file_path}: header '{key}' must map to "
                f"a field name, got {type(value).__name__!r}"
            )
        result[str(key).strip().lower()] = value
    return result


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# CSV source
# ---------------------------------------------------------------------------

class CsvRecordSource:
    """
    Reads inventory rows from a CSV file (first line = headers) and writes
    changed cells back to the same file after every update.
    """

    def __init__(self, path: str, header_map: Optional[dict[str, str]] = None) -> None:
        self.path = Path(path)
        self.header_map = header_map if header_map is not None else load_header_map()
        self._headers: list[str] = []
        self._rows: list[list[str]] = []
        self._columns: dict[str, int] = {}

    def read_records(self) -> list[InventoryRecord]:
        with open(self.path, newline="", encoding="utf-8") as fh:
            reader = csv.reader(fh)
            self._headers = next(reader, [])
            self._rows = [row for row in reader]

        self._columns = {}
        for index, header in enumerate(self._headers):
            key = self.header_map.get(header.strip().lower())
            if key and key not in self._columns:
                self._columns[key] = index

        records = []
        for offset, row in enumerate(self._rows):
            fields = {key: row[index] if index < len(row) else "" for key, index in self._columns.items()}
            records.append(InventoryRecord(row_number=offset + 2, fields=fields))
        logger.info("Loaded %d inventory rows from %s", len(records), self.path)
        return records

    def write_fields(self, record: InventoryRecord, values: dict[str, Any]) -> None:
        row = self._rows[record.row_number - 2]
        for key, value in values.items():
            column = self._column_for(key)
            if len(row) <= column:
                row.extend([""] * (column + 1 - len(row)))
            row[column] = _cell(value)
            record.fields[key] = value
        self._save()

    def _column_for(self, key: str) -> int:
        if key not in self._columns:
            logger.warning("Column for '%s' missing in %s; appending it", key, self.path)
            self._headers.append(key)
            self._columns[key] = len(self._headers) - 1
        return self._columns[key]

    def _save(self) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".csv.tmp")
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
                writer = csv.writer(fh)
                writer.writerow(self._headers)
                writer.writerows(self._rows)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
