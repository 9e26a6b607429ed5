"""Case archive import and record normalization.

Technicians keep their repair history in whatever spreadsheet or JSON layout
they happen to use, often with Chinese column headers. This module reads such
a file and maps every row onto the canonical ``CaseRecord`` schema by looking
up each target field under a prioritized list of accepted column names.

Rows without a usable fault description are skipped; they are not errors.
File-level problems (wrong extension, unparseable content, not a list of rows)
raise ``ImportFormatError`` before any normalization takes place.
"""

import io
import json
import logging
import uuid
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import ImportFormatError, NoValidRecordsError
from .models import CaseRecord

logger = logging.getLogger("repair-assistant.normalizer")

UNKNOWN_DEVICE = "unknown"
DEFAULT_CATEGORY = "repair archive"

FAULT_ALIASES = (
    "description",
    "fault",
    "issue",
    "symptom",
    "problem",
    "描述",
    "故障",
    "现象",
)
DEVICE_ALIASES = ("name", "device", "model", "title", "设备", "型号")
CATEGORY_ALIASES = ("category", "type", "类别", "分类")
SOLUTION_ALIASES = ("analysis", "solution", "resolution", "fix", "方案", "处理")

JSON_EXTENSIONS = (".json",)
SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm")


def coerce_value(value: Any) -> Optional[str]:
    """Convert a cell value to a trimmed string, or None when it is empty."""
    if value is None:
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    text = text.strip()
    return text or None


class RecordNormalizer:
    """Maps loosely typed rows onto ``CaseRecord``.

    Each target field is resolved by walking its alias list in priority order
    and taking the first alias that matches one of the row's keys, ignoring
    case. Only that one key is consulted: an empty value there leaves the field
    unresolved rather than falling through to a lower-priority alias.

    Attributes:
        fault_aliases: Accepted keys for the mandatory fault description.
        device_aliases: Accepted keys for the device name.
        category_aliases: Accepted keys for the category.
        solution_aliases: Accepted keys for the recorded solution.
        default_device: Device name used when none resolves.
        default_category: Category used when none resolves.
    """

    def __init__(
        self,
        fault_aliases: Sequence[str] = FAULT_ALIASES,
        device_aliases: Sequence[str] = DEVICE_ALIASES,
        category_aliases: Sequence[str] = CATEGORY_ALIASES,
        solution_aliases: Sequence[str] = SOLUTION_ALIASES,
        default_device: str = UNKNOWN_DEVICE,
        default_category: str = DEFAULT_CATEGORY,
    ):
        self.fault_aliases = tuple(fault_aliases)
        self.device_aliases = tuple(device_aliases)
        self.category_aliases = tuple(category_aliases)
        self.solution_aliases = tuple(solution_aliases)
        self.default_device = default_device
        self.default_category = default_category

    def normalize(self, rows: Any) -> List[CaseRecord]:
        """Normalize a batch of rows into case records.

        Args:
            rows: List of mappings, as decoded from JSON or read from a sheet.

        Returns:
            List[CaseRecord]: One record per row that has a fault description,
                in input order.

        Raises:
            ImportFormatError: If ``rows`` is not a list.
        """
        if not isinstance(rows, list):
            raise ImportFormatError(
                f"Expected a list of case rows, got {type(rows).__name__}"
            )

        batch_id = uuid.uuid4().hex[:8]
        records = []
        for index, row in enumerate(rows):
            record = self.normalize_row(row, f"case-{batch_id}-{index}")
            if record is None:
                logger.debug(f"Skipping row {index}: no fault description")
                continue
            records.append(record)

        logger.info(f"Normalized {len(records)} of {len(rows)} rows")
        return records

    def normalize_row(self, row: Any, record_id: str) -> Optional[CaseRecord]:
        """Normalize one row, or return None if it cannot become a record.

        Note:
            Spreadsheet rows reach this point with their empty cells already
            removed, so there an empty higher-priority column lets a lower
            alias resolve. A JSON row keeps the empty key and, since only the
            first matching alias is consulted, the field stays unresolved:
            ``{"description": "", "故障": "x"}`` is skipped from JSON but kept
            from XLSX.
        """
        if not isinstance(row, Mapping):
            return None

        fault = self._resolve(row, self.fault_aliases)
        if fault is None:
            return None

        return CaseRecord(
            id=record_id,
            device_name=self._resolve(row, self.device_aliases) or self.default_device,
            category=self._resolve(row, self.category_aliases) or self.default_category,
            fault_description=fault,
            solution_text=self._resolve(row, self.solution_aliases),
        )

    @staticmethod
    def _resolve(row: Mapping, aliases: Sequence[str]) -> Optional[str]:
        keys_by_lower: Dict[str, Any] = {}
        for key in row.keys():
            keys_by_lower.setdefault(str(key).strip().lower(), key)

        for alias in aliases:
            key = keys_by_lower.get(alias.lower())
            if key is not None:
                return coerce_value(row[key])
        return None


def parse_case_file(filename: str, content: bytes) -> List[Dict[str, Any]]:
    """Parse an uploaded archive file into raw rows.

    Args:
        filename: Original file name; its extension selects the parser.
        content: Raw file bytes.

    Returns:
        List[Dict[str, Any]]: Rows keyed by column name.

    Raises:
        ImportFormatError: If the extension is unsupported or the content
            cannot be parsed into a list of rows.
    """
    suffix = Path(filename).suffix.lower()
    if suffix in JSON_EXTENSIONS:
        return _parse_json(content)
    if suffix in SPREADSHEET_EXTENSIONS:
        return _parse_spreadsheet(content)
    if suffix == ".xls":
        raise ImportFormatError(
            "Legacy .xls workbooks are not supported, save the file as .xlsx"
        )
    raise ImportFormatError(
        f"Unsupported file type '{suffix or filename}', use JSON or Excel (.xlsx)"
    )


def _parse_json(content: bytes) -> List[Dict[str, Any]]:
    try:
        data = json.loads(content.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ImportFormatError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFormatError("JSON archive must be an array of case objects")
    return data


def _parse_spreadsheet(content: bytes) -> List[Dict[str, Any]]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ImportFormatError(f"Could not read Excel workbook: {e}") from e

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []

        columns = [coerce_value(cell) for cell in header]
        records = []
        for values in rows:
            row = {
                column: value
                for column, value in zip(columns, values)
                if column is not None and value is not None and value != ""
            }
            if row:
                records.append(row)
        return records
    finally:
        workbook.close()


def load_case_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read an archive file from disk and parse it into raw rows."""
    path = Path(path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ImportFormatError(f"Cannot read {path}: {e}") from e
    return parse_case_file(path.name, content)


def import_cases(
    filename: str, content: bytes, normalizer: Optional[RecordNormalizer] = None
) -> List[CaseRecord]:
    """Parse and normalize uploaded archive content.

    Raises:
        ImportFormatError: If the content cannot be parsed.
        NoValidRecordsError: If no row has a fault description.
    """
    return _normalize_batch(parse_case_file(filename, content), filename, normalizer)


def import_case_file(
    path: Union[str, Path], normalizer: Optional[RecordNormalizer] = None
) -> List[CaseRecord]:
    """Load, parse and normalize an archive file from disk."""
    path = Path(path)
    return _normalize_batch(load_case_file(path), path.name, normalizer)


def _normalize_batch(
    rows: List[Dict[str, Any]], source: str, normalizer: Optional[RecordNormalizer]
) -> List[CaseRecord]:
    normalizer = normalizer or RecordNormalizer()
    records = normalizer.normalize(rows)
    if not records:
        raise NoValidRecordsError(
            f"No case in {source} has a fault description column "
            f"({', '.join(normalizer.fault_aliases)})"
        )
    return records
