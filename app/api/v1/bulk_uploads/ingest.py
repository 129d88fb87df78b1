"""
Batch ingestion: raw JSON / CSV / XLSX input -> lazy sequence of CandidateRecord.

Iterating a batch source re-parses its input from the start, so a source can
be walked more than once. Per-row tokenizing problems never stop the walk;
they come out as records with ``parse_error`` set. Anything that makes the
input unusable as a whole raises StructuralError before the first row.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from app.core.config import settings
from app.core.enums import CandidateKind
from app.core.exceptions import StructuralError

from .fields import FieldSpec, fields_for, required_fields, tabular_fields


logger = logging.getLogger(__name__)

REQUIRED_MARKER = "*"
UNREADABLE_ROW = "(unreadable row)"
CSV_EXTENSIONS = (".csv", ".txt")
EXCEL_EXTENSIONS = (".xlsx",)


@dataclass
class CandidateRecord:
    """A parsed, not yet validated batch row."""

    index: int  # 1-based data row number
    kind: CandidateKind
    raw_row: Any  # original JSON entry, or {header: cell} for tabular input
    values: Dict[str, Any] = field(default_factory=dict)  # logical field key -> value
    cells: List[str] = field(default_factory=list)  # aligned with the batch headers
    parse_error: Optional[str] = None


def _strip_marker(header: str) -> str:
    return str(header or "").strip().rstrip(REQUIRED_MARKER).strip()


def resolve_headers(headers: Sequence[str], specs: Sequence[FieldSpec]) -> Dict[str, int]:
    """Map logical field keys to column indexes.

    Required markers ("Student Grade *") are ignored. Exact label matches win;
    remaining labels fall back to the first unclaimed header starting with the
    label, e.g. "Student Date of Birth" -> "Student Date of Birth (DD-MM-YYYY) *".
    """
    cleaned = [_strip_marker(h).lower() for h in headers]
    columns: Dict[str, int] = {}
    claimed = set()
    for spec in specs:
        label = spec.label.lower()
        if label in cleaned:
            idx = cleaned.index(label)
            columns[spec.key] = idx
            claimed.add(idx)
    for spec in specs:
        if spec.key in columns:
            continue
        label = spec.label.lower()
        for idx, header in enumerate(cleaned):
            if idx not in claimed and header.startswith(label):
                columns[spec.key] = idx
                claimed.add(idx)
                break
    return columns


def _cell_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.strftime("%d-%m-%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(_cell_str(v) for v in value if v is not None)
    return str(value).strip()


def _dig(entry: Any, path: Tuple[str, ...]) -> Any:
    current = entry
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


class BatchSource:
    """Base class for a batch: headers for the error report plus lazy rows."""

    kind: CandidateKind
    headers: List[str]

    def __iter__(self) -> Iterator[CandidateRecord]:
        raise NotImplementedError


class JsonBatch(BatchSource):
    """Structured batch: ``{"data": [...]}``, ``{"entries": [...]}`` or a bare list."""

    def __init__(self, payload: Any, kind: CandidateKind) -> None:
        entries = payload
        if isinstance(payload, dict):
            entries = payload.get("data")
            if entries is None:
                entries = payload.get("entries")
        if not isinstance(entries, list):
            raise StructuralError("Invalid data format: expected an array of entries under 'data' or 'entries'")
        if len(entries) > settings.bulk_max_rows:
            raise StructuralError(f"At most {settings.bulk_max_rows} entries per upload")
        self.kind = kind
        self._entries = entries
        self._specs = fields_for(kind)
        self._tabular = tabular_fields(kind)
        self.headers = [spec.label for spec in self._tabular]

    def __iter__(self) -> Iterator[CandidateRecord]:
        for index, entry in enumerate(self._entries, start=1):
            if not isinstance(entry, dict):
                yield CandidateRecord(
                    index=index,
                    kind=self.kind,
                    raw_row=None,
                    cells=[UNREADABLE_ROW],
                    parse_error=f"Entry {index} must be an object",
                )
                continue
            values: Dict[str, Any] = {}
            for spec in self._specs:
                raw = None
                for path in spec.json_paths:
                    raw = _dig(entry, path)
                    if raw not in (None, "", [], {}):
                        break
                values[spec.key] = raw if spec.structured else _cell_str(raw)
            yield CandidateRecord(
                index=index,
                kind=self.kind,
                raw_row=entry,
                values=values,
                cells=[values[spec.key] for spec in self._tabular],
            )


class TabularBatch(BatchSource):
    """Shared row handling for sheet-shaped input with a header row."""

    def __init__(self, headers: List[str], kind: CandidateKind) -> None:
        if not any(h.strip() for h in headers):
            raise StructuralError("File has no header row")
        self.kind = kind
        self.headers = headers
        self._columns = resolve_headers(headers, tabular_fields(kind))
        missing = [spec.label for spec in required_fields(kind) if spec.key not in self._columns]
        if missing:
            raise StructuralError(f"Missing required columns: {', '.join(missing)}")

    def _record(self, index: int, cells: List[str]) -> CandidateRecord:
        width = len(self.headers)
        if len(cells) > width and any(cells[width:]):
            return CandidateRecord(
                index=index,
                kind=self.kind,
                raw_row=dict(zip(self.headers, cells)),
                cells=cells[:width],
                parse_error=f"Row has {len(cells)} columns, expected {width}",
            )
        # Short rows are padded; trailing empty cells beyond the header are dropped
        cells = (cells + [""] * width)[:width]
        return CandidateRecord(
            index=index,
            kind=self.kind,
            raw_row=dict(zip(self.headers, cells)),
            values={key: cells[idx] for key, idx in self._columns.items()},
            cells=cells,
        )


class _LineFeed:
    """Line iterator that remembers the physical lines consumed for the current row."""

    def __init__(self, text: str) -> None:
        self._lines = iter(text.splitlines(keepends=True))
        self.consumed: List[str] = []

    def __iter__(self) -> "_LineFeed":
        return self

    def __next__(self) -> str:
        line = next(self._lines)
        self.consumed.append(line)
        return line


class DelimitedBatch(TabularBatch):
    """CSV text with a header row. Cells are trimmed and blank lines skipped."""

    def __init__(self, text: str, kind: CandidateKind) -> None:
        self._text = text.lstrip("\ufeff")
        if not self._text.strip():
            raise StructuralError("File is empty")
        try:
            header_row = next(csv.reader(io.StringIO(self._text), strict=True))
        except (csv.Error, StopIteration) as e:
            raise StructuralError(f"Could not read header row: {e}") from e
        if self._count_rows() > settings.bulk_max_rows:
            raise StructuralError(f"At most {settings.bulk_max_rows} rows per upload")
        super().__init__([h.strip() for h in header_row], kind)

    def _count_rows(self) -> int:
        """Non-blank data rows; quoted cells may span several lines."""
        reader = csv.reader(io.StringIO(self._text))
        try:
            next(reader, None)
            return sum(1 for row in reader if any(c.strip() for c in row))
        except csv.Error as e:
            raise StructuralError(f"Could not read file: {e}") from e

    def _salvage(self, lines: List[str]) -> List[str]:
        """Cells of a row the strict reader rejected, if a lenient read lines them up with the headers."""
        if len(lines) != 1:
            return []
        try:
            rows = list(csv.reader(lines))
        except csv.Error:
            return []
        if len(rows) != 1 or len(rows[0]) > len(self.headers):
            return []
        return [c.strip() for c in rows[0]]

    def _unreadable(self, index: int, lines: List[str], error: csv.Error) -> CandidateRecord:
        cells = self._salvage(lines)
        if cells:
            cells = (cells + [""] * len(self.headers))[: len(self.headers)]
            raw_row = dict(zip(self.headers, cells))
        else:
            cells = [UNREADABLE_ROW]
            raw_row = None
        return CandidateRecord(
            index=index,
            kind=self.kind,
            raw_row=raw_row,
            cells=cells,
            parse_error=f"Could not parse row: {error}",
        )

    def __iter__(self) -> Iterator[CandidateRecord]:
        feed = _LineFeed(self._text)
        reader = csv.reader(feed, strict=True)
        try:
            next(reader)  # header
        except (csv.Error, StopIteration):
            return
        index = 0
        while True:
            feed.consumed.clear()
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                index += 1
                logger.warning("Row %s could not be tokenized: %s", index, e)
                yield self._unreadable(index, list(feed.consumed), e)
                continue
            cells = [c.strip() for c in row]
            if not any(cells):
                continue
            index += 1
            yield self._record(index, cells)


class WorkbookBatch(TabularBatch):
    """First sheet of an .xlsx workbook; the first row holds the headers."""

    def __init__(self, content: bytes, kind: CandidateKind) -> None:
        self._content = content
        rows = self._rows()
        header_row = next(rows, None)
        if not header_row:
            raise StructuralError("Excel file has no header row")
        if sum(1 for row in rows if any(row)) > settings.bulk_max_rows:
            raise StructuralError(f"At most {settings.bulk_max_rows} rows per upload")
        super().__init__(header_row, kind)

    def _rows(self) -> Iterator[List[str]]:
        try:
            wb = load_workbook(filename=io.BytesIO(self._content), read_only=True, data_only=True)
        except Exception as e:
            raise StructuralError(f"Invalid Excel file: {e}") from e
        try:
            ws = wb.active
            if ws is None:
                raise StructuralError("Excel file has no active sheet")
            for row in ws.iter_rows(values_only=True):
                yield [_cell_str(c) for c in row]
        finally:
            wb.close()

    def __iter__(self) -> Iterator[CandidateRecord]:
        rows = self._rows()
        next(rows, None)  # header
        index = 0
        for cells in rows:
            if not any(cells):
                continue
            index += 1
            yield self._record(index, cells)


def from_json(payload: Any, kind: CandidateKind) -> BatchSource:
    return JsonBatch(payload, kind)


def from_upload(filename: Optional[str], content: bytes, kind: CandidateKind) -> BatchSource:
    """Pick the tabular reader from the file extension (CSV when there is none)."""
    if not content:
        raise StructuralError("File is empty")
    name = (filename or "").lower()
    if name.endswith(EXCEL_EXTENSIONS):
        return WorkbookBatch(content, kind)
    if name and "." in name and not name.endswith(CSV_EXTENSIONS):
        raise StructuralError("File must be a CSV (.csv) or Excel (.xlsx) file")
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise StructuralError(f"File is not valid UTF-8 text: {e}") from e
    return DelimitedBatch(text, kind)
