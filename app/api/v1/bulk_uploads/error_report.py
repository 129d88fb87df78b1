import csv
import io
import os
import uuid
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

ERROR_COLUMN = "Validation Errors"
ERROR_DELIMITER = "; "
MASKED = "(hidden)"
REPORT_PREFIX = "bulk-upload-errors-"


def _is_secret(header: str) -> bool:
    return "password" in str(header or "").lower()


def build_error_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    errors: Sequence[Tuple[int, str]],
) -> List[List[str]]:
    """Input table plus a trailing error column.

    ``errors`` holds ``(row_index, message)`` pairs with 1-based indexes into ``rows``;
    several messages for one row are joined with "; ". Row order and cells are kept,
    except cells under a password column, which are masked. Every row is padded or
    cut to the header width so the messages always land in the last column; cells
    past the header are dropped and counted in the message.
    """
    messages: Dict[int, List[str]] = defaultdict(list)
    for index, message in errors:
        messages[index].append(message)

    width = len(headers)
    secret = [_is_secret(h) for h in headers]
    table = [list(headers) + [ERROR_COLUMN]]
    for index, row in enumerate(rows, start=1):
        cells = (list(row) + [""] * width)[:width]
        cells = [MASKED if secret[i] and cell else cell for i, cell in enumerate(cells)]
        row_messages = list(messages.get(index, []))
        if len(row) > width:
            row_messages.append(f"Dropped {len(row) - width} extra cell(s)")
        table.append(cells + [ERROR_DELIMITER.join(row_messages)])
    return table


class ErrorReportBuilder:
    """Collects the rows of one batch and the errors raised for them."""

    def __init__(self, headers: Sequence[str]) -> None:
        self.headers = list(headers)
        self.rows: List[List[str]] = []
        self.errors: List[Tuple[int, str]] = []

    def add_row(self, cells: Sequence[str]) -> int:
        self.rows.append(list(cells))
        return len(self.rows)

    def add_error(self, row_index: int, message: str) -> None:
        self.errors.append((row_index, message))

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def build(self) -> List[List[str]]:
        return build_error_table(self.headers, self.rows, self.errors)

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerows(self.build())
        return buffer.getvalue()

    def save(self, directory: str) -> str:
        """Write the CSV under ``directory`` and return the generated file name."""
        os.makedirs(directory, exist_ok=True)
        filename = f"{REPORT_PREFIX}{uuid.uuid4().hex}.csv"
        with open(os.path.join(directory, filename), "w", encoding="utf-8", newline="") as f:
            f.write(self.to_csv())
        return filename
