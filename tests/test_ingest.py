import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from app.api.v1.bulk_uploads.fields import required_fields, tabular_fields
from app.api.v1.bulk_uploads.ingest import UNREADABLE_ROW, from_json, from_upload, resolve_headers
from app.core.config import settings
from app.core.enums import CandidateKind
from app.core.exceptions import StructuralError

from factories import pair_entry


PAIR = CandidateKind.PARENT_STUDENT_PAIR

HEADERS = [
    "Parent First Name *", "Parent Last Name *", "Parent Email *", "Parent Password *",
    "Student First Name *", "Student Last Name *", "Student Email *", "Student Username *",
    "Student Password *", "Student Date of Birth (DD-MM-YYYY) *", "Student Time Zone *",
    "Student Grade *", "Student School *", "Student Subjects of Interest *",
]


def _row(n: int) -> list:
    return [
        "Mary", f"Parent{n}", f"parent{n}@example.com", "Parent1!",
        "Tom", f"Student{n}", f"student{n}@example.com", f"student{n}",
        "Student1!", "15-04-2012", "UTC", "7", "Hillside School", "Math, Science",
    ]


def _csv_line(cells: list) -> str:
    return ",".join(f'"{c}"' if "," in c else c for c in cells)


def _csv(*rows: list) -> bytes:
    lines = [",".join(HEADERS)] + [_csv_line(r) for r in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def test_resolve_headers_ignores_required_marker_and_matches_prefix() -> None:
    columns = resolve_headers(HEADERS, tabular_fields(PAIR))

    assert columns["parent_email"] == 2
    assert columns["student_date_of_birth"] == 9
    assert "student_city" not in columns
    assert all(spec.key in columns for spec in required_fields(PAIR))


def test_csv_rows_become_records_in_order() -> None:
    source = from_upload("pairs.csv", _csv(_row(1), _row(2)), PAIR)

    records = list(source)

    assert [r.index for r in records] == [1, 2]
    assert records[0].values["student_subjects"] == "Math, Science"
    assert records[1].values["parent_email"] == "parent2@example.com"
    assert records[0].raw_row["Parent Email *"] == "parent1@example.com"
    assert source.headers == HEADERS


def test_csv_source_can_be_iterated_twice() -> None:
    source = from_upload("pairs.csv", _csv(_row(1), _row(2)), PAIR)
    assert [r.values for r in source] == [r.values for r in source]


def test_malformed_row_does_not_stop_the_batch() -> None:
    bad = _csv_line(_row(2)).replace("Mary", '"Ma"ry', 1)
    text = "\n".join([",".join(HEADERS), _csv_line(_row(1)), bad, _csv_line(_row(3))]) + "\n"

    records = list(from_upload("pairs.csv", text.encode("utf-8"), PAIR))

    assert [r.index for r in records] == [1, 2, 3]
    assert records[0].parse_error is None
    assert records[1].parse_error.startswith("Could not parse row")
    assert records[2].values["parent_email"] == "parent3@example.com"


def test_malformed_row_cells_line_up_with_headers() -> None:
    bad = _csv_line(_row(2)).replace("Mary", '"Ma"ry', 1)
    text = "\n".join([",".join(HEADERS), bad]) + "\n"

    record = list(from_upload("pairs.csv", text.encode("utf-8"), PAIR))[0]

    assert record.parse_error is not None
    assert len(record.cells) == len(HEADERS)
    assert record.cells[0] == "Mary"
    assert record.raw_row["Parent Email *"] == "parent2@example.com"
    assert record.raw_row["Parent Password *"] == "Parent1!"


def test_unterminated_quote_becomes_placeholder_row() -> None:
    bad = _csv_line(_row(2)).replace("Parent2", '"Parent2', 1)
    text = "\n".join([",".join(HEADERS), _csv_line(_row(1)), bad, _csv_line(_row(3))]) + "\n"

    records = list(from_upload("pairs.csv", text.encode("utf-8"), PAIR))

    assert records[0].parse_error is None
    assert records[-1].parse_error.startswith("Could not parse row")
    assert records[-1].cells == [UNREADABLE_ROW]
    assert records[-1].raw_row is None


def test_blank_lines_skipped_and_short_rows_padded() -> None:
    short = _row(2)[:-1]
    text = "\n".join([",".join(HEADERS), "", _csv_line(_row(1)), " , ,", _csv_line(short)]) + "\n"

    records = list(from_upload("pairs.csv", text.encode("utf-8"), PAIR))

    assert len(records) == 2
    assert records[1].values["student_subjects"] == ""
    assert len(records[1].cells) == len(HEADERS)


def test_row_with_extra_cells_is_a_parse_error() -> None:
    records = list(from_upload("pairs.csv", _csv(_row(1) + ["surprise"]), PAIR))
    assert records[0].parse_error == f"Row has {len(HEADERS) + 1} columns, expected {len(HEADERS)}"
    assert len(records[0].cells) == len(HEADERS)


def test_utf8_bom_is_ignored() -> None:
    records = list(from_upload("pairs.csv", b"\xef\xbb\xbf" + _csv(_row(1)), PAIR))
    assert records[0].values["parent_first_name"] == "Mary"


def test_missing_required_columns_is_structural() -> None:
    content = ("Parent First Name,Parent Email\nMary,m@example.com\n").encode("utf-8")
    with pytest.raises(StructuralError) as exc:
        from_upload("pairs.csv", content, PAIR)
    assert "Missing required columns" in exc.value.message
    assert exc.value.status_code == 400


@pytest.mark.parametrize(
    "filename,content",
    [("pairs.csv", b""), ("pairs.pdf", b"%PDF-1.4"), ("pairs.csv", b"\n\n")],
)
def test_unusable_uploads_are_structural(filename: str, content: bytes) -> None:
    with pytest.raises(StructuralError):
        from_upload(filename, content, PAIR)


def test_row_limit(monkeypatch) -> None:
    monkeypatch.setattr(settings, "bulk_max_rows", 2)
    with pytest.raises(StructuralError):
        from_upload("pairs.csv", _csv(_row(1), _row(2), _row(3)), PAIR)
    with pytest.raises(StructuralError):
        from_json([pair_entry(i) for i in range(3)], PAIR)


def test_row_limit_counts_multiline_cells_once(monkeypatch) -> None:
    monkeypatch.setattr(settings, "bulk_max_rows", 2)
    second = _row(2)
    second[13] = "Math,\nScience"

    records = list(from_upload("pairs.csv", _csv(_row(1), second), PAIR))

    assert len(records) == 2
    assert records[1].values["student_subjects"] == "Math,\nScience"


def test_xlsx_upload_reads_first_sheet() -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(HEADERS)
    row = _row(1)
    row[9] = datetime(2012, 4, 15)
    row[11] = 7
    ws.append(row)
    ws.append([None] * len(HEADERS))
    buffer = io.BytesIO()
    wb.save(buffer)

    records = list(from_upload("pairs.xlsx", buffer.getvalue(), PAIR))

    assert len(records) == 1
    assert records[0].values["student_date_of_birth"] == "15-04-2012"
    assert records[0].values["student_grade"] == "7"


@pytest.mark.parametrize(
    "payload",
    [{"data": [pair_entry()]}, {"entries": [pair_entry()]}, [pair_entry()]],
)
def test_json_envelopes(payload) -> None:
    records = list(from_json(payload, PAIR))
    assert len(records) == 1
    assert records[0].values["student_grade"] == "7"
    assert records[0].values["student_subjects"] == "Math, Science"


def test_json_rejects_non_list_payload() -> None:
    with pytest.raises(StructuralError):
        from_json({"rows": []}, PAIR)


def test_json_non_object_entry_is_a_row_error() -> None:
    records = list(from_json([pair_entry(), "oops"], PAIR))
    assert records[0].parse_error is None
    assert records[1].parse_error == "Entry 2 must be an object"
    assert records[1].cells == [UNREADABLE_ROW]
    assert records[1].raw_row is None
