import io

import pytest
from openpyxl import Workbook

from reconciler.column_locator import (
    extract_names_from_file,
    extract_names_from_grid,
    locate_name_column,
    read_first_sheet,
    score_cell,
    score_columns,
)
from reconciler.errors import SourceReadError


def test_primary_header_beats_row_labels():
    grid = [
        ["Weekly report", None, None],
        ["Row Labels", "Count of Visits", "Pharmacist Name"],
        ["Cairo", 3, "Sara Ali"],
        ["Giza", 5, "Omar Khan"],
    ]
    guess = locate_name_column(grid)
    assert (guess.header_row, guess.column, guess.strategy) == (1, 2, "primary")
    assert extract_names_from_grid(grid) == ["Sara Ali", "Omar Khan"]


def test_secondary_header_skips_ignored_labels():
    grid = [
        ["Supervisor Name", "Username", "Date", "Full Name"],
        ["Boss One", "sara.a", "2024-01-01", "Sara Ali"],
    ]
    guess = locate_name_column(grid)
    assert guess.column == 3
    assert guess.strategy == "secondary"


def test_arabic_header_is_recognised():
    grid = [["م", "اسم الصيدلي"], [1, "سارة علي"], [2, "عمر خان"]]
    assert extract_names_from_grid(grid) == ["سارة علي", "عمر خان"]


def test_scoring_picks_name_like_column_without_header():
    grid = [
        [101, "Sara Ali Hassan", "x"],
        [102, "Omar Khan Zaki", "y"],
        [103, "Mona Adel Fathy", "z"],
    ]
    guess = locate_name_column(grid)
    assert guess.strategy == "scoring"
    assert guess.column == 1
    assert extract_names_from_grid(grid) == ["Sara Ali Hassan", "Omar Khan Zaki", "Mona Adel Fathy"]


def test_scoring_tie_goes_to_lower_column():
    grid = [
        ["Sara Ali Hassan", "Omar Khan Zaki"],
        ["Mona Adel Fathy", "Hany Samir Aziz"],
    ]
    guess = locate_name_column(grid)
    assert guess.strategy == "scoring"
    assert guess.column == 0


def test_score_columns_skips_columns_under_ignored_labels():
    grid = [
        ["Supervisor", "Code"],
        ["Khaled Mostafa Ali", "Sara Ali Hassan"],
        ["Khaled Mostafa Ali", "Omar Khan Zaki"],
    ]
    assert score_columns(grid, 0) == [0, 4]


def test_headerless_grid_keeps_rows_with_label_words():
    grid = [
        ["Sara Ali Hassan", "Cairo"],
        ["Omar Khan Zaki", "Kuwait City"],
        ["Mona Adel Fathy", "Giza"],
    ]
    guess = locate_name_column(grid)
    assert (guess.header_row, guess.column, guess.strategy) == (None, 0, "scoring")
    assert extract_names_from_grid(grid) == ["Sara Ali Hassan", "Omar Khan Zaki", "Mona Adel Fathy"]


def test_headerless_grid_with_side_pivot_keeps_every_name():
    grid = [
        ["Sara Ali Hassan"],
        ["Omar Khan Zaki"],
        ["Mona Adel Fathy", None, None, None, None, None, "Row Labels"],
        ["Hany Samir Aziz"],
    ]
    assert extract_names_from_grid(grid) == [
        "Sara Ali Hassan", "Omar Khan Zaki", "Mona Adel Fathy", "Hany Samir Aziz"]


def test_defaults_to_first_column():
    grid = [[1, 2], [3, 4]]
    guess = locate_name_column(grid)
    assert (guess.column, guess.strategy) == (0, "default")
    assert extract_names_from_grid(grid) == []


def test_pivot_area_yields_no_names():
    grid = [
        [None] * 7 + ["Row Labels (Pharmacist Name)"],
        [None] * 7 + ["Sara Ali"],
    ]
    assert extract_names_from_grid(grid) == []


def test_extraction_filters_and_deduplicates():
    grid = [
        ["Name"],
        ["Sara Ali"],
        ["Ali"],
        ["12345"],
        [None],
        ["  Omar Khan  "],
        ["Sara Ali"],
    ]
    first = extract_names_from_grid(grid)
    assert first == ["Sara Ali", "Omar Khan"]
    assert extract_names_from_grid(grid) == first


def test_score_cell():
    assert score_cell("Sara Ali Hassan") == 2
    assert score_cell("sara@example.com") == 1
    assert score_cell("Sarah") == 0
    assert score_cell("123456789") == 0


def test_read_csv_with_bom():
    data = "\ufeffName,Email\nSara Ali,s@x.com\nOmar Khan,o@x.com\n".encode("utf-8")
    assert extract_names_from_file(io.BytesIO(data), "roster.csv") == ["Sara Ali", "Omar Khan"]


def test_read_first_sheet_of_workbook():
    wb = Workbook()
    ws = wb.active
    ws.append(["Pharmacy visits - March"])
    ws.append([None, "Pharmacist Name", "City"])
    ws.append([1, "Sara Ali", "Cairo"])
    ws.append([2, "Omar Khan", "Giza"])
    other = wb.create_sheet("Other")
    other.append(["Display Name"])
    other.append(["Not Read"])
    buf = io.BytesIO()
    wb.save(buf)

    names = extract_names_from_file(io.BytesIO(buf.getvalue()), "roster.xlsx")
    assert names == ["Sara Ali", "Omar Khan"]


def test_empty_csv_reads_as_empty_grid():
    assert read_first_sheet(io.BytesIO(b""), "empty.csv") == []


@pytest.mark.parametrize("payload,filename", [
    (b"hello", "roster.txt"),
    (b"not a workbook", "roster.xlsx"),
])
def test_unreadable_sources_raise(payload, filename):
    with pytest.raises(SourceReadError):
        read_first_sheet(io.BytesIO(payload), filename)
