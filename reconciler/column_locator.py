"""
Locate the person-name column in an arbitrary roster spreadsheet.

Rosters arrive as messy workbooks: title rows above the header, pivot
tables sharing the sheet, supervisor/date/email columns next to the
names. The locator works on a plain 2-D grid of cell values (first sheet
only) and tries, in order:

1. a primary keyword header ("pharmacist name", "display name", ...)
2. a secondary keyword header ("name", "الاسم", ...) that is not also an
   ignored column label
3. column scoring over the first rows of the sheet, with no header row
4. column 0
"""

import io
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import pandas as pd

from .errors import SourceReadError

logger = logging.getLogger(__name__)

PRIMARY_KEYWORDS = ["pharmacist name", "display name", "اسم الصيدلي"]
SECONDARY_KEYWORDS = ["اسم", "الاسم", "name", "full name"]
IGNORE_KEYWORDS = ["row labels", "supervisor", "count of", "date", "city", "username", "email", "status"]

HEADER_SCAN_ROWS = 10
SCORING_SAMPLE_ROWS = 20
PIVOT_MIN_COLUMN = 6
PIVOT_LABEL = "row labels"
MIN_NAME_LENGTH = 3

SPREADSHEET_EXTENSIONS = ('.xlsx', '.xlsm')
CSV_EXTENSIONS = ('.csv',)

Grid = Sequence[Sequence[Any]]


@dataclass(frozen=True)
class ColumnGuess:
    header_row: Optional[int]
    column: int
    strategy: str


def cell_text(value) -> str:
    """Render a raw cell as trimmed text ('' for blanks)"""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def is_numeric(text: str) -> bool:
    try:
        float(text)
        return True
    except ValueError:
        return False


def _cell(grid: Grid, row: Optional[int], col: int) -> str:
    if row is None or row < 0 or row >= len(grid):
        return ""
    cells = grid[row]
    if cells is None or col >= len(cells):
        return ""
    return cell_text(cells[col])


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(k in text for k in keywords)


def _scan_header(grid: Grid, keywords: Sequence[str], strategy: str, exclude: Sequence[str] = ()) -> Optional[ColumnGuess]:
    for i in range(min(len(grid), HEADER_SCAN_ROWS)):
        row = grid[i]
        if not row:
            continue
        for j in range(len(row)):
            value = cell_text(row[j]).lower()
            if _contains_any(value, keywords) and not _contains_any(value, exclude):
                return ColumnGuess(header_row=i, column=j, strategy=strategy)
    return None


def score_cell(text: str) -> int:
    if not text or is_numeric(text):
        return 0
    if len(text) > 8 and len(text.split()) >= 2 and "@" not in text:
        return 2
    if len(text) > 5:
        return 1
    return 0


def score_columns(grid: Grid, header_row: Optional[int]) -> List[int]:
    """Name-likeness score per column over the sample rows below header_row"""
    start = 0 if header_row is None else header_row + 1
    sample = [r for r in grid[start:start + SCORING_SAMPLE_ROWS] if r]
    width = max((len(r) for r in sample), default=0)
    scores = [0] * width
    for col in range(width):
        header = _cell(grid, header_row, col).lower()
        if header and _contains_any(header, IGNORE_KEYWORDS):
            continue
        for row in sample:
            if col < len(row):
                scores[col] += score_cell(cell_text(row[col]))
    return scores


def locate_name_column(grid: Grid) -> ColumnGuess:
    """Pick the header row and column most likely to hold person names"""
    guess = _scan_header(grid, PRIMARY_KEYWORDS, 'primary')
    if guess:
        logger.info(f"Name column found by primary keyword at row {guess.header_row}, column {guess.column}")
        return guess

    guess = _scan_header(grid, SECONDARY_KEYWORDS, 'secondary', exclude=IGNORE_KEYWORDS)
    if guess:
        logger.info(f"Name column found by secondary keyword at row {guess.header_row}, column {guess.column}")
        return guess

    # No header row: every row, from row 0, is a candidate name
    scores = score_columns(grid, None)
    if scores and max(scores) > 0:
        column = scores.index(max(scores))
        logger.info(f"Name column chosen by scoring: column {column} (scores={scores})")
        return ColumnGuess(None, column, 'scoring')

    logger.warning("Could not reliably identify a name column. Defaulting to column 0.")
    return ColumnGuess(None, 0, 'default')


def extract_names_from_grid(grid: Grid) -> List[str]:
    """Deduplicated, first-seen-order names below the detected header"""
    guess = locate_name_column(grid)
    header = _cell(grid, guess.header_row, guess.column).lower()
    if guess.column >= PIVOT_MIN_COLUMN and PIVOT_LABEL in header:
        logger.warning(f"Column {guess.column} is a pivot table area; no names taken from it")
        return []

    start = 0 if guess.header_row is None else guess.header_row + 1
    names = []
    for row in grid[start:]:
        if not row or guess.column >= len(row):
            continue
        value = cell_text(row[guess.column])
        if value and len(value) > MIN_NAME_LENGTH and not is_numeric(value):
            names.append(value)
    return list(dict.fromkeys(names))


def _dataframe_to_grid(df: pd.DataFrame) -> List[List[Any]]:
    if df.empty:
        return []
    df = df.astype(object)
    return df.where(pd.notna(df), None).values.tolist()


def read_first_sheet(source, filename: Optional[str] = None) -> List[List[Any]]:
    """
    Read the first sheet of a roster file into a 2-D grid with no header
    interpretation.

    Args:
        source: path or binary file-like object (e.g. a Flask upload)
        filename: original file name, used to pick the reader for uploads

    Raises:
        SourceReadError: if the file cannot be parsed
    """
    name = filename or (source if isinstance(source, (str, os.PathLike)) else getattr(source, 'filename', '')) or ''
    ext = os.path.splitext(str(name))[1].lower()
    if ext and ext not in SPREADSHEET_EXTENSIONS + CSV_EXTENSIONS:
        raise SourceReadError(f"Unsupported roster file type: {ext}. Please upload .xlsx, .xlsm or .csv.")

    try:
        if isinstance(source, (str, os.PathLike)):
            with open(source, 'rb') as f:
                data = f.read()
        else:
            data = source.read()
    except OSError as e:
        raise SourceReadError(f"Could not open the roster file: {e}") from e

    try:
        if ext in CSV_EXTENSIONS:
            try:
                df = pd.read_csv(io.BytesIO(data), header=None, dtype=object, encoding='utf-8-sig')
            except UnicodeDecodeError:
                df = pd.read_csv(io.BytesIO(data), header=None, dtype=object, encoding='latin-1')
        else:
            df = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, engine='openpyxl')
    except pd.errors.EmptyDataError:
        return []
    except Exception as e:
        logger.exception("Failed to parse roster file %s", name)
        raise SourceReadError() from e

    return _dataframe_to_grid(df)


def extract_names_from_file(source, filename: Optional[str] = None) -> List[str]:
    """Read a roster file and return the names found in its name column"""
    grid = read_first_sheet(source, filename)
    names = extract_names_from_grid(grid)
    logger.info(f"Extracted {len(names)} names from roster {filename or source}")
    return names
