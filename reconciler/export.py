"""Report export to an Excel workbook or to BOM-prefixed CSV"""

import io
from datetime import datetime
from typing import List, Optional

import pandas as pd

from .models import AttendanceStatus, ProcessingResult

EXPORT_COLUMNS = ['Name', 'Status', 'Matched Zoom Name']
SHEET_NAME = 'Attendance Report'

STATUS_LABELS = {
    AttendanceStatus.PRESENT: 'Present',
    AttendanceStatus.ABSENT: 'Absent',
    AttendanceStatus.UNEXPECTED: 'Not on roster',
}

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
CSV_MIMETYPE = 'text/csv; charset=utf-8'


def report_rows(result: ProcessingResult) -> List[List[str]]:
    """Present, then absent, then unexpected; Zoom name only for present rows"""
    rows = []
    for attendee in result.present:
        rows.append([attendee.name, STATUS_LABELS[attendee.status], attendee.original_name or ''])
    for attendee in result.absent + result.unexpected:
        rows.append([attendee.name, STATUS_LABELS[attendee.status], ''])
    return rows


def report_dataframe(result: ProcessingResult) -> pd.DataFrame:
    return pd.DataFrame(report_rows(result), columns=EXPORT_COLUMNS)


def to_xlsx_bytes(result: ProcessingResult) -> bytes:
    output = io.BytesIO()
    report_dataframe(result).to_excel(output, index=False, sheet_name=SHEET_NAME, engine='openpyxl')
    return output.getvalue()


def to_csv_bytes(result: ProcessingResult) -> bytes:
    """UTF-8 CSV with a byte-order mark so spreadsheet apps detect the encoding"""
    text = report_dataframe(result).to_csv(index=False, lineterminator='\r\n')
    return text.encode('utf-8-sig')


def export_filename(extension: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"attendance_report_{now.strftime('%Y%m%d_%H%M%S')}.{extension}"
