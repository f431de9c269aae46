"""
.xlsx roster parsing
First sheet, first row is the header. Each data row becomes a dict keyed
by header text, paired with its 1-based sheet row number.
"""

from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from olympiad.core.errors import ValidationFailed

ALLOWED_EXTENSIONS = (".xlsx",)

Row = Tuple[int, Dict[str, Any]]


def cell_to_str(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def cell_value(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip()
        return v or None
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return v


def validate_upload(filename: Optional[str], content: bytes, max_bytes: int) -> None:
    if not filename:
        raise ValidationFailed("No file uploaded.")
    if not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise ValidationFailed("Only .xlsx files are allowed.")
    if not content:
        raise ValidationFailed("Uploaded file is empty.")
    if len(content) > max_bytes:
        raise ValidationFailed(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")


def read_rows(content: bytes) -> List[Row]:
    """
    Parse workbook bytes into (row_number, {header: value}) pairs

    Rows with no values at all are skipped. Row numbers are sheet rows,
    so the first data row is 2.
    """
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as e:
        raise ValidationFailed(f"Could not read spreadsheet: {e}")

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return []

        headers = [cell_to_str(h) for h in header_row]
        parsed = []
        for row_number, row in enumerate(rows, start=2):
            record = {}
            for header, value in zip(headers, row):
                value = cell_value(value)
                if header and value is not None:
                    record[header] = value
            if record:
                parsed.append((row_number, record))
        return parsed
    finally:
        workbook.close()


async def read_upload(upload, max_bytes: int) -> List[Row]:
    """fastapi UploadFile -> parsed rows"""
    content = await upload.read()
    validate_upload(upload.filename, content, max_bytes)
    return read_rows(content)
