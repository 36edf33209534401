import csv
from datetime import datetime
from io import BytesIO, StringIO

from openpyxl import load_workbook

from itam.errors import ValidationError

SUPPORTED_FORMATS = ("csv", "xlsx")


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return value.strip()
    return value


def parse_csv(content: bytes) -> list[dict]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("CSV file must be UTF-8 encoded.", details=str(exc))
    reader = csv.DictReader(StringIO(text))
    rows = []
    for row in reader:
        cleaned = {k.strip(): _cell(v) for k, v in row.items() if k is not None}
        if not any(v not in ("", None) for v in cleaned.values()):
            continue
        rows.append(cleaned)
    return rows


def parse_xlsx(content: bytes) -> list[dict]:
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises several unrelated types for bad files
        raise ValidationError("Could not read XLSX file.", details=str(exc))
    try:
        ws = wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)
        header = next(rows_iter, None)
        if not header:
            return []
        keys = [str(h).strip() if h is not None else "" for h in header]
        rows = []
        for values in rows_iter:
            row = {k: _cell(v) for k, v in zip(keys, values) if k}
            if not any(v not in ("", None) for v in row.values()):
                continue
            rows.append(row)
        return rows
    finally:
        wb.close()


def parse_upload(content: bytes, format: str) -> list[dict]:
    """Turn an uploaded CSV or XLSX file into a list of row dicts keyed by header."""
    fmt = (format or "").strip().lower()
    if fmt == "csv":
        return parse_csv(content)
    if fmt == "xlsx":
        return parse_xlsx(content)
    raise ValidationError("Unsupported file format.")
