"""
CSV export — RFC 4180 encoding shared by the report /export endpoints and the client.

Fields with commas, quotes or line breaks are quoted and quotes doubled;
records end with CRLF; output starts with a UTF-8 BOM so spreadsheet
apps detect the encoding. Every row has exactly the header's column count.
"""

import csv
import io
from datetime import date, datetime
from typing import Any, Iterable, Sequence
from urllib.parse import quote
from fastapi.responses import StreamingResponse

UTF8_BOM = "\ufeff"

# A column is either a row key (used as its own header) or a (key, header) pair
Column = str | tuple[str, str]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _split_columns(columns: Sequence[Column]) -> tuple[list[str], list[str]]:
    keys, headers = [], []
    for col in columns:
        if isinstance(col, tuple):
            keys.append(col[0])
            headers.append(col[1])
        else:
            keys.append(col)
            headers.append(col)
    return keys, headers


def encode_csv(columns: Sequence[Column], rows: Iterable[dict], bom: bool = True) -> str:
    """Encode dict rows as CSV text. Missing keys become empty cells."""
    keys, headers = _split_columns(columns)
    buf = io.StringIO(newline="")
    if bom:
        buf.write(UTF8_BOM)
    writer = csv.writer(buf, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(k)) for k in keys])
    return buf.getvalue()


def content_disposition(filename: str) -> dict[str, str]:
    """RFC 5987 Content-Disposition with non-ASCII support."""
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    utf8_name = quote(filename, safe="")
    return {"Content-Disposition": f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{utf8_name}"}


def csv_response(filename: str, columns: Sequence[Column], rows: Iterable[dict]) -> StreamingResponse:
    body = encode_csv(columns, rows)
    return StreamingResponse(
        iter([body.encode("utf-8")]),
        media_type="text/csv; charset=utf-8",
        headers=content_disposition(filename),
    )
