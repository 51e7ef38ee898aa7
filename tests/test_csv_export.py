"""
Tests for CSV encoding.
"""

from datetime import date, datetime

from opsconsole.services.csv_export import (
    content_disposition, encode_csv,
)


def test_quotes_and_crlf():
    text = encode_csv(["name", "note"], [{"name": "a,b", "note": 'say "hi"'}, {"name": "multi\nline"}])
    assert text.startswith("\ufeff")
    assert text[1:] == 'name,note\r\n"a,b","say ""hi"""\r\n"multi\nline",\r\n'


def test_headers_and_cell_types():
    rows = [{"d": date(2026, 3, 1), "t": datetime(2026, 3, 1, 8, 5, 0), "flag": True, "n": None}]
    text = encode_csv([("d", "Date"), ("t", "Time"), ("flag", "Flag"), ("n", "N")], rows, bom=False)
    assert text == "Date,Time,Flag,N\r\n2026-03-01,2026-03-01 08:05:00,true,\r\n"


def test_content_disposition_handles_non_ascii():
    header = content_disposition("评级.csv")["Content-Disposition"]
    assert header.startswith('attachment; filename="__.csv"')
    assert "filename*=UTF-8''%E8%AF%84%E7%BA%A7.csv" in header
