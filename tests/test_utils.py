from datetime import date, datetime

import pytest

from utils import CSV_HEADERS, build_csv, format_grading_status, format_us_date, parse_price


@pytest.mark.parametrize("raw,expected", [
    ("$1,234.50", 1234.5),
    (" 99 ", 99.0),
    (42, 42.0),
    ("", None),
    (None, None),
    ("N/A", None),
])
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("status,expected", [
    ("psa-10", "PSA 10"),
    ("psa-7", "PSA 7"),
    ("bgs-9.5", "BGS 9.5"),
    ("ungraded", "Ungraded"),
    (None, "Ungraded"),
])
def test_format_grading_status(status, expected):
    assert format_grading_status(status) == expected


def test_format_us_date():
    assert format_us_date(date(2024, 1, 5)) == "1/5/2024"
    assert format_us_date(datetime(2023, 12, 25, 10, 30)) == "12/25/2023"
    assert format_us_date("2024-03-09") == "3/9/2024"
    assert format_us_date(None) == ""


def test_build_csv_header_and_quoting():
    csv_text = build_csv([
        ["Charizard", "Base", "4", 100.0, 5000.0, "4900.0%", 4900.0, "PSA 10", "1/15/2024", 'says "hi"'],
    ])
    lines = csv_text.split("\n")
    assert len(CSV_HEADERS) == 10
    assert lines[0] == ",".join(f'"{h}"' for h in CSV_HEADERS)
    assert lines[1] == (
        '"Charizard","Base","4","100","5000","4900.0%","4900","PSA 10","1/15/2024","says ""hi"""'
    )
    assert not csv_text.endswith("\n")


def test_build_csv_keeps_fractional_prices():
    line = build_csv([["x", "", "", 12.5, 0.99, "0.0%", 0, "Ungraded", "", ""]]).split("\n")[1]
    assert '"12.5","0.99"' in line
