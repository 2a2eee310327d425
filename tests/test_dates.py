from __future__ import annotations

from datetime import date, datetime

import pytest

from disbursement_recon.dates import parse_date, try_parse_date
from disbursement_recon.errors import DateParseError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("24/01/2025", date(2025, 1, 24)),
        ("4/1/2025", date(2025, 1, 4)),
        ("03/02/2025", date(2025, 2, 3)),  # day first when both readings are valid
        ("4/1/25", date(2025, 1, 4)),
        ("2025-01-24", date(2025, 1, 24)),
        ("2025-01-24T13:45:00", date(2025, 1, 24)),
        ("2025-01-24 13:45", date(2025, 1, 24)),
        ("01/24/2025", date(2025, 1, 24)),  # month first only because 24 is not a month
        ("24-01-2025", date(2025, 1, 24)),
        ("24.01.2025", date(2025, 1, 24)),
        ("  24/01/2025  ", date(2025, 1, 24)),
    ],
)
def test_parse_date_accepted_shapes(raw: str, expected: date) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "Total", "31/02/2025", "13/13/2025", "01/01/1900", "2031-01-01", "Jan 5 2025", "01/24/25"],
)
def test_parse_date_rejects(raw: str) -> None:
    with pytest.raises(DateParseError):
        parse_date(raw)


def test_date_parse_error_is_a_value_error_and_carries_value() -> None:
    with pytest.raises(ValueError) as exc:
        parse_date("not a date")
    assert isinstance(exc.value, DateParseError)
    assert exc.value.value == "not a date"


def test_date_objects_pass_through_with_bounds_check() -> None:
    assert parse_date(date(2025, 5, 5)) == date(2025, 5, 5)
    assert parse_date(datetime(2025, 5, 5, 23, 59)) == date(2025, 5, 5)
    with pytest.raises(DateParseError):
        parse_date(date(2019, 12, 31))


def test_try_parse_date() -> None:
    assert try_parse_date("05/06/2025") == date(2025, 6, 5)
    assert try_parse_date("garbage") is None
    assert try_parse_date(None) is None
