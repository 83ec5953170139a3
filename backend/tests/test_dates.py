from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from app.utils.dates import months_ago


@pytest.mark.parametrize("today,months,expected", [
    (date(2024, 8, 15), 6, date(2024, 2, 15)),
    (date(2024, 8, 31), 6, date(2024, 2, 29)),
    (date(2023, 8, 31), 6, date(2023, 2, 28)),
    (date(2024, 4, 30), 2, date(2024, 2, 29)),
    (date(2024, 1, 15), 1, date(2023, 12, 15)),
    (date(2024, 2, 10), 14, date(2022, 12, 10)),
])
def test_months_ago(today, months, expected):
    assert months_ago(months, today=today) == expected


def test_defaults_to_utc_today():
    # 23:30 UTC on the 31st is already the 1st in UTC+ zones and still the 31st in UTC.
    with patch("app.utils.dates.utcnow", return_value=datetime(2024, 8, 31, 23, 30, tzinfo=timezone.utc)):
        assert months_ago(0) == date(2024, 8, 31)
        assert months_ago(6) == date(2024, 2, 29)
