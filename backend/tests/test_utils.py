from datetime import datetime, timezone

import pytest

from kuralis_sync.utils import dig, parse_retry_after

NOW = datetime(2015, 10, 21, 7, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("header, expected", [
    ("120", 120.0),
    ("1.5", 1.5),
    ("-5", 0.0),
    ("Wed, 21 Oct 2015 07:28:00 GMT", 1680.0),
    ("Wed, 21 Oct 2015 06:00:00 GMT", 0.0),
    ("not a date", None),
    ("", None),
    (None, None),
])
def test_parse_retry_after(header, expected):
    assert parse_retry_after(header, now=NOW) == expected


def test_dig_walks_dicts_and_lists():
    data = {"payments": [{"paymentDate": "2026-10-19"}], "buyer": None}

    assert dig(data, "payments", 0, "paymentDate") == "2026-10-19"
    assert dig(data, "payments", 3, "paymentDate") is None
    assert dig(data, "buyer", "username", default="eBay Buyer") == "eBay Buyer"
