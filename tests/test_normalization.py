from datetime import date, datetime

import pytest

from parish_census.utils.datetime_parsing import coerce_date
from parish_census.utils.normalization import (
    is_empty_value,
    normalize_email,
    normalize_search_text,
    split_given_names,
)


def test_split_given_names():
    assert split_given_names("Ana María José") == ("Ana", "María José")
    assert split_given_names("  Pedro  ") == ("Pedro", None)
    with pytest.raises(ValueError):
        split_given_names("   ")
    with pytest.raises(ValueError):
        split_given_names(["Ana"])


def test_normalize_helpers():
    assert normalize_email("  Ana@Parroquia.ORG ") == "ana@parroquia.org"
    assert normalize_email("") is None
    assert normalize_search_text("  Unión   Libre ") == "union libre"
    assert normalize_search_text(None) is None


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, True),
        ("  ", True),
        ({}, True),
        ({"a": "", "b": [None]}, True),
        (False, False),
        (0, False),
        ({"a": {"b": "x"}}, False),
    ],
)
def test_is_empty_value(value, expected):
    assert is_empty_value(value) is expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2020-01-31", date(2020, 1, 31)),
        ("2020-01-31T10:00:00Z", date(2020, 1, 31)),
        ("31/01/2020", date(2020, 1, 31)),
        ("2020/01/31", date(2020, 1, 31)),
        (datetime(2020, 1, 31, 8, 0), date(2020, 1, 31)),
        ("", None),
        (None, None),
    ],
)
def test_coerce_date(raw, expected):
    assert coerce_date(raw) == expected


@pytest.mark.parametrize("raw", [20200131, "31 de enero", {"y": 2020}])
def test_coerce_date_rejects_garbage(raw):
    with pytest.raises(ValueError):
        coerce_date(raw)
