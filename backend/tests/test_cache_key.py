"""
Unit tests for utils/cache_key.py

Two requests for the same statistics must land on the same key no matter
how the params were ordered or how a date was spelled.
"""
from datetime import date, datetime

from utils.cache_key import (
    build_statistics_cache_key,
    hash_cache_params,
    normalize_cache_params,
    scope_prefix,
)


def test_normalize_cache_params_drops_empty_and_sorts():
    params = {
        "to": "2024-06-30",
        "period": "month",
        "from": date(2024, 6, 1),
        "groups": None,
        "empty_list": [],
        "empty_dict": {},
        "blank": "",
        "nested": {"b": 2, "a": 1, "skip": None},
    }

    normalized = normalize_cache_params(params)

    assert list(normalized.keys()) == ["from", "nested", "period", "to"]
    assert normalized["from"] == "2024-06-01"
    assert normalized["nested"] == {"a": 1, "b": 2}


def test_date_spellings_collapse_to_one_day():
    spellings = [
        "2024-06-01",
        " 2024-06-01 ",
        "2024-06-01T00:00:00",
        "2024-06-01 08:15",
        "2024-06-01T10:00:00Z",
        "2024-06-01T10:00:00+03:00",
        date(2024, 6, 1),
        datetime(2024, 6, 1, 23, 59, 59),
    ]
    hashes = {hash_cache_params({"from": value}) for value in spellings}
    assert len(hashes) == 1


def test_hash_is_order_independent():
    a = {"period": "custom", "from": "2024-01-01", "to": "2024-01-31"}
    b = {"to": "2024-01-31", "from": "2024-01-01", "period": "custom"}
    assert hash_cache_params(a) == hash_cache_params(b)
    assert len(hash_cache_params(a)) == 16


def test_hash_differs_for_different_windows():
    assert hash_cache_params({"from": "2024-01-01"}) != hash_cache_params({"from": "2024-01-02"})


def test_build_statistics_cache_key_layout():
    key = build_statistics_cache_key(
        "all_stats", "district_3", 42, {"period": "week", "from": "2024-06-10", "to": "2024-06-16"}
    )
    prefix, district, user, cache_type, digest = key.split(":")

    assert (prefix, district, user, cache_type) == ("stats", "district_3", "user_42", "all_stats")
    assert len(digest) == 16
    assert key.startswith(scope_prefix("district_3"))


def test_scope_prefix_does_not_match_other_districts():
    key = build_statistics_cache_key("overview", "district_12", 1, {})
    assert not key.startswith(scope_prefix("district_1"))
