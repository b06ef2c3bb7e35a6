from __future__ import annotations

from datetime import datetime, timezone

import pytest

from airlog.mapping.values import coerce_text, parse_duration, parse_timestamp

EXPECTED = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        "2024-05-01T12:30:00Z",
        "2024-05-01T14:30:00+02:00",
        "Wed, 01 May 2024 12:30:00 GMT",
        "2024-05-01 12:30:00",
        "01.05.2024 12:30:00",
        1714566600,
        1714566600000,
        "1714566600",
    ],
)
def test_parse_timestamp_accepts_common_formats(value: object) -> None:
    assert parse_timestamp(value) == EXPECTED


def test_parse_timestamp_returns_none_for_garbage() -> None:
    assert parse_timestamp("yesterday-ish") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp(True) is None


@pytest.mark.parametrize(
    ("value", "seconds"),
    [
        (215, 215),
        ("215", 215),
        (215000, 215),
        ("3:35", 215),
        ("1:02:03", 3723),
        ("PT3M35S", 215),
        (0, None),
        ("soon", None),
    ],
)
def test_parse_duration(value: object, seconds: object) -> None:
    assert parse_duration(value) == seconds


def test_coerce_text() -> None:
    assert coerce_text("  Alpha ") == "Alpha"
    assert coerce_text("   ") is None
    assert coerce_text({"@lang": "en", "#text": "Title"}) == "Title"
    assert coerce_text(["First", "Second"]) == "First"
    assert coerce_text(42) == "42"
    assert coerce_text(False) is None


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 10**400, "9" * 400])
def test_non_finite_or_huge_numbers_are_absent(value: object) -> None:
    assert parse_timestamp(value) is None
    duration = parse_duration(value)
    assert duration is None or duration > 0


def test_infinite_duration_is_absent() -> None:
    assert parse_duration(float("inf")) is None
    assert parse_duration(float("nan")) is None
    assert parse_duration("PT" + "9" * 400 + "H") is None
