from datetime import datetime, timezone

import pytest

from catalog.timestamps import (
    FUTURE_TOLERANCE_S,
    MIN_PLAUSIBLE_TS,
    parse_duration,
    parse_timestamp,
    plausible_timestamp,
)

NOW = 1_760_000_000


@pytest.mark.parametrize(
    "value, expected",
    [
        (1700000000, 1700000000),
        ("1700000000", 1700000000),
        (1700000000.9, 1700000000),
        ("2023-11-14T22:13:20Z", 1700000000),
        ("2023-11-14T23:13:20+01:00", 1700000000),
        ("14.11.2023 22:13:20", 1700000000),
        ("14.11.2023", int(datetime(2023, 11, 14, tzinfo=timezone.utc).timestamp())),
    ],
)
def test_parse_timestamp_formats(value, expected) -> None:
    assert parse_timestamp(value) == expected


@pytest.mark.parametrize("value", [None, "", "not a date", "32.13.2023", True, float("nan")])
def test_parse_timestamp_rejects_garbage(value) -> None:
    assert parse_timestamp(value) is None


def test_plausibility_window() -> None:
    assert plausible_timestamp(MIN_PLAUSIBLE_TS, now=NOW) == MIN_PLAUSIBLE_TS
    assert plausible_timestamp(MIN_PLAUSIBLE_TS - 1, now=NOW) is None
    assert plausible_timestamp(NOW + FUTURE_TOLERANCE_S, now=NOW) == NOW + FUTURE_TOLERANCE_S
    assert plausible_timestamp(NOW + FUTURE_TOLERANCE_S + 1, now=NOW) is None
    assert plausible_timestamp(None, now=NOW) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        (2700, 2700),
        ("2700", 2700),
        ("00:45:00", 2700),
        ("45:00", 2700),
        ("1:02:03", 3723),
        ("", None),
        ("soon", None),
        ("1:2:3:4", None),
        (-5, None),
        (None, None),
    ],
)
def test_parse_duration(value, expected) -> None:
    assert parse_duration(value) == expected
