from __future__ import annotations

import pytest

from borgreport.core.formatting import format_duration, format_size, parse_si_bytes


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0.0, "0ms"),
        (0.25, "250ms"),
        (12.54, "12.5s"),
        (65, "1:05"),
        (3_725, "1:02:05"),
        (90_061, "1d 1:01:01"),
        (0.9996, "1.0s"),
        (59.96, "1:00"),
        (59.94, "59.9s"),
    ],
)
def test_format_duration(seconds: float, expected: str) -> None:
    assert format_duration(seconds) == expected


def test_format_size_uses_decimal_units() -> None:
    assert format_size(5_300) == "5.3 kB"
    assert format_size(2_000_000) == "2.0 MB"


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("compaction freed about 3.4 kB repository space.", 3_400),
        ("freed 12 B", 12),
        ("freed 1.5 MiB", 1_572_864),
        ("nothing to see here", None),
        ("segment 12 of 40 done", None),
    ],
)
def test_parse_si_bytes(line: str, expected: int | None) -> None:
    assert parse_si_bytes(line) == expected
