"""Human-scaled sizes and durations shared by the text and HTML renderers."""

from __future__ import annotations

import math

from rich.filesize import decimal

_SI_UNITS = {
    "B": 1,
    "kB": 1000,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "PB": 1000**5,
    "EB": 1000**6,
    "ZB": 1000**7,
    "YB": 1000**8,
    "KiB": 1024,
    "MiB": 1024**2,
    "GiB": 1024**3,
    "TiB": 1024**4,
    "PiB": 1024**5,
    "EiB": 1024**6,
}


def format_size(size: int) -> str:
    """Render a byte count with decimal SI units, e.g. ``5.3 kB``."""

    return decimal(size)


def format_duration(seconds: float) -> str:
    """Render a duration the way an operator reads it at a glance.

    Sub-second values are shown in milliseconds, values below a minute in
    seconds with one decimal, anything longer as a clock value with an
    optional day prefix.
    """

    if seconds < 0 or math.isnan(seconds):
        seconds = 0.0
    millis = round(seconds * 1000)
    if millis < 1000:
        return f"{millis}ms"
    # Units are picked after rounding: 59.96 reads 1:00
    tenths = round(seconds, 1)
    if tenths < 60:
        return f"{tenths:.1f}s"

    total = round(seconds)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)
    if days:
        return f"{days}d {hours}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_si_bytes(line: str) -> int | None:
    """Return the first ``<number> <unit>`` byte quantity found in *line*."""

    words = line.split()
    for value, unit in zip(words, words[1:]):
        multiplier = _SI_UNITS.get(unit.rstrip(",.;"))
        if multiplier is None:
            continue
        try:
            number = float(value)
        except ValueError:
            continue
        if number < 0 or not math.isfinite(number):
            continue
        return round(number * multiplier)
    return None


__all__ = ["format_duration", "format_size", "parse_si_bytes"]
