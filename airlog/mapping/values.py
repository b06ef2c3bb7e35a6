"""AIRLOG — Scalar Coercion for Extracted Values."""

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

_NUMERIC = re.compile(r"-?\d+(\.\d+)?")
_ISO_DURATION = re.compile(
    r"PT(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?(?:(\d+(?:\.\d+)?)S)?",
    re.IGNORECASE,
)
_CLOCK_DURATION = re.compile(r"(?:(\d+):)?(\d{1,2}):(\d{2})")

TIMESTAMP_FORMATS = (
    "%d %b %Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
)


def coerce_text(value: Any) -> Optional[str]:
    """Convert a resolved value into a trimmed string, ``None`` if unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        # XML element with attributes
        return coerce_text(value.get("#text"))
    if isinstance(value, list):
        return coerce_text(value[0]) if value else None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


# ── Timestamps ──


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch(ts: float) -> Optional[datetime]:
    try:
        ts = float(ts)
        # Epoch millis are ~1.7e12, epoch seconds ~1.7e9
        if abs(ts) > 100_000_000_000:
            ts = ts / 1000
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse common absolute timestamp formats into an aware datetime."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(value)

    text = coerce_text(value)
    if not text:
        return None
    if _NUMERIC.fullmatch(text):
        return _from_epoch(float(text))

    iso = text[:-1] + "+00:00" if text[-1] in "Zz" else text
    try:
        return _as_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    try:
        return _as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    for fmt in TIMESTAMP_FORMATS:
        try:
            return _as_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


# ── Durations ──


def _normalize_duration(value: float) -> Optional[int]:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    raw = int(round(value))
    if raw <= 0:
        return None
    if raw > 1_000_000_000:  # nanoseconds
        seconds = raw // 1_000_000_000
    elif raw > 100_000:  # milliseconds
        seconds = raw // 1000
    else:
        seconds = raw
    return seconds if seconds > 0 else None


def parse_duration(value: Any) -> Optional[int]:
    """Parse a track duration into whole seconds."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _normalize_duration(value)

    text = coerce_text(value)
    if not text:
        return None

    if text.upper().startswith("PT"):
        match = _ISO_DURATION.fullmatch(text)
        if not match or not any(match.groups()):
            return None
        hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
        total_seconds = hours * 3600 + minutes * 60 + seconds
        if not math.isfinite(total_seconds):
            return None
        total = int(round(total_seconds))
        return total if total > 0 else None

    match = _CLOCK_DURATION.fullmatch(text)
    if match:
        hours = int(match.group(1) or 0)
        total = hours * 3600 + int(match.group(2)) * 60 + int(match.group(3))
        return total if total > 0 else None

    if _NUMERIC.fullmatch(text):
        return _normalize_duration(float(text))
    return None
