"""Lenient date/time parsing for date and datetime fields.

Accepted input:

- ``YYYY-MM-DD``, ``YYYY-M`` (first of the month) and
  ``YYYY-MM-DD[ Tt]H[H]:M[M][:S[S][.fraction]]``
- an optional zone suffix on the above: ``z``, ``utc``, ``gmt``, ``+HH:MM``
  or ``+HHMM``
- ``@<unix timestamp>``
- ``now``, ``today``, ``midnight``, ``noon``, ``yesterday``, ``tomorrow``
- a bare four digit number (int or string): ``HHMM`` today when that is a
  valid time, otherwise a year applied to the current moment

Everything else is rejected. Values without a zone are read in the
requested timezone; ``None`` stands for the process local zone.
"""

import re
from datetime import datetime, time, timedelta, timezone, tzinfo

_DATE_TIME = re.compile(
    r"""
    ^(?P<year>\d{4})-(?P<month>\d{1,2})
    (?:-(?P<day>\d{1,2})
        (?:[ t](?P<hour>\d{1,2}):(?P<minute>\d{1,2})
            (?::(?P<second>\d{1,2})(?:\.\d+)?)?
        )?
    )?
    \s*(?P<zone>z|utc|gmt|[+-]\d{2}:?\d{2})?$
    """,
    re.VERBOSE,
)
_TIMESTAMP = re.compile(r"^@(?P<sign>[+-]?)(?P<seconds>\d+)$")
_FOUR_DIGITS = re.compile(r"^\d{4}$")

_DAY_OFFSETS = {"today": 0, "midnight": 0, "yesterday": -1, "tomorrow": 1}


def localize(naive: datetime, tz: tzinfo | None) -> datetime:
    """Attach a timezone to a naive datetime (None means local time)."""
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def current_time(tz: tzinfo | None) -> datetime:
    """Get the current moment as an aware datetime in the given zone."""
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def _parse_zone(zone: str) -> tzinfo:
    if zone in ("z", "utc", "gmt"):
        return timezone.utc
    sign = -1 if zone[0] == "-" else 1
    digits = zone[1:].replace(":", "")
    offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * offset)


def _parse_four_digits(text: str, tz: tzinfo | None, now: datetime) -> datetime:
    hours, minutes = int(text[:2]), int(text[2:])
    if hours < 24 and minutes < 60:
        return localize(datetime.combine(now.date(), time(hours, minutes)), tz)
    return now.replace(year=int(text))


def parse_datetime(value: object, tz: tzinfo | None = None, now: datetime | None = None) -> datetime | None:
    """Parse a loosely formatted date/time value.

    Args:
        value: Input value. Only str and int are ever accepted.
        tz: Zone for naive input and relative words; None for local time.
        now: Current moment (aware); defaults to the real clock.

    Returns:
        An aware datetime, or None if the value is not a recognized date.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None

    text = value.strip().lower()
    if not text:
        return None
    if now is None:
        now = current_time(tz)
    else:
        now = now.astimezone(tz) if tz is not None else now.astimezone()

    try:
        if text == "now":
            return now
        if text in _DAY_OFFSETS:
            day = now.date() + timedelta(days=_DAY_OFFSETS[text])
            return localize(datetime.combine(day, time()), tz)
        if text == "noon":
            return localize(datetime.combine(now.date(), time(12)), tz)

        match = _TIMESTAMP.match(text)
        if match:
            seconds = int(match["seconds"]) * (-1 if match["sign"] == "-" else 1)
            return datetime.fromtimestamp(seconds, timezone.utc)

        if _FOUR_DIGITS.match(text):
            return _parse_four_digits(text, tz, now)

        match = _DATE_TIME.match(text)
        if match is None:
            return None
        parsed = datetime(
            int(match["year"]),
            int(match["month"]),
            int(match["day"] or 1),
            int(match["hour"] or 0),
            int(match["minute"] or 0),
            int(match["second"] or 0),
        )
    except (ValueError, OverflowError, OSError):
        # Out-of-range calendar values or timestamps
        return None

    if match["zone"]:
        return parsed.replace(tzinfo=_parse_zone(match["zone"]))
    return localize(parsed, tz)


def format_date(moment: datetime, tz: tzinfo | None = None) -> str:
    """Format as ``YYYY-MM-DD`` in the given zone."""
    local = moment.astimezone(tz)
    return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"


def format_datetime(moment: datetime, tz: tzinfo | None = None) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS`` in the given zone."""
    local = moment.astimezone(tz)
    return f"{format_date(local, tz)} {local.hour:02d}:{local.minute:02d}:{local.second:02d}"
