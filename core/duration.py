# ================================================================
# File     : duration.py
# Purpose  : ISO-8601 duration codec (days/hours/minutes/seconds)
# Notes    : Graph speaks "PT8H"; operators read "8 hours".
#            No years/months/weeks: PIM windows never need them.
# ================================================================

import re
from datetime import timedelta
from typing import Optional

from core.errors import FormatError

_DURATION_RE = re.compile(
    r"^P"
    r"(?:(?P<days>\d+)D)?"
    r"(?P<time>T"
    r"(?:(?P<tdays>\d+)D)?"
    r"(?:(?P<hours>\d+)H)?"
    r"(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)

_LONG_UNITS = (("day", 86400), ("hour", 3600), ("minute", 60))
_SHORT_UNITS = (("d", 86400), ("h", 3600), ("m", 60))

EXPIRED = "Expired"
NOT_APPLICABLE = "N/A"


# ================================================================
# Function: fncParseDuration
# Purpose : Parse "PT4H30M" / "P1DT2H" / "PT1D" into a timedelta
# Notes   : Raises FormatError, never returns a silent zero
# ================================================================
def fncParseDuration(text: str) -> timedelta:
    if not isinstance(text, str):
        raise FormatError(text, "expected a string")

    raw = text.strip().upper()
    if not raw:
        raise FormatError(text, "empty string")
    if raw.startswith("-") or raw.startswith("+"):
        raise FormatError(text, "signed durations are not supported")
    if not raw.startswith("P"):
        raise FormatError(text, "must start with 'P'")
    if any(unit in raw.split("T", 1)[0] for unit in ("Y", "W")) or re.match(r"^P(\d+D)?\d+M", raw):
        raise FormatError(text, "years, months and weeks are not supported")

    m = _DURATION_RE.match(raw)
    if not m:
        raise FormatError(text, "expected P[nD][T[nD][nH][nM][nS]]")

    parts = m.groupdict()
    if parts["days"] and parts["tdays"]:
        raise FormatError(text, "days given twice")
    if parts["time"] is not None and parts["time"] == "T":
        raise FormatError(text, "'T' must be followed by at least one component")

    values = [parts[k] for k in ("days", "tdays", "hours", "minutes", "seconds")]
    if not any(v is not None for v in values):
        raise FormatError(text, "no components")

    days = int(parts["days"] or parts["tdays"] or 0)
    return timedelta(
        days=days,
        hours=int(parts["hours"] or 0),
        minutes=int(parts["minutes"] or 0),
        seconds=float(parts["seconds"] or 0),
    )


# ================================================================
# Function: fncFormatDuration
# Purpose : Render a timedelta for humans
# Notes   : None -> "N/A"; <= 0 -> "Expired". Keep the two apart:
#           "no end" and "already ended" mean different things.
# ================================================================
def fncFormatDuration(duration: Optional[timedelta], short: bool = False) -> str:
    if duration is None:
        return NOT_APPLICABLE

    total = int(duration.total_seconds())
    if total <= 0:
        return EXPIRED

    units = _SHORT_UNITS if short else _LONG_UNITS
    parts = []
    remainder = total
    for name, size in units:
        count, remainder = divmod(remainder, size)
        if count:
            parts.append(f"{count}{name}" if short else _plural(count, name))

    if not parts:
        # only seconds left
        return f"{remainder}s" if short else _plural(remainder, "second")

    return " ".join(parts) if short else ", ".join(parts)


# ================================================================
# Function: fncToIsoDuration
# Purpose : Render a positive timedelta back into "PT..." form
# Notes   : Used for scheduleInfo.expiration.duration payloads
# ================================================================
def fncToIsoDuration(duration: timedelta) -> str:
    if duration is None or duration.total_seconds() <= 0:
        raise FormatError(str(duration), "only positive durations can be encoded")

    days = duration.days
    hours, rest = divmod(duration.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    frac = duration.microseconds

    out = "P"
    if days:
        out += f"{days}D"

    time_part = ""
    if hours:
        time_part += f"{hours}H"
    if minutes:
        time_part += f"{minutes}M"
    if seconds or frac:
        if frac:
            secs = f"{seconds + frac / 1_000_000:.6f}".rstrip("0").rstrip(".")
        else:
            secs = str(seconds)
        time_part += f"{secs}S"

    if time_part:
        out += "T" + time_part
    return out


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"
