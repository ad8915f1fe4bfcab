"""Small helpers shared across the SDK."""

import asyncio
import inspect
import json
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Union

from pydantic_core import to_jsonable_python

DurationLike = Union[int, float, str, timedelta]

# Largest period first; anything below a second is dropped.
_PERIODS = (
    ("w", 7 * 24 * 60 * 60 * 1000),
    ("d", 24 * 60 * 60 * 1000),
    ("h", 60 * 60 * 1000),
    ("m", 60 * 1000),
    ("s", 1000),
)

_UNIT_MS = {
    "ms": 1,
    "s": 1000,
    "sec": 1000,
    "m": 60 * 1000,
    "min": 60 * 1000,
    "h": 60 * 60 * 1000,
    "hr": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|sec|min|hr|s|m|h|d|w)", re.IGNORECASE)

# Pending loop iterations to let run before treating the handler as settled.
PENDING_ITERATIONS = 100


def duration_to_ms(value: DurationLike) -> float:
    """Convert seconds, a ``timedelta`` or a compact string (``"1h30m"``) to ms."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, timedelta):
        return value.total_seconds() * 1000

    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"Invalid duration: {value!r}")
        return float(value) * 1000

    if isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"\d+(?:\.\d+)?", text):
            return float(text) * 1000

        total = 0.0
        consumed = 0
        for match in _DURATION_PART.finditer(text):
            if text[consumed:match.start()].strip():
                raise ValueError(f"Invalid duration string: {value!r}")
            total += float(match.group(1)) * _UNIT_MS[match.group(2).lower()]
            consumed = match.end()

        if consumed == 0 or text[consumed:].strip():
            raise ValueError(f"Invalid duration string: {value!r}")
        return total

    raise ValueError(f"Invalid duration: {value!r}")


def time_str(value: Union[DurationLike, datetime]) -> str:
    """Render a duration as an orchestrator time string, or a datetime as ISO-8601."""
    if isinstance(value, datetime):
        return to_iso(value)

    remaining = int(duration_to_ms(value))
    out = ""
    for suffix, period in _PERIODS:
        count, remaining = divmod(remaining, period)
        if count > 0:
            out += f"{count}{suffix}"

    return out or "0s"


def to_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: Union[datetime, str]) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date or date string: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date or date string: {value!r}") from None


def to_jsonable(value: Any) -> Any:
    """Coerce a value into plain JSON types (models, dataclasses, datetimes)."""
    return to_jsonable_python(value, fallback=str)


def stringify(value: Any) -> str:
    return json.dumps(to_jsonable(value), separators=(",", ":"))


async def maybe_await(value: Union[Any, Awaitable[Any]]) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def run_as_awaitable(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``fn`` and await the result if it is awaitable."""
    return await maybe_await(fn(*args, **kwargs))


async def resolve_after_pending(iterations: int = PENDING_ITERATIONS) -> None:
    """
    Yield to the event loop until work already scheduled has had a chance to run.

    Every iteration lets any callbacks woken by resolved futures run, so chains
    of ``await``/``gather`` a few levels deep settle before this returns.
    """
    for _ in range(iterations):
        await asyncio.sleep(0)
