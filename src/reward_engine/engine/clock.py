"""Epoch and cycle derivation from wall-clock time.

An epoch is one calendar day in a fixed reference timezone, identified by its
ISO date (``YYYY-MM-DD``). Each epoch is divided into ``N = 86400 / width``
cycles numbered ``1..N``. Time since local midnight is measured in UTC, so a
zone with daylight saving time would yield 23- and 25-hour epochs; the
settings only admit fixed-offset zones, where every epoch lasts exactly one
day. Everything here is a pure function of the moment passed in, so
independent processes derive the same slot without talking to each other.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo

SECONDS_PER_DAY = 86_400


def cycles_per_epoch(cycle_seconds: int) -> int:
    """Number of cycles in one epoch for the given slot width."""
    if cycle_seconds <= 0 or SECONDS_PER_DAY % cycle_seconds != 0:
        msg = f"cycle width must divide {SECONDS_PER_DAY}, got {cycle_seconds}"
        raise ValueError(msg)
    return SECONDS_PER_DAY // cycle_seconds


def parse_epoch_id(epoch_id: str) -> date:
    """Parse an epoch id, raising ``ValueError`` unless it is ``YYYY-MM-DD``."""
    if len(epoch_id) != 10:
        msg = f"invalid epoch id: {epoch_id!r}"
        raise ValueError(msg)
    return date.fromisoformat(epoch_id)


def epoch_and_cycle_at(
    moment: datetime,
    *,
    cycle_seconds: int,
    tz: tzinfo = UTC,
) -> tuple[str, int]:
    """Return ``(epoch_id, cycle_seq)`` for *moment*.

    The sequence is ``floor(seconds since local midnight / width) + 1``, with
    the seconds counted in UTC. It is capped at ``N``: under a zone with
    daylight saving the extra hour of a 25-hour day folds into cycle ``N``.
    A 23-hour day ends before its last cycles start.

    Args:
        moment: An aware datetime. Naive values are taken as UTC.
        cycle_seconds: Slot width in seconds.
        tz: The epoch reference timezone.
    """
    n = cycles_per_epoch(cycle_seconds)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    local = moment.astimezone(tz)
    elapsed = int(_seconds_since_midnight(local, tz))
    seq = min(elapsed // cycle_seconds + 1, n)
    return local.date().isoformat(), seq


def cycle_window(
    epoch_id: str,
    seq: int,
    *,
    cycle_seconds: int,
    tz: tzinfo = UTC,
) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` window of a cycle as UTC datetimes."""
    n = cycles_per_epoch(cycle_seconds)
    if not 1 <= seq <= n:
        msg = f"cycle {seq} out of range 1..{n}"
        raise ValueError(msg)
    day = parse_epoch_id(epoch_id)
    midnight = datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)
    start = midnight + timedelta(seconds=(seq - 1) * cycle_seconds)
    return start, start + timedelta(seconds=cycle_seconds)


def seconds_until_next_cycle(
    moment: datetime,
    *,
    cycle_seconds: int,
    tz: tzinfo = UTC,
) -> float:
    """Seconds from *moment* until the next cycle boundary."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    elapsed = _seconds_since_midnight(moment.astimezone(tz), tz)
    return cycle_seconds - (elapsed % cycle_seconds)


def _seconds_since_midnight(local: datetime, tz: tzinfo) -> float:
    # same-tzinfo subtraction ignores offset changes, so compare in UTC
    midnight = datetime.combine(local.date(), time.min, tzinfo=tz)
    return (local.astimezone(UTC) - midnight.astimezone(UTC)).total_seconds()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
