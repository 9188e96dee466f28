"""Injectable clocks for wall-clock business windows."""

from datetime import UTC, datetime, timedelta
from typing import Protocol

import simpy


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class SimulationClock:
    """Maps SimPy time to datetimes, offset from a fixed start instant.

    Lets tests advance the cancellation and resale windows with
    ``env.run(until=...)`` alongside the progression timers.
    """

    def __init__(self, env: simpy.Environment, start_time: datetime | None = None):
        self._env = env
        self._start_time = (start_time or datetime.now(UTC)).astimezone(UTC)

    @property
    def start_time(self) -> datetime:
        return self._start_time

    def now(self) -> datetime:
        return self._start_time + timedelta(seconds=float(self._env.now))

    def to_seconds(self, dt: datetime) -> float:
        """Convert datetime to SimPy seconds since start."""
        return (dt.astimezone(UTC) - self._start_time).total_seconds()


def ensure_utc(dt: datetime) -> datetime:
    """SQLite returns naive datetimes; treat them as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def elapsed_since(clock: Clock, start: datetime) -> timedelta:
    return clock.now() - ensure_utc(start)
