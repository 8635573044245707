# services/collaborators.py
"""
Narrow interfaces to the collaborators the billing engine depends on.

The engine never reads a global clock or an ambient current user: callers pass a
Clock and an actor id into every operation that needs them.
"""
from datetime import date, datetime, timezone
from typing import BinaryIO, Protocol


class Clock(Protocol):
     """Supplies the current UTC instant."""

     def now(self) -> datetime:
          ...


class SystemClock:
     """Clock backed by the system time, always timezone-aware UTC."""

     def now(self) -> datetime:
          return datetime.now(timezone.utc)


def today(clock: Clock) -> date:
     """Current UTC calendar date according to `clock`."""
     return clock.now().date()


class ProofStorage(Protocol):
     """Stores a proof-of-payment file and returns an opaque reference to it."""

     def store(self, stream: BinaryIO, filename: str, content_type: str) -> str:
          ...
