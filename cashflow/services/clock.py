"""
Clock collaborator.

The engine never reads the system date directly; it asks a Clock, so
tests and replays can pin "today".
"""

from abc import ABC, abstractmethod
from datetime import date


class Clock(ABC):

    @abstractmethod
    def today(self) -> date:
        pass


class SystemClock(Clock):
    """Local calendar date of the running process."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Always returns the date it was built with."""

    def __init__(self, fixed: date):
        self._fixed = fixed

    def today(self) -> date:
        return self._fixed

    def set(self, fixed: date) -> None:
        self._fixed = fixed
