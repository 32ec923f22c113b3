"""
Datetime Projection
===================

Read-only ``datetime`` accessors evaluated at the synchronized time.

Every accessor equals the same accessor on
``datetime.fromtimestamp(now() / 1000).astimezone()``. Mutating
operations (``replace``, ``astimezone``, arithmetic) are not provided.
"""

from datetime import datetime, timezone, tzinfo
from typing import Optional

# datetime attributes exposed as properties
_ATTRIBUTES = (
    "year", "month", "day", "hour", "minute", "second", "microsecond",
    "tzinfo", "fold",
)

# datetime methods that only read state
_METHODS = (
    "date", "time", "timetz", "timetuple", "utctimetuple", "toordinal",
    "timestamp", "weekday", "isoweekday", "isocalendar", "isoformat",
    "ctime", "strftime", "utcoffset", "tzname", "dst",
)


def _forward_attribute(name: str) -> property:
    def getter(self):
        return getattr(self.datetime(), name)
    getter.__name__ = name
    getter.__doc__ = f"``datetime.{name}`` of the synchronized time."
    return property(getter)


def _forward_method(name: str):
    def method(self, *args, **kwargs):
        return getattr(self.datetime(), name)(*args, **kwargs)
    method.__name__ = name
    method.__doc__ = f"``datetime.{name}()`` of the synchronized time."
    return method


class DatetimeProjection:
    """Mixin for objects with a ``now()`` returning epoch milliseconds."""

    def now(self) -> int:
        raise NotImplementedError

    def datetime(self, tz: Optional[tzinfo] = None) -> datetime:
        """Synchronized time as an aware datetime (local zone by default)."""
        moment = datetime.fromtimestamp(self.now() / 1000, tz=timezone.utc)
        return moment.astimezone(tz)

    def __str__(self) -> str:
        return self.ctime()


for _name in _ATTRIBUTES:
    setattr(DatetimeProjection, _name, _forward_attribute(_name))
for _name in _METHODS:
    setattr(DatetimeProjection, _name, _forward_method(_name))
