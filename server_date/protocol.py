"""
Time Sample Protocol
====================

Value types exchanged between the transport and the sync engine, plus
parsing of the server's time from HTTP response headers.

PROBE TIMELINE (all local values in ms since Unix epoch):
    request_sent_ms        local clock, just before the HEAD request goes out
    remote_time_ms         server clock, read from the response headers
    response_received_ms   local clock, as soon as the headers arrive

  Offset calculation (server time assumed to be sampled mid-flight):
    precision = (response_received_ms - request_sent_ms) / 2
    offset    = remote_time_ms + precision - response_received_ms

  Header priority:
    X-Date-MillisecondTimestamp   integer ms, preferred
    Date                          RFC 7231 date, 1 s resolution

Offset convention:
    offset = server_time - local_time
    server_time = local_time + offset
"""

import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional


# =================
# CONSTANTS
# =================

MILLISECOND_HEADER = "X-Date-MillisecondTimestamp"
DATE_HEADER = "Date"
NO_CACHE_PARAM = "noCache"


# =================
# ERRORS
# =================

class ProbeError(Exception):
    """A probe could not be sent or its response held no usable timestamp."""


# ===================
# UTILITY FUNCTIONS
# ===================

def current_time_ms() -> int:
    """Current time in milliseconds since Unix epoch."""
    return int(time.time() * 1000)


def parse_server_time(headers: Mapping[str, str]) -> int:
    """Read the server's clock from response headers.

    Args:
        headers: Response headers (case-insensitive mapping, e.g. aiohttp's
            CIMultiDictProxy).

    Returns:
        Server time in ms since Unix epoch.

    Raises:
        ProbeError: if neither header holds a usable timestamp.
    """
    raw_ms = headers.get(MILLISECOND_HEADER)
    if raw_ms:
        try:
            value = int(raw_ms)
        except ValueError:
            value = 0
        if value:
            return value
        # Zero or garbage: fall back to the Date header

    raw_date = headers.get(DATE_HEADER)
    if not raw_date:
        raise ProbeError("Response carries no Date header")
    try:
        parsed = parsedate_to_datetime(raw_date)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Unparseable Date header {raw_date!r}: {e}") from e
    if parsed is None:
        raise ProbeError(f"Unparseable Date header {raw_date!r}")
    if parsed.tzinfo is None:
        # "-0000" zone: UTC with unknown local offset
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


# =================
# DATA CLASSES
# =================

@dataclass(frozen=True)
class Offset:
    """A clock correction and its uncertainty.

    ``value`` is added to local time to estimate server time. ``precision``
    is half the round-trip latency of the probe that produced it; lower is
    more trustworthy, ``None`` means unknown.
    """

    value: float
    precision: Optional[float] = None

    @classmethod
    def bootstrap(
        cls,
        server_now_ms: Optional[int] = None,
        loaded_at_ms: Optional[int] = None,
        requested_at_ms: Optional[int] = None,
    ) -> 'Offset':
        """Initial estimate from a server timestamp captured at load time.

        Args:
            server_now_ms:   Server time embedded in the loaded payload.
            loaded_at_ms:    Local time when the payload finished loading.
            requested_at_ms: Local time when the payload was requested, if known.
        """
        if server_now_ms is None or loaded_at_ms is None:
            return cls(0.0)
        value = float(server_now_ms - loaded_at_ms)
        if requested_at_ms is None:
            return cls(value)
        precision = (loaded_at_ms - requested_at_ms) / 2
        return cls(value + precision, precision)

    def is_better_than(self, other: Optional['Offset']) -> bool:
        """True if this offset's precision is strictly lower than ``other``'s.

        An unknown precision counts as infinitely imprecise.
        """
        if self.precision is None:
            return False
        if other is None or other.precision is None:
            return True
        return self.precision < other.precision

    def __float__(self) -> float:
        return float(self.value)

    def __add__(self, other) -> float:
        return self.value + float(other)

    __radd__ = __add__

    def __sub__(self, other) -> float:
        return self.value - float(other)

    def __rsub__(self, other) -> float:
        return float(other) - self.value

    def __lt__(self, other) -> bool:
        return self.value < float(other)

    def __le__(self, other) -> bool:
        return self.value <= float(other)

    def __gt__(self, other) -> bool:
        return self.value > float(other)

    def __ge__(self, other) -> bool:
        return self.value >= float(other)

    def __str__(self) -> str:
        if self.precision is None:
            return f"{self.value:g} ms"
        return f"{self.value:g} +/- {self.precision:g} ms"


@dataclass(frozen=True)
class ProbeSample:
    """One round-trip timing probe as measured by the transport."""

    remote_time_ms: int         # Server clock
    request_sent_ms: int        # Local clock
    response_received_ms: int   # Local clock

    @property
    def precision(self) -> float:
        """Half the measured round-trip latency (ms)."""
        return (self.response_received_ms - self.request_sent_ms) / 2

    def to_offset(self) -> Offset:
        """Candidate offset assuming the server sampled its clock mid-flight."""
        precision = self.precision
        return Offset(
            value=self.remote_time_ms + precision - self.response_received_ms,
            precision=precision,
        )
