"""
ServerDate Package
==================

Keeps a continuously corrected estimate of a time server's clock,
exposed through read-only datetime-style accessors.

Modules:
    protocol    - Offset/probe value types and header parsing
    config      - Process-wide sync configuration
    transport   - aiohttp HEAD-request probe transport
    sampler     - One sync round, keeps the lowest-latency sample
    controller  - Session lifecycle, timeout and result policy
    listeners   - Sync-complete callback registry
    tracker     - Current/target offset state
    amortizer   - Gradual convergence of current toward target
    tamper      - Local clock change detection
    stats       - Probe and session statistics
    projection  - Read-only datetime accessors
    clock       - ServerDate orchestration
"""

from .protocol import (
    Offset,
    ProbeSample,
    ProbeError,
    current_time_ms,
    parse_server_time,
)
from .config import SyncConfig
from .transport import HttpProbeTransport
from .sampler import Sampler, ProbeTransport
from .controller import SyncController, SyncRequest, SyncSession, SyncState
from .listeners import ListenerRegistry
from .tracker import OffsetTracker
from .amortizer import Amortizer
from .tamper import ClockChangeDetector
from .stats import SyncStats
from .clock import ServerDate

__all__ = [
    "Offset",
    "ProbeSample",
    "ProbeError",
    "current_time_ms",
    "parse_server_time",
    "SyncConfig",
    "HttpProbeTransport",
    "Sampler",
    "ProbeTransport",
    "SyncController",
    "SyncRequest",
    "SyncSession",
    "SyncState",
    "ListenerRegistry",
    "OffsetTracker",
    "Amortizer",
    "ClockChangeDetector",
    "SyncStats",
    "ServerDate",
]
