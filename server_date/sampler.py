"""
Sampler
=======

Runs one synchronization round: sends probes one after another and keeps
the candidate offset with the lowest precision (least latency).
"""

import logging
from typing import Callable, Optional, Protocol

from .protocol import Offset, ProbeError, ProbeSample

logger = logging.getLogger(__name__)

ProbeCallback = Callable[[int, Optional[Offset]], None]


class ProbeTransport(Protocol):
    """Anything that can time one round trip to the server."""

    async def send_probe(self) -> ProbeSample:
        ...


class Sampler:

    def __init__(self, transport: ProbeTransport):
        self._transport = transport

    async def run_round(
        self,
        sample_count: int,
        on_probe: Optional[ProbeCallback] = None,
    ) -> Optional[Offset]:
        """Probe ``sample_count`` times and return the best candidate.

        Probes are strictly sequential. A probe whose transport raises is
        discarded but still uses up one iteration.

        Args:
            sample_count: Number of probes to send.
            on_probe:     Called after each probe with (iteration, offset or None).

        Returns:
            The lowest-precision offset, or None if every probe failed.
        """
        best: Optional[Offset] = None

        for iteration in range(1, sample_count + 1):
            try:
                sample = await self._transport.send_probe()
            except ProbeError as e:
                logger.warning(f"Probe {iteration}/{sample_count} discarded: {e}")
                if on_probe:
                    on_probe(iteration, None)
                continue
            except Exception as e:
                logger.error(f"Probe {iteration}/{sample_count} transport error, discarded: {e!r}")
                if on_probe:
                    on_probe(iteration, None)
                continue

            candidate = sample.to_offset()
            logger.debug(f"Sample {iteration}/{sample_count}: offset {candidate}")

            # Ties go to the later sample
            if best is None or candidate.precision <= best.precision:
                best = candidate
            if on_probe:
                on_probe(iteration, candidate)

        return best
