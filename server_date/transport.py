"""
HTTP Probe Transport
====================

Times a HEAD request against the time server with aiohttp and reads the
server clock from the response headers.

A unique ``noCache`` query parameter defeats intermediate caches, so every
probe reaches the origin server.
"""

import asyncio
import logging
from typing import Callable, Optional

import aiohttp

from .protocol import (
    NO_CACHE_PARAM,
    ProbeError,
    ProbeSample,
    current_time_ms,
    parse_server_time,
)

logger = logging.getLogger(__name__)


class HttpProbeTransport:
    """Round-trip probe over HTTP HEAD.

    Args:
        url:         URL of the time server (any resource that answers HEAD).
        session:     Optional shared aiohttp session; when omitted the
                     transport creates and owns one.
        timeout:     Per-request timeout in seconds.
        local_clock: Source of local time in ms.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
        local_clock: Callable[[], int] = current_time_ms,
    ):
        self.url = url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._local_clock = local_clock

    # ---- Lifecycle -----------------------------------------------------------

    async def start(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def __aenter__(self) -> 'HttpProbeTransport':
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ---- Probing -------------------------------------------------------------

    async def send_probe(self) -> ProbeSample:
        """Send one HEAD request and time it.

        Raises:
            ProbeError: on connection failure, non-200 status, or missing
                timestamp headers.
        """
        await self.start()

        params = {NO_CACHE_PARAM: str(self._local_clock())}
        request_sent = self._local_clock()
        try:
            async with self._session.head(
                self.url,
                params=params,
                timeout=self._timeout,
            ) as resp:
                # aiohttp yields the response once headers are in
                response_received = self._local_clock()
                if resp.status != 200:
                    raise ProbeError(f"Server request error: {resp.status}")
                remote_time = parse_server_time(resp.headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProbeError(f"Request failed: {e}") from e

        return ProbeSample(
            remote_time_ms=remote_time,
            request_sent_ms=request_sent,
            response_received_ms=response_received,
        )
