"""
Test doubles shared by the ServerDate tests.
"""

import asyncio

from server_date.protocol import ProbeSample

START_MS = 1_700_000_000_000


class FakeClock:
    """Controllable local clock returning epoch milliseconds."""

    def __init__(self, start: int = START_MS):
        self.ms = start

    def __call__(self) -> int:
        return self.ms

    def advance(self, ms: int):
        self.ms += ms


class ScriptedTransport:
    """Probe transport replaying a script of outcomes.

    Each script entry is either an ``(offset, precision)`` pair, producing a
    sample whose candidate offset is exactly ``offset`` with the given
    precision, or an exception instance to raise. When the script runs out,
    ``default`` is used. With ``hang=True`` every probe waits forever.
    """

    def __init__(self, clock: FakeClock, script=(), default=(0, 10), hang: bool = False):
        self.clock = clock
        self.script = list(script)
        self.default = default
        self.hang = hang
        self.calls = 0

    async def send_probe(self) -> ProbeSample:
        self.calls += 1
        if self.hang:
            await asyncio.Event().wait()
        await asyncio.sleep(0)

        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item

        offset, precision = item
        sent = self.clock()
        received = sent + 2 * precision
        return ProbeSample(
            remote_time_ms=received - precision + offset,
            request_sent_ms=sent,
            response_received_ms=received,
        )


class Completion:
    """Sync callback that resolves a future with its first invocation."""

    def __init__(self):
        self.future = asyncio.get_running_loop().create_future()

    def __call__(self, success, new_target, old_target):
        if not self.future.done():
            self.future.set_result((success, new_target, old_target))

    async def wait(self, timeout: float = 2.0):
        return await asyncio.wait_for(self.future, timeout)
