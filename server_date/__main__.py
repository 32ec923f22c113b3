"""
Entry point for `python -m server_date`.

Usage:
    python -m server_date --url http://localhost:8080/ [--samples 10] [--interval 3600000]
"""

import asyncio
import argparse
import logging
import signal
import sys

from .clock import ServerDate
from .config import SyncConfig
from .transport import HttpProbeTransport

logger = logging.getLogger("ServerDate")


def parse_args(argv=None):
    defaults = SyncConfig()
    parser = argparse.ArgumentParser(description="ServerDate - synchronized server clock")
    parser.add_argument("--url", "-u", default="http://localhost:8080/")
    parser.add_argument("--samples", "-s", type=int, default=defaults.synchronization_request_samples,
                        help="Probes per sync session")
    parser.add_argument("--interval", "-i", type=float, default=defaults.synchronization_interval_delay,
                        help="Delay between scheduled syncs (ms)")
    parser.add_argument("--timeout", type=float, default=defaults.synchronization_timeout,
                        help="Sync session timeout (ms)")
    parser.add_argument("--report-every", type=float, default=5.0,
                        help="Seconds between status lines")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args(argv)


def _on_sync(success, new_target, old_target):
    if success:
        logger.info(f"Synchronized: target {new_target} (was {old_target})")
    else:
        logger.warning(f"Synchronization failed, keeping {new_target}")


async def run(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    print(f"URL:      {args.url}")
    print(f"Samples:  {args.samples}")
    print(f"Interval: {args.interval:g} ms\n")

    config = SyncConfig(
        synchronization_request_samples=args.samples,
        synchronization_interval_delay=args.interval,
        synchronization_timeout=args.timeout,
    )
    clock = ServerDate(HttpProbeTransport(args.url), config=config)
    clock.on(_on_sync)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await clock.start()

        async def status_printer():
            while not shutdown.is_set():
                await asyncio.sleep(args.report_every)
                precision = clock.precision()
                prec = f"{precision:.1f}ms" if precision is not None else "unknown"
                logger.info(f"Server time: {clock.isoformat(timespec='milliseconds')} "
                            f"(+/- {prec}, offset {clock.offset:.1f}ms)")
                logger.info(f"Stats: {clock.stats}")

        task = asyncio.create_task(status_printer())
        await shutdown.wait()
        task.cancel()
    finally:
        await clock.close()

    return 0


def main():
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
