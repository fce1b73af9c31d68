"""editorsync watch — follow a remote tree from the command line."""

from __future__ import annotations

import argparse
import asyncio
import logging

from editorsync import __version__
from editorsync.config import WATCH_MODES, settings
from editorsync.errors import RemoteError
from editorsync.schemas.changes import ChangeEvent
from editorsync.services import get_transport, get_tree_cache, init_services, shutdown_services

logger = logging.getLogger(__name__)


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Noisy third-party loggers to WARNING
    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _log_change(event: ChangeEvent) -> None:
    if event.old_path:
        logger.info("%-8s %s -> %s", event.kind.value, event.old_path, event.path)
    else:
        logger.info("%-8s %s", event.kind.value, event.path)


def _log_connectivity(connected: bool) -> None:
    logger.info("Connectivity: %s (%s)", "online" if connected else "offline", get_transport().state.value)


def _log_error(error: RemoteError) -> None:
    logger.error("Change feed error [%s]: %s", error.kind.value, error.message)


async def watch(path: str, mode: str, interval_ms: int, base_url: str | None) -> None:
    """Watch until cancelled, logging events and tree refreshes."""
    await init_services(path=path, mode=mode, poll_interval_ms=interval_ms, base_url=base_url)
    transport = get_transport()
    transport.add_change_listener(_log_change)
    transport.add_connectivity_listener(_log_connectivity)
    transport.add_error_listener(_log_error)

    cache = get_tree_cache()
    last_fingerprint = cache.fingerprint
    try:
        while True:
            await asyncio.sleep(1)
            if cache.fingerprint != last_fingerprint:
                last_fingerprint = cache.fingerprint
                logger.info("Tree %s now has %d entries (fingerprint %s)",
                            cache.path, len(cache.entries()), last_fingerprint)
    finally:
        transport.remove_change_listener(_log_change)
        transport.remove_connectivity_listener(_log_connectivity)
        transport.remove_error_listener(_log_error)
        logger.info("Stopping watch: %s", transport.status())
        await shutdown_services()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Follow changes under a remote editor tree")
    parser.add_argument("--path", default=settings.watch_path, help="Directory to watch (default: %(default)s)")
    parser.add_argument(
        "--mode",
        choices=WATCH_MODES,
        default=settings.watch_mode,
        help="push, pull, or auto (push with polling fallback; default: %(default)s)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.poll_interval_ms,
        help="Poll interval in milliseconds (default: %(default)s)",
    )
    parser.add_argument("--url", default=None, help=f"Service URL (default: {settings.service_url})")
    parser.add_argument("--log-level", default=None, help="Override EDITORSYNC_LOG_LEVEL")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger.info("editorsync v%s", __version__)
    try:
        asyncio.run(watch(args.path, args.mode, args.interval, args.url))
    except KeyboardInterrupt:
        logger.info("Stopped")


def run() -> None:
    main()


if __name__ == "__main__":
    run()
