"""Change sources — the push stream and the poller behind one start/stop interface."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from editorsync.errors import NetworkFailure, RemoteError
from editorsync.schemas.changes import ChangeEvent, Cursor, FrameType

if TYPE_CHECKING:
    from editorsync.services.remote import RemoteFileService

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]
ConnectivityCallback = Callable[[bool], None]
ErrorCallback = Callable[[RemoteError], None]


class ChangeSource(ABC):
    """Delivers change events, connectivity and errors for one watched path.

    Once stopped (or failed), a source never invokes its callbacks again.
    """

    def __init__(
        self,
        remote: RemoteFileService,
        path: str,
        on_change: ChangeCallback,
        on_connectivity: ConnectivityCallback,
        on_error: ErrorCallback,
    ):
        self._remote = remote
        self.path = path
        self._on_change = on_change
        self._on_connectivity = on_connectivity
        self._on_error = on_error
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @abstractmethod
    def start(self) -> None:
        """Begin delivery. Must be called from within the running event loop."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivery and release the connection or timer."""


class PushChangeSource(ChangeSource):
    """Long-lived push stream. Reports connectivity false then an error when it drops."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is not None:
            return
        self._active = True
        self._task = asyncio.create_task(self._run())
        logger.debug("Push stream requested for %s", self.path)

    async def stop(self) -> None:
        self._active = False
        if self._task:
            if self._task is not asyncio.current_task():
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None

    async def _run(self) -> None:
        try:
            async with self._remote.watch_changes(self.path) as frames:
                if not self._active:
                    return
                logger.info("Push stream open for %s", self.path)
                self._on_connectivity(True)

                async for frame in frames:
                    if not self._active:
                        return
                    if frame.type == FrameType.CONNECTED:
                        self._on_connectivity(True)
                    elif frame.data is not None:
                        self._on_change(frame.data)
            failure: RemoteError = NetworkFailure("Push stream ended", path=self.path)
        except RemoteError as e:
            failure = e

        if not self._active:
            return
        self._active = False
        logger.warning("Push stream for %s failed: %s", self.path, failure.message)
        self._on_connectivity(False)
        self._on_error(failure)


class PollChangeSource(ChangeSource):
    """Interval poller that asks "what changed since cursor" on each tick.

    The first tick fires immediately. Ticks never overlap: a tick that fires
    while the previous round trip is outstanding is skipped, so each tick
    starts from the cursor the previous one produced.
    """

    def __init__(
        self,
        *args,
        interval_seconds: float,
        cursor: Cursor | None = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self._interval = interval_seconds
        self.cursor = cursor or Cursor()
        self._in_flight = False
        self._scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._active = True
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._scheduler.add_job(
            self.poll_once,
            "interval",
            seconds=self._interval,
            next_run_time=datetime.now(timezone.utc),
            id="poll_changes",
            name=f"Poll changes under {self.path}",
        )
        self._scheduler.start()
        logger.info("Polling %s every %.1fs", self.path, self._interval)

    async def stop(self) -> None:
        self._active = False
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.debug("Poller for %s stopped", self.path)

    async def poll_once(self) -> bool:
        """Run one tick. Returns True when the cursor advanced."""
        if not self._active:
            return False
        if self._in_flight:
            logger.debug("Poll tick for %s skipped, previous tick outstanding", self.path)
            return False

        self._in_flight = True
        cursor = self.cursor
        try:
            response = await self._remote.poll_changes(
                self.path,
                since_timestamp=cursor.timestamp or None,
                last_fingerprint=cursor.fingerprint or None,
            )
        except RemoteError as e:
            if self._active:
                logger.warning("Poll of %s failed: %s", self.path, e.message)
                self._on_connectivity(False)
                self._on_error(e)
            return False
        finally:
            self._in_flight = False

        if not self._active:
            logger.debug("Discarding poll result for %s after stop", self.path)
            return False

        self._on_connectivity(True)
        for event in response.changes:
            self._on_change(event)
            if not self._active:
                return False
        self.cursor = cursor.advance(response)
        if response.changes:
            logger.debug("Poll of %s: %d change(s)", self.path, len(response.changes))
        return True
