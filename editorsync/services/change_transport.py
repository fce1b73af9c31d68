"""Change transport — one change feed over push with automatic fallback to polling."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from editorsync.config import settings
from editorsync.errors import RemoteError
from editorsync.schemas.changes import ChangeEvent, Cursor
from editorsync.services.change_sources import (
    ChangeCallback,
    ChangeSource,
    ConnectivityCallback,
    ErrorCallback,
    PollChangeSource,
    PushChangeSource,
)
from editorsync.services.transport_state import TransportState, TransportStateMachine

if TYPE_CHECKING:
    from editorsync.services.remote import RemoteFileService

logger = logging.getLogger(__name__)


class WatchMode(str, Enum):
    PUSH = "push"
    PULL = "pull"
    AUTO = "auto"  # push, degrading to pull

    @classmethod
    def _missing_(cls, value: object) -> WatchMode | None:
        aliases = {"sse": cls.PUSH, "poll": cls.PULL}
        return aliases.get(str(value).lower())


class ChangeTransport:
    """Delivers change events and connectivity for a watched path.

    Listeners are plain callables invoked on the event loop. A listener that
    raises is logged and does not affect delivery to the others. Nothing here
    raises on a transport failure: failures reach error listeners.
    """

    def __init__(
        self,
        remote: RemoteFileService,
        mode: WatchMode | str | None = None,
        poll_interval_ms: int | None = None,
    ):
        self._remote = remote
        self._mode = WatchMode(mode or settings.watch_mode)
        self._poll_interval = (poll_interval_ms or settings.poll_interval_ms) / 1000.0
        self._path = settings.watch_path
        self._sm = TransportStateMachine()
        self._source: ChangeSource | None = None
        self._retired: list[ChangeSource] = []
        self._cursor = Cursor()
        self._connected = False

        self._change_listeners: list[ChangeCallback] = []
        self._connectivity_listeners: list[ConnectivityCallback] = []
        self._error_listeners: list[ErrorCallback] = []

    # --- status ------------------------------------------------------------

    @property
    def state(self) -> TransportState:
        return self._sm.state

    @property
    def mode(self) -> WatchMode:
        return self._mode

    @property
    def path(self) -> str:
        return self._path

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def using_push(self) -> bool:
        return self._sm.state in (TransportState.CONNECTING, TransportState.CONNECTED)

    @property
    def cursor(self) -> Cursor:
        if isinstance(self._source, PollChangeSource):
            return self._source.cursor
        return self._cursor

    def status(self) -> dict[str, Any]:
        return {
            **self._sm.to_dict(),
            "mode": self._mode.value,
            "path": self._path,
            "connected": self._connected,
            "using_push": self.using_push,
        }

    # --- listeners ---------------------------------------------------------

    def add_change_listener(self, listener: ChangeCallback) -> None:
        self._change_listeners.append(listener)

    def remove_change_listener(self, listener: ChangeCallback) -> None:
        if listener in self._change_listeners:
            self._change_listeners.remove(listener)

    def add_connectivity_listener(self, listener: ConnectivityCallback) -> None:
        self._connectivity_listeners.append(listener)

    def remove_connectivity_listener(self, listener: ConnectivityCallback) -> None:
        if listener in self._connectivity_listeners:
            self._connectivity_listeners.remove(listener)

    def add_error_listener(self, listener: ErrorCallback) -> None:
        self._error_listeners.append(listener)

    def remove_error_listener(self, listener: ErrorCallback) -> None:
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    @staticmethod
    def _notify(listeners: list[Callable[..., None]], *args: Any) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception as e:
                logger.error("Change transport listener %r failed: %s", listener, e)

    # --- lifecycle ---------------------------------------------------------

    def start(self, path: str | None = None, mode: WatchMode | str | None = None) -> None:
        """Begin delivering changes for ``path``. Must run inside the event loop."""
        if self._source is not None:
            logger.warning("Change transport already started for %s", self._path)
            return
        if path is not None:
            self._path = path
        if mode is not None:
            self._mode = WatchMode(mode)

        if self._mode == WatchMode.PULL:
            self._start_polling()
        else:
            self._start_push()

    async def stop(self) -> None:
        """Stop delivery. No callback fires after this returns."""
        source, self._source = self._source, None
        if isinstance(source, PollChangeSource):
            self._cursor = source.cursor
        retired, self._retired = self._retired, []
        for old in [source, *retired]:
            if old is not None:
                await old.stop()
        self._sm.transition(TransportState.DISCONNECTED)
        self._set_connected(False)

    async def reconnect(self) -> None:
        """Restart from scratch with the configured mode — the only way back to push."""
        logger.info("Reconnecting change transport for %s (%s)", self._path, self._mode.value)
        await self.stop()
        self.start()

    def _start_push(self) -> None:
        self._sm.transition(TransportState.CONNECTING)
        self._source = self._make_source(PushChangeSource)
        self._source.start()

    def _start_polling(self) -> None:
        self._sm.transition(TransportState.POLLING)
        self._source = self._make_source(
            PollChangeSource,
            interval_seconds=self._poll_interval,
            cursor=self._cursor,
        )
        self._source.start()

    def _make_source(self, cls: type[ChangeSource], **kwargs: Any) -> ChangeSource:
        # Callbacks are bound to the source so that a replaced source is ignored
        holder: list[ChangeSource] = []

        def on_change(event: ChangeEvent) -> None:
            if self._source is holder[0]:
                self._notify(self._change_listeners, event)

        def on_connectivity(connected: bool) -> None:
            if self._source is holder[0]:
                self._handle_connectivity(connected)

        def on_error(error: RemoteError) -> None:
            if self._source is holder[0]:
                self._handle_error(holder[0], error)

        source = cls(
            self._remote,
            self._path,
            on_change=on_change,
            on_connectivity=on_connectivity,
            on_error=on_error,
            **kwargs,
        )
        holder.append(source)
        return source

    # --- source events -----------------------------------------------------

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        self._notify(self._connectivity_listeners, connected)

    def _handle_connectivity(self, connected: bool) -> None:
        if connected and self._sm.state == TransportState.CONNECTING:
            self._sm.transition(TransportState.CONNECTED)
        self._set_connected(connected)

    def _handle_error(self, source: ChangeSource, error: RemoteError) -> None:
        if not isinstance(source, PushChangeSource):
            self._notify(self._error_listeners, error)
            return

        self._source = None
        self._retired.append(source)
        if self._mode == WatchMode.AUTO:
            # Expected degradation, not an error
            logger.info("Push unavailable for %s, falling back to polling", self._path)
            self._start_polling()
        else:
            self._sm.transition(TransportState.DISCONNECTED)
            self._notify(self._error_listeners, error)
