"""Engine services — singleton registry for one watched workspace."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from editorsync.config import settings

if TYPE_CHECKING:
    from editorsync.services.change_transport import ChangeTransport
    from editorsync.services.file_session import FileSession
    from editorsync.services.remote import RemoteFileService
    from editorsync.services.tree_cache import TreeCache

logger = logging.getLogger(__name__)

_remote: RemoteFileService | None = None
_transport: ChangeTransport | None = None
_tree_cache: TreeCache | None = None
_sessions: dict[str, FileSession] = {}


async def init_services(
    path: str | None = None,
    mode: str | None = None,
    poll_interval_ms: int | None = None,
    base_url: str | None = None,
    remote: RemoteFileService | None = None,
) -> None:
    """Create and wire up the remote client, change transport and tree cache."""
    global _remote, _transport, _tree_cache

    from editorsync.services.change_transport import ChangeTransport
    from editorsync.services.remote import RemoteFileService
    from editorsync.services.tree_cache import TreeCache

    watch_path = path or settings.watch_path
    _remote = remote or RemoteFileService(base_url=base_url)
    _transport = ChangeTransport(_remote, mode=mode, poll_interval_ms=poll_interval_ms)
    _tree_cache = TreeCache(_remote, path=watch_path)

    _tree_cache.subscribe(_transport)
    _transport.start(watch_path)

    outcome = await _tree_cache.refresh()
    if outcome.ok:
        logger.info("Watching %s on %s (%s)", watch_path, _remote.base_url, _transport.mode.value)
    else:
        logger.warning(
            "Initial tree load of %s failed (%s), will retry on the next change",
            watch_path, outcome.error.message,
        )


async def shutdown_services() -> None:
    """Close sessions, detach the cache, stop the transport, close the client."""
    global _remote, _transport, _tree_cache
    for session in list(_sessions.values()):
        session.close()
    _sessions.clear()
    if _tree_cache:
        await _tree_cache.close()
        _tree_cache = None
    if _transport:
        await _transport.stop()
        _transport = None
    if _remote:
        await _remote.aclose()
        _remote = None


async def open_session(path: str, autosave: bool | None = None) -> FileSession:
    """Open ``path`` (or return its open session). A failed load shows in session.error."""
    from editorsync.services.file_session import FileSession

    if path in _sessions:
        return _sessions[path]
    session = FileSession(get_remote(), path, autosave=autosave)
    _sessions[path] = session
    await session.load()
    return session


def close_session(path: str) -> None:
    session = _sessions.pop(path, None)
    if session:
        session.close()


def get_remote() -> RemoteFileService:
    if _remote is None:
        raise RuntimeError("Services not initialized; call init_services() first")
    return _remote


def get_transport() -> ChangeTransport:
    if _transport is None:
        raise RuntimeError("Services not initialized; call init_services() first")
    return _transport


def get_tree_cache() -> TreeCache:
    if _tree_cache is None:
        raise RuntimeError("Services not initialized; call init_services() first")
    return _tree_cache
