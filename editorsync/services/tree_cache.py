"""Tree cache — the last-known file tree, re-fetched wholesale on every change signal."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from editorsync.config import settings
from editorsync.errors import Outcome, RemoteError, ServiceError
from editorsync.schemas.changes import ChangeEvent
from editorsync.schemas.files import FileTreeNode
from editorsync.utils.hashing import fingerprint_tree

if TYPE_CHECKING:
    from editorsync.services.change_transport import ChangeTransport
    from editorsync.services.remote import RemoteFileService

logger = logging.getLogger(__name__)


class TreeCache:
    """Holds the tree for one path and its fingerprint.

    Every refresh is numbered when issued. A completion is applied only if it
    is newer than the last applied one, so a slow, older fetch can never
    overwrite a fresher tree.
    """

    def __init__(
        self,
        remote: RemoteFileService,
        path: str | None = None,
        depth: int | None = None,
        include_hidden: bool | None = None,
    ):
        self._remote = remote
        self._path = path or settings.watch_path
        self._depth = settings.tree_depth if depth is None else depth
        self._include_hidden = settings.include_hidden if include_hidden is None else include_hidden

        self._tree: FileTreeNode | None = None
        self._fingerprint: str | None = None
        self._error: RemoteError | None = None
        self._loading = True
        self._refreshed_at: datetime | None = None

        self._issued_seq = 0
        self._applied_seq = 0
        self._transport: ChangeTransport | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def tree(self) -> FileTreeNode | None:
        return self._tree

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def error(self) -> RemoteError | None:
        return self._error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def refreshed_at(self) -> datetime | None:
        return self._refreshed_at

    def find(self, path: str) -> FileTreeNode | None:
        return self._tree.find(path) if self._tree else None

    def entries(self) -> list[FileTreeNode]:
        return list(self._tree.walk()) if self._tree else []

    def _accept(self, seq: int) -> bool:
        if self._closed or seq <= self._applied_seq:
            return False
        self._applied_seq = seq
        return True

    async def refresh(self) -> Outcome[FileTreeNode]:
        """Fetch the tree and replace the cached one. Errors are returned, not raised."""
        if self._closed:
            return Outcome.failure(ServiceError("Tree cache is closed", path=self._path))

        self._issued_seq += 1
        seq = self._issued_seq
        try:
            response = await self._remote.get_tree(
                self._path,
                depth=self._depth,
                include_hidden=self._include_hidden,
            )
        except RemoteError as e:
            if self._accept(seq):
                self._error = e
                self._loading = False
                logger.warning("Tree refresh of %s failed: %s", self._path, e.message)
            return Outcome.failure(e)

        tree = response.tree
        fingerprint = response.fingerprint or fingerprint_tree(tree)
        if self._accept(seq):
            self._tree = tree
            self._fingerprint = fingerprint
            self._error = None
            self._loading = False
            self._refreshed_at = datetime.now(timezone.utc)
            logger.debug("Tree %s refreshed (#%d, fingerprint %s)", self._path, seq, fingerprint)
        else:
            logger.debug(
                "Discarding stale tree refresh #%d for %s (applied #%d)",
                seq, self._path, self._applied_seq,
            )
        return Outcome.success(tree)

    # --- change wiring -----------------------------------------------------

    def subscribe(self, transport: ChangeTransport) -> None:
        """Refresh on every change event the transport delivers."""
        if self._transport is not None:
            self.unsubscribe()
        self._transport = transport
        transport.add_change_listener(self._on_change)

    def unsubscribe(self) -> None:
        if self._transport is not None:
            self._transport.remove_change_listener(self._on_change)
            self._transport = None

    def _on_change(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        logger.debug("Change %s %s, refreshing tree %s", event.kind.value, event.path, self._path)
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        """Detach from the transport and drop in-flight refreshes."""
        self._closed = True
        self.unsubscribe()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
