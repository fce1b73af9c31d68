"""File session — open/edit/save lifecycle of one file with optimistic concurrency."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from editorsync.config import settings
from editorsync.errors import ConflictError, Outcome, RemoteError, ServiceError
from editorsync.schemas.files import ReadFileResponse

if TYPE_CHECKING:
    from editorsync.services.remote import RemoteFileService

logger = logging.getLogger(__name__)


class FileSession:
    """Edit session for exactly one remote file.

    Every save carries the fingerprint of the last load or successful save.
    If the service rejects it, the session enters the conflict state, keeps
    the local edits, and refuses to save until reload() discards them.
    """

    def __init__(
        self,
        remote: RemoteFileService,
        path: str,
        autosave: bool | None = None,
        autosave_delay_ms: int | None = None,
    ):
        self._remote = remote
        self.path = path
        self._autosave = settings.autosave if autosave is None else autosave
        delay_ms = autosave_delay_ms or settings.autosave_delay_ms
        self._autosave_delay = delay_ms / 1000.0

        self._content = ""
        self._saved_content = ""
        self._fingerprint: str | None = None
        self._metadata: ReadFileResponse | None = None
        self._error: RemoteError | None = None
        self._conflict = False
        self._loading = False
        self._saves_in_flight = 0

        self._load_seq = 0
        self._saves_applied = 0
        self._autosave_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # --- state -------------------------------------------------------------

    @property
    def content(self) -> str:
        return self._content

    @property
    def saved_content(self) -> str:
        return self._saved_content

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def dirty(self) -> bool:
        return self._content != self._saved_content

    @property
    def saving(self) -> bool:
        return self._saves_in_flight > 0

    @property
    def conflict(self) -> bool:
        return self._conflict

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> RemoteError | None:
        return self._error

    @property
    def metadata(self) -> ReadFileResponse | None:
        return self._metadata

    @property
    def language(self) -> str | None:
        return self._metadata.language if self._metadata else None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def autosave_pending(self) -> bool:
        return self._autosave_task is not None

    def _current(self, generation: int) -> bool:
        """True while no load or close has happened since `generation` was taken."""
        return not self._closed and generation == self._load_seq

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"File session for {self.path} is closed")

    # --- operations --------------------------------------------------------

    async def load(self) -> Outcome[str]:
        """Fetch content and fingerprint; replaces local content, clears dirty and conflict."""
        self._ensure_open()
        self._load_seq += 1
        seq = self._load_seq
        saves_applied = self._saves_applied
        self._loading = True
        try:
            response = await self._remote.read_file(self.path)
            if response.content is None:
                raise ServiceError("File has no text content", path=self.path)
        except RemoteError as e:
            if not self._closed and seq == self._load_seq:
                self._error = e
                self._loading = False
                logger.warning("Loading %s failed: %s", self.path, e.message)
            return Outcome.failure(e)

        if self._closed or seq != self._load_seq:
            logger.debug("Discarding superseded load of %s", self.path)
            return Outcome.success(response.content)
        if saves_applied != self._saves_applied:
            # A save landed while this read was outstanding
            self._loading = False
            logger.debug("Discarding load of %s older than the last save", self.path)
            return Outcome.success(response.content)

        self._cancel_autosave()
        self._content = response.content
        self._saved_content = response.content
        self._fingerprint = response.fingerprint
        self._metadata = response
        self._conflict = False
        self._error = None
        self._loading = False
        logger.debug("Loaded %s (fingerprint %s)", self.path, self._fingerprint)
        return Outcome.success(response.content)

    def edit(self, new_content: str) -> None:
        """Replace local content; (re)start the autosave debounce when dirty."""
        self._ensure_open()
        self._content = new_content
        if not self._autosave:
            return
        self._cancel_autosave()
        if self.dirty:
            self._autosave_task = asyncio.create_task(self._autosave_after(self._autosave_delay))
            self._tasks.add(self._autosave_task)
            self._autosave_task.add_done_callback(self._tasks.discard)

    async def save(self) -> Outcome[str]:
        """Write local content guarded by the last-known fingerprint.

        Not dirty: success without a network call. Conflict: the conflict
        flag is set and content/dirty are left alone. Other failure: the
        error is recorded and the session stays dirty for a later retry.
        """
        self._ensure_open()
        if not self.dirty:
            return Outcome.success(self._fingerprint)
        if self._conflict:
            return Outcome.failure(
                ConflictError("File was modified externally; reload before saving", path=self.path)
            )

        content = self._content
        expected = self._fingerprint
        generation = self._load_seq
        self._saves_in_flight += 1
        try:
            response = await self._remote.update_file(self.path, content, expected_fingerprint=expected)
        except ConflictError as e:
            if self._current(generation):
                self._conflict = True
                self._error = e
                logger.warning("Save of %s rejected: remote changed since fingerprint %s", self.path, expected)
            return Outcome.failure(e)
        except RemoteError as e:
            if self._current(generation):
                self._error = e
                logger.warning("Save of %s failed: %s", self.path, e.message)
            return Outcome.failure(e)
        finally:
            self._saves_in_flight -= 1

        if not self._current(generation):
            logger.debug("Ignoring save of %s that completed after close or reload", self.path)
            return Outcome.success(response.fingerprint)

        self._fingerprint = response.fingerprint
        self._saved_content = content
        self._saves_applied += 1
        self._error = None
        logger.debug("Saved %s (fingerprint %s)", self.path, self._fingerprint)
        return Outcome.success(response.fingerprint)

    async def reload(self) -> Outcome[str]:
        """Discard local edits and load again. The only way out of a conflict."""
        self._ensure_open()
        self._cancel_autosave()
        self._content = self._saved_content
        self._conflict = False
        return await self.load()

    def close(self) -> None:
        """Tear down: cancel the pending autosave; later completions are ignored."""
        if self._closed:
            return
        self._closed = True
        self._cancel_autosave()
        logger.debug("Closed file session for %s", self.path)

    # --- autosave ----------------------------------------------------------

    def _cancel_autosave(self) -> None:
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            self._autosave_task = None

    async def _autosave_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point the save runs to completion; a new edit schedules another
        self._autosave_task = None
        if self._closed:
            return
        outcome = await self.save()
        if not outcome.ok:
            logger.warning("Autosave of %s failed: %s", self.path, outcome.error.message)
