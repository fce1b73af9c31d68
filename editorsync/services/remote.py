"""Remote File Service client — the editor API over httpx."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from editorsync.config import settings
from editorsync.errors import (
    ConflictError,
    NetworkFailure,
    NotFound,
    RemoteError,
    ServiceError,
    ValidationFailure,
)
from editorsync.schemas.changes import ChangeEvent, ChangeKind, FrameType, PollChangesResponse, StreamFrame
from editorsync.schemas.files import (
    DeleteFileResponse,
    FileMetadataResponse,
    FileTreeResponse,
    ListFilesResponse,
    MoveFileResponse,
    ReadFileResponse,
    SearchFilesResponse,
    WriteFileResponse,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# SSE event names the service uses for change frames
CHANGE_EVENT_NAMES = {"file_changed", "change"}
_CHANGE_KINDS = {kind.value for kind in ChangeKind}


def _params(**kwargs: Any) -> dict[str, str]:
    """Query parameters with unset values dropped and booleans lower-cased."""
    params: dict[str, str] = {}
    for key, value in kwargs.items():
        if value is None or value is False:
            continue
        params[key] = "true" if value is True else str(value)
    return params


class RemoteFileService:
    """Async client for list/read/write/delete/move/search/tree/metadata/poll/watch."""

    def __init__(
        self,
        base_url: str | None = None,
        api_prefix: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        prefix = settings.api_prefix if api_prefix is None else api_prefix
        self._base_url = (base_url or settings.service_url).rstrip("/") + prefix
        self._timeout = settings.request_timeout if timeout is None else timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- error mapping -----------------------------------------------------

    @staticmethod
    def _error_for(status_code: int, data: dict[str, Any], path: str | None) -> RemoteError | None:
        message = data.get("error") or data.get("message") or f"HTTP {status_code}"
        if status_code == 404:
            return NotFound(message, path=path, status_code=status_code)
        if status_code == 409 or data.get("conflict"):
            return ConflictError(message, path=path, status_code=status_code)
        if status_code in (400, 422):
            return ValidationFailure(message, path=path, status_code=status_code)
        if status_code >= 400 or not data.get("success", False):
            return ServiceError(message, path=path, status_code=status_code)
        return None

    async def _request(
        self,
        method: str,
        url: str,
        model: type[ModelT],
        path: str | None,
        **kwargs: Any,
    ) -> ModelT:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkFailure(str(e) or type(e).__name__, path=path) from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        error = self._error_for(resp.status_code, data, path)
        if error is not None:
            logger.debug("%s %s failed: %r", method, url, error)
            raise error

        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ServiceError(f"Malformed {model.__name__}: {e}", path=path) from e

    # --- one-shot operations -----------------------------------------------

    async def list_files(
        self,
        path: str = "/",
        recursive: bool = False,
        depth: int | None = None,
        include_hidden: bool = False,
    ) -> ListFilesResponse:
        params = _params(path=path, recursive=recursive, depth=depth, include_hidden=include_hidden)
        return await self._request("GET", "/files", ListFilesResponse, path, params=params)

    async def read_file(
        self,
        path: str,
        encoding: str | None = None,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> ReadFileResponse:
        params = _params(path=path, encoding=encoding, range_start=range_start, range_end=range_end)
        return await self._request("GET", "/file", ReadFileResponse, path, params=params)

    async def create_file(
        self,
        path: str,
        content: str = "",
        create_directories: bool = True,
        overwrite: bool = False,
    ) -> WriteFileResponse:
        body = {
            "path": path,
            "content": content,
            "create_directories": create_directories,
            "overwrite": overwrite,
        }
        return await self._request("POST", "/file", WriteFileResponse, path, json=body)

    async def update_file(
        self,
        path: str,
        content: str,
        expected_fingerprint: str | None = None,
    ) -> WriteFileResponse:
        """Write over an existing file. Raises ConflictError on fingerprint mismatch."""
        body = {"path": path, "content": content, "expected_checksum": expected_fingerprint}
        return await self._request("PUT", "/file", WriteFileResponse, path, json=body)

    async def delete_file(self, path: str, recursive: bool = False) -> DeleteFileResponse:
        params = _params(path=path, recursive=recursive)
        return await self._request("DELETE", "/file", DeleteFileResponse, path, params=params)

    async def move_file(
        self,
        source_path: str,
        destination_path: str,
        overwrite: bool = False,
    ) -> MoveFileResponse:
        body = {
            "source_path": source_path,
            "destination_path": destination_path,
            "overwrite": overwrite,
        }
        return await self._request("POST", "/file/move", MoveFileResponse, source_path, json=body)

    async def search_files(
        self,
        query: str,
        path: str = "/",
        patterns: list[str] | None = None,
        regex: bool = False,
        case_sensitive: bool = False,
        context_lines: int = 2,
        max_results: int = 100,
    ) -> SearchFilesResponse:
        body = {
            "query": query,
            "path": path,
            "patterns": patterns,
            "regex": regex,
            "case_sensitive": case_sensitive,
            "context_lines": context_lines,
            "max_results": max_results,
        }
        return await self._request("POST", "/search", SearchFilesResponse, path, json=body)

    async def get_tree(
        self,
        path: str = "/",
        depth: int | None = None,
        include_hidden: bool = False,
    ) -> FileTreeResponse:
        params = _params(path=path, depth=depth, include_hidden=include_hidden)
        response = await self._request("GET", "/tree", FileTreeResponse, path, params=params)
        if response.tree is None:
            raise ServiceError("Tree response carried no tree", path=path)
        return response

    async def get_metadata(self, path: str) -> FileMetadataResponse:
        return await self._request(
            "GET", "/file/metadata", FileMetadataResponse, path, params=_params(path=path)
        )

    async def poll_changes(
        self,
        path: str = "/",
        since_timestamp: str | None = None,
        last_fingerprint: str | None = None,
    ) -> PollChangesResponse:
        params = _params(path=path, since_timestamp=since_timestamp, last_checksum=last_fingerprint)
        return await self._request("GET", "/poll", PollChangesResponse, path, params=params)

    # --- push stream -------------------------------------------------------

    @asynccontextmanager
    async def watch_changes(self, path: str = "/") -> AsyncIterator[AsyncIterator[StreamFrame]]:
        """Open the push stream for ``path``.

        Entering the context means the stream is open; iterate the yielded
        frames until the server ends the stream. Transport failures at any
        point surface as NetworkFailure.
        """
        # The stream stays open indefinitely; only connecting is time-limited
        timeout = httpx.Timeout(self._timeout, read=None)
        try:
            async with self._client.stream(
                "GET",
                "/watch",
                params=_params(path=path),
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    try:
                        data = resp.json()
                    except ValueError:
                        data = {}
                    if not isinstance(data, dict):
                        data = {}
                    data["success"] = False
                    raise self._error_for(resp.status_code, data, path)
                yield self._iter_frames(resp)
        except httpx.TransportError as e:
            raise NetworkFailure(str(e) or type(e).__name__, path=path) from e

    async def _iter_frames(self, response: httpx.Response) -> AsyncIterator[StreamFrame]:
        """Parse a server-sent-events body into StreamFrames."""
        event_name = ""
        data_lines: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if data_lines or event_name:
                    frame = parse_frame(event_name, "\n".join(data_lines))
                    if frame is not None:
                        yield frame
                event_name, data_lines = "", []
                continue
            if line.startswith(":"):
                continue  # comment / keep-alive
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event_name = value
            elif field == "data":
                data_lines.append(value)


def parse_frame(event_name: str, data: str) -> StreamFrame | None:
    """Turn one SSE event into a StreamFrame, or None for frames we don't act on.

    Accepts both the wrapped form ``{"type": "change", "data": {...}}`` and a
    bare change event.
    """
    try:
        payload = json.loads(data) if data else {}
    except ValueError:
        logger.warning("Skipping malformed stream frame: %r", data[:200])
        return None
    if not isinstance(payload, dict):
        return None

    frame_type = payload.get("type")
    if event_name == FrameType.CONNECTED.value or frame_type == FrameType.CONNECTED.value:
        return StreamFrame(type=FrameType.CONNECTED)

    if isinstance(payload.get("data"), dict):
        raw_event = payload["data"]
    elif event_name in CHANGE_EVENT_NAMES or frame_type in _CHANGE_KINDS:
        raw_event = payload
    else:
        logger.debug("Ignoring stream frame %r", event_name or frame_type)
        return None

    try:
        return StreamFrame(type=FrameType.CHANGE, data=ChangeEvent.model_validate(raw_event))
    except ValidationError as e:
        logger.warning("Skipping invalid change event: %s", e)
        return None
