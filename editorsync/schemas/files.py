"""File schemas — entries, trees and response envelopes of the editor API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class FileEntry(BaseModel):
    """One entry of a listing."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    path: str
    kind: FileKind = Field(alias="type")
    size: int | None = None
    modified_at: datetime | None = None
    language: str | None = None
    fingerprint: str | None = Field(default=None, alias="checksum")


class FileMetadata(FileEntry):
    created_at: datetime | None = None
    permissions: str | None = None
    encoding: str | None = None
    line_count: int | None = None
    is_binary: bool = False


class FileTreeNode(FileEntry):
    """A FileEntry with ordered children; rooted, addressed by path."""

    children: list[FileTreeNode] | None = None

    @model_validator(mode="after")
    def _unique_child_paths(self) -> "FileTreeNode":
        if not self.children:
            return self
        seen: set[str] = set()
        for child in self.children:
            if child.path in seen:
                raise ValueError(f"duplicate child path {child.path!r} under {self.path!r}")
            seen.add(child.path)
        return self

    @property
    def is_directory(self) -> bool:
        return self.kind == FileKind.DIRECTORY

    def walk(self) -> Iterator[FileTreeNode]:
        """Yield this node and all descendants, pre-order."""
        yield self
        for child in self.children or ():
            yield from child.walk()

    def find(self, path: str) -> FileTreeNode | None:
        for node in self.walk():
            if node.path == path:
                return node
        return None


class SearchMatch(BaseModel):
    line_number: int
    line_content: str
    match_start: int
    match_end: int
    context_before: list[str] = []
    context_after: list[str] = []


class SearchFileResult(BaseModel):
    path: str
    matches: list[SearchMatch] = []
    match_count: int = 0


# Response envelopes. Every response carries success plus message/error.


class ServiceResponse(BaseModel):
    success: bool = False
    message: str | None = None
    error: str | None = None


class ListFilesResponse(ServiceResponse):
    path: str = "/"
    entries: list[FileEntry] = []
    total_count: int = 0


class ReadFileResponse(ServiceResponse):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    content: str | None = None
    encoding: str | None = None
    fingerprint: str | None = Field(default=None, alias="checksum")
    language: str | None = None
    line_count: int | None = None
    size: int | None = None
    is_binary: bool = False


class WriteFileResponse(ServiceResponse):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    fingerprint: str | None = Field(default=None, alias="checksum")
    size: int | None = None
    created: bool = False
    conflict: bool = False


class DeleteFileResponse(ServiceResponse):
    path: str
    deleted_count: int = 0


class MoveFileResponse(ServiceResponse):
    source_path: str
    destination_path: str


class SearchFilesResponse(ServiceResponse):
    query: str
    results: list[SearchFileResult] = []
    total_matches: int = 0
    files_searched: int = 0
    files_with_matches: int = 0
    truncated: bool = False


class FileTreeResponse(ServiceResponse):
    model_config = ConfigDict(populate_by_name=True)

    tree: FileTreeNode | None = None
    fingerprint: str | None = Field(default=None, alias="checksum")
    timestamp: datetime | None = None


class FileMetadataResponse(ServiceResponse):
    metadata: FileMetadata | None = None
