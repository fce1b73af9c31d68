"""Pydantic models for the editor API."""

from editorsync.schemas.changes import ChangeEvent, ChangeKind, Cursor, FrameType, PollChangesResponse, StreamFrame
from editorsync.schemas.files import (
    DeleteFileResponse,
    FileEntry,
    FileKind,
    FileMetadata,
    FileMetadataResponse,
    FileTreeNode,
    FileTreeResponse,
    ListFilesResponse,
    MoveFileResponse,
    ReadFileResponse,
    SearchFileResult,
    SearchFilesResponse,
    SearchMatch,
    WriteFileResponse,
)

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "Cursor",
    "DeleteFileResponse",
    "FileEntry",
    "FileKind",
    "FileMetadata",
    "FileMetadataResponse",
    "FileTreeNode",
    "FileTreeResponse",
    "FrameType",
    "ListFilesResponse",
    "MoveFileResponse",
    "PollChangesResponse",
    "ReadFileResponse",
    "SearchFileResult",
    "SearchFilesResponse",
    "SearchMatch",
    "StreamFrame",
    "WriteFileResponse",
]
