"""Change notification schemas — events, poll cursor, push stream frames."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from editorsync.schemas.files import ServiceResponse


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangeEvent(BaseModel):
    """A fact about the remote store. A signal to refresh, never a diff to apply."""

    model_config = ConfigDict(populate_by_name=True)

    kind: ChangeKind = Field(alias="type")
    path: str
    old_path: str | None = None
    fingerprint: str | None = Field(default=None, alias="checksum")
    timestamp: datetime


class PollChangesResponse(ServiceResponse):
    model_config = ConfigDict(populate_by_name=True)

    changes: list[ChangeEvent] = []
    fingerprint: str = Field(default="", alias="current_checksum")
    # Kept verbatim: the service gets back exactly what it handed out
    timestamp: str = ""


class Cursor(BaseModel):
    """Where a poller resumes from: (last-seen timestamp, last-seen tree fingerprint)."""

    model_config = ConfigDict(frozen=True)

    timestamp: str = ""
    fingerprint: str = ""

    @property
    def is_initial(self) -> bool:
        return not self.timestamp and not self.fingerprint

    def advance(self, response: PollChangesResponse) -> "Cursor":
        return Cursor(timestamp=response.timestamp, fingerprint=response.fingerprint)


class FrameType(str, Enum):
    CHANGE = "change"
    CONNECTED = "connected"


class StreamFrame(BaseModel):
    """One frame of the push stream."""

    type: FrameType
    data: ChangeEvent | None = None
