"""Conversation descriptors and message shapes shared by the client engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

BROADCAST_RECEIVER = "ALL"

KIND_TEXT = "TEXT"
KIND_IMAGE = "IMAGE"
KIND_VIDEO = "VIDEO"
KIND_FILE = "FILE"


@dataclass(frozen=True)
class Broadcast:
    """The single channel every connected user receives."""


@dataclass(frozen=True)
class DirectMessage:
    peer: str


@dataclass(frozen=True)
class Room:
    room_id: str
    display_name: str = ""
    members: Tuple[str, ...] = field(default=(), compare=False)


ConversationDescriptor = Union[Broadcast, DirectMessage, Room]

BROADCAST = Broadcast()


def kind_for_mime(mime_type: Optional[str]) -> str:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return KIND_IMAGE
    if mime.startswith("video/"):
        return KIND_VIDEO
    return KIND_FILE


@dataclass(frozen=True)
class Upload:
    """Result of handing a file to the upload endpoint."""

    file_url: str
    file_name: str
    file_type: str = ""
    file_size: Optional[int] = None


@dataclass(frozen=True)
class Attachment:
    kind: str
    url: str
    name: str
    mime_type: str = ""
    size: Optional[int] = None

    @classmethod
    def from_upload(cls, upload: Upload) -> "Attachment":
        return cls(
            kind=kind_for_mime(upload.file_type),
            url=upload.file_url,
            name=upload.file_name,
            mime_type=upload.file_type,
            size=upload.file_size,
        )


@dataclass(frozen=True)
class Message:
    """A chat message as it travels over the socket or comes back from history.

    Exactly one of ``room_id`` and ``receiver`` is expected to be set; when
    neither is, the message belongs to the broadcast channel.
    """

    sender: str
    content: str = ""
    receiver: Optional[str] = None
    room_id: Optional[str] = None
    attachment: Optional[Attachment] = None
    timestamp: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.attachment is not None:
            return self.attachment.kind
        return KIND_TEXT

    @property
    def is_broadcast(self) -> bool:
        return self.room_id is None and self.receiver in (None, BROADCAST_RECEIVER)
