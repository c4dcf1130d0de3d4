"""Wire codec for the chat socket.

Inbound frames are classified exactly once, here, into one of
:class:`PresenceFrame`, :class:`RoutedMessage` or :class:`Malformed` before
any routing happens.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from .models import KIND_FILE, KIND_IMAGE, KIND_VIDEO, Attachment, Message, Upload, kind_for_mime

PRESENCE_TYPE = "PRESENCE"
_ATTACHMENT_KINDS = {KIND_IMAGE, KIND_VIDEO, KIND_FILE}


@dataclass(frozen=True)
class PresenceFrame:
    online: FrozenSet[str]


@dataclass(frozen=True)
class RoutedMessage:
    message: Message


@dataclass(frozen=True)
class Malformed:
    """A frame that could not be classified cleanly.

    ``message`` is set when the payload still looked like a message (it is
    then routed with the broadcast fallback); it is ``None`` when nothing
    usable could be recovered.
    """

    reason: str
    raw: object
    message: Optional[Message] = None


InboundFrame = Union[PresenceFrame, RoutedMessage, Malformed]


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    # Some backends serialise datetimes as numbers or [y, m, d, ...] arrays.
    return json.dumps(value, separators=(",", ":"))


def _size(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _attachment(payload: Mapping[str, Any]) -> Optional[Attachment]:
    url = _text(payload.get("fileUrl"))
    if url is None:
        return None
    mime_type = payload.get("fileType") if isinstance(payload.get("fileType"), str) else ""
    kind = payload.get("type")
    if kind not in _ATTACHMENT_KINDS:
        kind = kind_for_mime(mime_type)
    name = payload.get("fileName") if isinstance(payload.get("fileName"), str) else ""
    return Attachment(kind=kind, url=url, name=name, mime_type=mime_type, size=_size(payload.get("fileSize")))


def message_from_dict(payload: Mapping[str, Any]) -> Message:
    content = payload.get("content")
    return Message(
        sender=payload.get("sender") if isinstance(payload.get("sender"), str) else "",
        content=content if isinstance(content, str) else "",
        receiver=_text(payload.get("receiver")),
        room_id=_text(payload.get("roomId")),
        attachment=_attachment(payload),
        timestamp=_timestamp(payload.get("timestamp")),
        message_id=_text(payload.get("id")),
    )


def upload_from_dict(payload: Mapping[str, Any]) -> Upload:
    file_url = _text(payload.get("fileUrl"))
    if file_url is None:
        raise ValueError("upload response is missing fileUrl")
    file_type = payload.get("fileType")
    return Upload(
        file_url=file_url,
        file_name=str(payload.get("fileName") or ""),
        file_type=file_type if isinstance(file_type, str) else "",
        file_size=_size(payload.get("fileSize")),
    )


def decode_frame(raw: Union[str, bytes, Mapping[str, Any]]) -> InboundFrame:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return Malformed("invalid json", raw)
    else:
        payload = raw
    if not isinstance(payload, dict):
        return Malformed("frame is not an object", raw)

    if payload.get("type") == PRESENCE_TYPE:
        online = payload.get("online")
        if not isinstance(online, list):
            return Malformed("presence frame without an online list", raw)
        return PresenceFrame(frozenset(entry for entry in online if isinstance(entry, str)))

    message = message_from_dict(payload)
    if not message.sender:
        return Malformed("message without sender", raw, message)
    if message.room_id is None and message.receiver is None:
        return Malformed("message without roomId or receiver", raw, message)
    return RoutedMessage(message)


def encode_message(message: Message) -> Dict[str, object]:
    frame: Dict[str, object] = {"sender": message.sender, "content": message.content}
    if message.room_id is not None:
        frame["roomId"] = message.room_id
    elif message.receiver is not None:
        frame["receiver"] = message.receiver
    attachment = message.attachment
    if attachment is not None:
        frame["type"] = attachment.kind
        frame["fileUrl"] = attachment.url
        frame["fileName"] = attachment.name
        frame["fileType"] = attachment.mime_type
        if attachment.size is not None:
            frame["fileSize"] = attachment.size
    return frame
