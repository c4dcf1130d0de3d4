"""HTTP collaborators of the chat backend: history, uploads, rooms, users."""

from __future__ import annotations

import json
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from .config import ClientConfig
from .frames import message_from_dict, upload_from_dict
from .models import BROADCAST_RECEIVER, Broadcast, ConversationDescriptor, DirectMessage, Message, Room, Upload


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


async def _request_json(
    method: str,
    url: str,
    *,
    timeout_s: float,
    params: Optional[Mapping[str, str]] = None,
    json_body: Optional[Dict[str, object]] = None,
    data: Any = None,
) -> Any:
    timeout = aiohttp.ClientTimeout(total=timeout_s)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.request(method, url, params=params, json=json_body, data=data) as response:
            response.raise_for_status()
            raw = await response.text()
    return json.loads(raw) if raw else None


def history_params(descriptor: ConversationDescriptor, me: str) -> Dict[str, str]:
    if isinstance(descriptor, Room):
        return {"roomId": descriptor.room_id}
    if isinstance(descriptor, DirectMessage):
        return {"me": me, "with": descriptor.peer}
    if isinstance(descriptor, Broadcast):
        return {"me": me, "with": BROADCAST_RECEIVER}
    raise TypeError(f"unsupported conversation descriptor {type(descriptor).__name__}")


async def fetch_history(
    base_url: str,
    descriptor: ConversationDescriptor,
    me: str,
    *,
    timeout_s: float = 10.0,
) -> List[Message]:
    payload = await _request_json(
        "GET",
        _build_url(base_url, "/api/history"),
        params=history_params(descriptor, me),
        timeout_s=timeout_s,
    )
    if not isinstance(payload, list):
        return []
    return [message_from_dict(entry) for entry in payload if isinstance(entry, dict)]


async def upload_file(base_url: str, path: Path | str, *, timeout_s: float = 10.0) -> Upload:
    path = Path(path).expanduser()
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    with open(path, "rb") as handle:
        form = aiohttp.FormData()
        form.add_field("file", handle, filename=path.name, content_type=content_type)
        payload = await _request_json("POST", _build_url(base_url, "/api/upload"), data=form, timeout_s=timeout_s)
    if not isinstance(payload, dict):
        raise ValueError("upload response is not an object")
    return upload_from_dict(payload)


async def delete_chat(
    base_url: str,
    descriptor: ConversationDescriptor,
    me: str,
    *,
    timeout_s: float = 10.0,
) -> None:
    params = {"me": me}
    if isinstance(descriptor, Room):
        params["roomId"] = descriptor.room_id
    elif isinstance(descriptor, DirectMessage):
        params["withUser"] = descriptor.peer
    else:
        raise ValueError("the broadcast conversation cannot be deleted")
    await _request_json("POST", _build_url(base_url, "/api/chat/delete"), params=params, timeout_s=timeout_s)


def room_from_dict(payload: Mapping[str, Any]) -> Room:
    room_id = payload.get("id")
    if not isinstance(room_id, (str, int)) or isinstance(room_id, bool) or room_id == "":
        raise ValueError("room is missing its id")
    members = payload.get("members")
    if not isinstance(members, list):
        members = []
    return Room(
        room_id=str(room_id),
        display_name=str(payload.get("name") or ""),
        members=tuple(member for member in members if isinstance(member, str)),
    )


async def create_room(base_url: str, name: str, members: List[str], *, timeout_s: float = 10.0) -> Room:
    payload = await _request_json(
        "POST",
        _build_url(base_url, "/api/rooms"),
        json_body={"name": name, "members": members},
        timeout_s=timeout_s,
    )
    if not isinstance(payload, dict):
        raise ValueError("room response is not an object")
    return room_from_dict(payload)


async def list_rooms(base_url: str, me: str, *, timeout_s: float = 10.0) -> List[Room]:
    payload = await _request_json("GET", _build_url(base_url, "/api/rooms"), params={"me": me}, timeout_s=timeout_s)
    if not isinstance(payload, list):
        return []
    rooms = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        try:
            rooms.append(room_from_dict(entry))
        except ValueError:
            continue
    return rooms


async def list_users(base_url: str, *, timeout_s: float = 10.0) -> List[str]:
    payload = await _request_json("GET", _build_url(base_url, "/api/users"), timeout_s=timeout_s)
    if not isinstance(payload, list):
        return []
    return [entry for entry in payload if isinstance(entry, str)]


class RestCollaborators:
    """Binds the REST calls to one backend for use by the multiplexer."""

    def __init__(self, config: ClientConfig) -> None:
        self.base_url = config.api_base
        self.timeout_s = config.request_timeout_s

    async def fetch_history(self, descriptor: ConversationDescriptor, me: str) -> List[Message]:
        return await fetch_history(self.base_url, descriptor, me, timeout_s=self.timeout_s)

    async def upload(self, path: Path | str) -> Upload:
        return await upload_file(self.base_url, path, timeout_s=self.timeout_s)

    async def delete_chat(self, descriptor: ConversationDescriptor, me: str) -> None:
        await delete_chat(self.base_url, descriptor, me, timeout_s=self.timeout_s)

    async def create_room(self, name: str, members: List[str]) -> Room:
        return await create_room(self.base_url, name, members, timeout_s=self.timeout_s)

    async def list_rooms(self, me: str) -> List[Room]:
        return await list_rooms(self.base_url, me, timeout_s=self.timeout_s)

    async def list_users(self) -> List[str]:
        return await list_users(self.base_url, timeout_s=self.timeout_s)
