"""Facade a UI binds to: one socket, many conversations.

The multiplexer owns the session state (history store, presence set and the
live connection) for one identity and tracks which conversation is on
screen. Collaborators are any object exposing the coroutines of
:class:`chatmux.rest_api.RestCollaborators`: ``fetch_history``, ``upload``,
``delete_chat``, ``create_room``, ``list_rooms`` and ``list_users``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .config import ClientConfig, load_config_from_env
from .connection import CLOSED, Connection
from .errors import ChatMuxError, ErrorObserver, FetchFailed, SendRejected, TransportError
from .history import HistoryFetcher, HistoryStore
from .hub import Callback, ChangeHub, Subscription
from .keys import BROADCAST_KEY, key_for
from .models import (
    BROADCAST,
    BROADCAST_RECEIVER,
    Attachment,
    Broadcast,
    ConversationDescriptor,
    DirectMessage,
    Message,
    Room,
    Upload,
)
from .presence import PresenceTracker
from .rest_api import RestCollaborators

logger = logging.getLogger(__name__)


def outbound_message(
    descriptor: ConversationDescriptor,
    sender: str,
    *,
    content: str = "",
    attachment: Optional[Attachment] = None,
) -> Message:
    if isinstance(descriptor, Room):
        return Message(sender=sender, content=content, room_id=descriptor.room_id, attachment=attachment)
    if isinstance(descriptor, DirectMessage):
        return Message(sender=sender, content=content, receiver=descriptor.peer, attachment=attachment)
    return Message(sender=sender, content=content, receiver=BROADCAST_RECEIVER, attachment=attachment)


def _log_error(error: ChatMuxError) -> None:
    logger.warning("%s", error)


class Multiplexer:
    def __init__(
        self,
        identity: str,
        config: Optional[ClientConfig] = None,
        *,
        collaborators: Any = None,
        on_error: Optional[ErrorObserver] = None,
    ) -> None:
        self.config = config if config is not None else load_config_from_env()
        self.collaborators = collaborators if collaborators is not None else RestCollaborators(self.config)
        self._on_error = on_error or _log_error
        self.hub = ChangeHub()
        self.identity = identity
        self.connection: Optional[Connection] = None
        self.users: List[str] = []
        self.rooms: List[Room] = []
        self._reset_session_state()

    def _reset_session_state(self) -> None:
        self.presence = PresenceTracker(self.hub)
        self.store = HistoryStore(self.hub, on_error=self._on_error)
        self.active: ConversationDescriptor = BROADCAST
        self.active_key = BROADCAST_KEY

    async def __aenter__(self) -> "Multiplexer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Session lifecycle

    async def start(self) -> bool:
        """Open the session socket, load the active conversation and directories.

        Returns False when the socket could not be opened; the failure has
        already been reported and the history and directories still load.
        Every start is a fresh session: cached conversations and presence
        from a previous one are discarded, the selection is kept.
        """

        await self.close()
        active = self.active
        self._reset_session_state()
        self.active = active
        self.active_key = key_for(active, self.identity)
        connection = Connection(
            self.config.ws_url(self.identity),
            self.identity,
            presence=self.presence,
            store=self.store,
            on_error=self._on_error,
            heartbeat_s=self.config.heartbeat_s,
        )
        self.connection = connection
        try:
            await connection.open()
            connected = True
        except TransportError:
            connected = False
        self.store.begin_load(self.active_key, self._fetcher_for(self.active))
        await self.refresh_directory()
        return connected

    async def close(self) -> None:
        connection = self.connection
        self.connection = None
        if connection is not None:
            await connection.close()

    async def switch_identity(self, identity: str) -> bool:
        await self.close()
        self.identity = identity
        self._reset_session_state()
        self.users = []
        self.rooms = []
        return await self.start()

    @property
    def state(self) -> str:
        return self.connection.state if self.connection is not None else CLOSED

    # Conversations

    def _fetcher_for(self, descriptor: ConversationDescriptor) -> HistoryFetcher:
        identity = self.identity

        async def fetch():
            return await self.collaborators.fetch_history(descriptor, identity)

        return fetch

    def select_conversation(self, descriptor: ConversationDescriptor) -> str:
        key = key_for(descriptor, self.identity)
        if key != self.active_key:
            logger.debug("active conversation %s -> %s", self.active_key, key)
        self.active = descriptor
        self.active_key = key
        # No-op for a conversation that is already loaded or loading.
        self.store.begin_load(key, self._fetcher_for(descriptor))
        return key

    async def wait_loaded(self) -> None:
        pending = self.store.begin_load(self.active_key, self._fetcher_for(self.active))
        if pending is not None:
            await asyncio.shield(pending)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.store.messages(self.active_key)

    @property
    def conversation_state(self) -> str:
        return self.store.state(self.active_key)

    @property
    def online(self):
        return self.presence.online

    def is_online(self, identity: str) -> bool:
        return self.presence.is_online(identity)

    def subscribe(self, callback: Callback, topic: Optional[str] = None) -> Subscription:
        return self.hub.subscribe(callback, topic)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.hub.unsubscribe(subscription)

    # Sending

    async def _send(self, message: Message) -> Message:
        connection = self.connection
        if connection is None:
            raise SendRejected(CLOSED)
        await connection.send(message)
        return message

    async def send(self, text: str) -> Optional[Message]:
        content = text.strip()
        if not content:
            return None
        return await self._send(outbound_message(self.active, self.identity, content=content))

    async def send_attachment(self, upload: Upload) -> Message:
        attachment = Attachment.from_upload(upload)
        return await self._send(outbound_message(self.active, self.identity, attachment=attachment))

    async def upload_and_send(self, path: Path | str) -> Message:
        try:
            upload = await self.collaborators.upload(path)
        except Exception as exc:
            error = FetchFailed(f"upload of {path}", exc)
            self._on_error(error)
            raise error from exc
        return await self.send_attachment(upload)

    # Directory and remote mutations

    async def delete_conversation(self, descriptor: Optional[ConversationDescriptor] = None) -> str:
        target = self.active if descriptor is None else descriptor
        if isinstance(target, Broadcast):
            raise ValueError("the broadcast conversation cannot be deleted")
        await self.collaborators.delete_chat(target, self.identity)
        key = key_for(target, self.identity)
        self.store.drop(key)
        if key == self.active_key:
            self.store.begin_load(key, self._fetcher_for(target))
        return key

    async def create_room(self, name: str, members: List[str]) -> Room:
        members = [member for member in members if member]
        if self.identity not in members:
            members.append(self.identity)
        room = await self.collaborators.create_room(name, members)
        await self.refresh_rooms()
        self.select_conversation(room)
        return room

    async def refresh_users(self) -> List[str]:
        try:
            users = await self.collaborators.list_users()
        except Exception as exc:
            self._on_error(FetchFailed("user directory", exc))
            users = []
        self.users = [user for user in users if user != self.identity]
        return self.users

    async def refresh_rooms(self) -> List[Room]:
        try:
            rooms = await self.collaborators.list_rooms(self.identity)
        except Exception as exc:
            self._on_error(FetchFailed("room directory", exc))
            rooms = []
        self.rooms = list(rooms)
        return self.rooms

    async def refresh_directory(self) -> None:
        await asyncio.gather(self.refresh_users(), self.refresh_rooms())
