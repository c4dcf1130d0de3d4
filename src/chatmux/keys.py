"""Canonical conversation keys.

Every conversation kind lives in its own namespace so a room id can never
produce the same key as a pair of usernames or the broadcast channel:

* broadcast: ``ALL``
* direct messages: ``DM__<len(first)>:<first>__<second>`` with the two
  participants sorted, so both sides derive the same key
* rooms: ``ROOM__<room_id>``
"""

from __future__ import annotations

from typing import Union

from .models import (
    BROADCAST_RECEIVER,
    Broadcast,
    ConversationDescriptor,
    DirectMessage,
    Message,
    Room,
)

BROADCAST_KEY = "ALL"
DM_PREFIX = "DM__"
ROOM_PREFIX = "ROOM__"
SEPARATOR = "__"


def broadcast_key() -> str:
    return BROADCAST_KEY


def dm_key(a: str, b: str) -> str:
    # The length prefix keeps the split point unambiguous even when a
    # username itself contains the separator.
    first, second = sorted((a, b))
    return f"{DM_PREFIX}{len(first)}:{first}{SEPARATOR}{second}"


def room_key(room_id: str) -> str:
    return f"{ROOM_PREFIX}{room_id}"


def key_for_message(message: Message) -> str:
    """Attribute an inbound message to its conversation.

    Messages without a room id and without a non-broadcast receiver are
    routed to the broadcast channel.
    """

    if message.room_id:
        return room_key(message.room_id)
    if message.receiver and message.receiver != BROADCAST_RECEIVER:
        return dm_key(message.sender, message.receiver)
    return BROADCAST_KEY


def key_for(target: Union[ConversationDescriptor, Message], self_identity: str) -> str:
    if isinstance(target, Message):
        return key_for_message(target)
    if isinstance(target, Broadcast):
        return BROADCAST_KEY
    if isinstance(target, DirectMessage):
        return dm_key(self_identity, target.peer)
    if isinstance(target, Room):
        return room_key(target.room_id)
    raise TypeError(f"cannot derive a conversation key from {type(target).__name__}")
