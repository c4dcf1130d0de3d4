"""Client-side conversation multiplexing over a single chat socket."""

from .connection import CLOSED, CONNECTING, OPEN, Connection
from .errors import ChatMuxError, FetchFailed, MalformedFrame, SendRejected, TransportError
from .history import Conversation, HistoryStore, merge_history
from .hub import ChangeHub, Subscription
from .keys import BROADCAST_KEY, dm_key, key_for, key_for_message, room_key
from .models import BROADCAST, Attachment, Broadcast, DirectMessage, Message, Room, Upload
from .multiplexer import Multiplexer
from .presence import PresenceTracker

__all__ = [
    "BROADCAST",
    "BROADCAST_KEY",
    "CLOSED",
    "CONNECTING",
    "OPEN",
    "Attachment",
    "Broadcast",
    "ChangeHub",
    "ChatMuxError",
    "Connection",
    "Conversation",
    "DirectMessage",
    "FetchFailed",
    "HistoryStore",
    "MalformedFrame",
    "Message",
    "Multiplexer",
    "PresenceTracker",
    "Room",
    "SendRejected",
    "Subscription",
    "TransportError",
    "Upload",
    "dm_key",
    "key_for",
    "key_for_message",
    "merge_history",
    "room_key",
]
