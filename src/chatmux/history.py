"""Per-conversation message cache with a one-time history load.

Live messages are appended as soon as they arrive, whatever the load state.
When the history fetch resolves, the fetched messages become the prefix of
the conversation and any held message the history does not already contain
is kept after it, in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Hashable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .errors import ErrorObserver, FetchFailed
from .frames import message_from_dict
from .hub import APPEND, RESET, ChangeHub
from .models import Message

logger = logging.getLogger(__name__)

UNLOADED = "unloaded"
LOADING = "loading"
LOADED = "loaded"

HistoryFetcher = Callable[[], Awaitable[Sequence[Union[Message, Mapping[str, object]]]]]


@dataclass(eq=False)
class Conversation:
    key: str
    messages: List[Message] = field(default_factory=list)
    state: str = UNLOADED

    @property
    def loaded(self) -> bool:
        return self.state == LOADED


def message_identity(message: Message) -> Hashable:
    """Content identity used to recognise a live message inside fetched history.

    Used when the two copies do not both carry a server id: sender, content,
    timestamp and the attachment url.
    """

    url = message.attachment.url if message.attachment is not None else None
    return (message.sender, message.content, message.timestamp, url)


def _take(positions: Dict[Hashable, Deque[int]], key: Hashable, consumed: Set[int]) -> bool:
    queue = positions.get(key)
    while queue:
        index = queue.popleft()
        if index not in consumed:
            consumed.add(index)
            return True
    return False


def merge_history(history: Sequence[Message], held: Sequence[Message]) -> List[Message]:
    """History first, then every held message it does not already contain.

    Two copies carrying a server id match on that id alone; otherwise they
    match on :func:`message_identity`. Each history entry absorbs at most one
    held message.
    """

    by_id: Dict[Hashable, Deque[int]] = defaultdict(deque)
    by_content: Dict[Hashable, Deque[int]] = defaultdict(deque)
    by_content_without_id: Dict[Hashable, Deque[int]] = defaultdict(deque)
    for index, message in enumerate(history):
        identity = message_identity(message)
        by_content[identity].append(index)
        if message.message_id:
            by_id[message.message_id].append(index)
        else:
            by_content_without_id[identity].append(index)

    merged = list(history)
    consumed: Set[int] = set()
    for message in held:
        identity = message_identity(message)
        if message.message_id:
            matched = _take(by_id, message.message_id, consumed) or _take(
                by_content_without_id, identity, consumed
            )
        else:
            matched = _take(by_content, identity, consumed)
        if not matched:
            merged.append(message)
    return merged


def _log_error(error: Exception) -> None:
    logger.warning("%s", error)


class HistoryStore:
    def __init__(self, hub: Optional[ChangeHub] = None, *, on_error: Optional[ErrorObserver] = None) -> None:
        self._hub = hub
        self._on_error = on_error or _log_error
        self._conversations: Dict[str, Conversation] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._tasks: Set[asyncio.Future] = set()

    def get(self, key: str) -> Optional[Conversation]:
        return self._conversations.get(key)

    def keys(self) -> List[str]:
        return list(self._conversations)

    def messages(self, key: str) -> Tuple[Message, ...]:
        conversation = self._conversations.get(key)
        if conversation is None:
            return ()
        return tuple(conversation.messages)

    def state(self, key: str) -> str:
        conversation = self._conversations.get(key)
        return conversation.state if conversation is not None else UNLOADED

    def _conversation(self, key: str) -> Conversation:
        conversation = self._conversations.get(key)
        if conversation is None:
            conversation = Conversation(key)
            self._conversations[key] = conversation
        return conversation

    def _publish(self, key: str, kind: str) -> None:
        if self._hub is not None:
            self._hub.publish(key, kind)

    def append_live(self, key: str, message: Message) -> None:
        self._conversation(key).messages.append(message)
        self._publish(key, APPEND)

    def begin_load(self, key: str, fetcher: HistoryFetcher) -> Optional[asyncio.Future]:
        """Start the history load for ``key`` unless it is loaded or loading.

        Returns the pending load (new or already in flight), or ``None`` when
        the conversation is already loaded. Must be called from a running
        event loop.
        """

        conversation = self._conversation(key)
        if conversation.state == LOADED:
            return None
        pending = self._pending.get(key)
        if pending is not None:
            return pending
        conversation.state = LOADING
        task = asyncio.ensure_future(self._load(conversation, fetcher))
        self._pending[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("history fetch issued for %s", key)
        return task

    async def ensure_loaded(self, key: str, fetcher: HistoryFetcher) -> Conversation:
        pending = self.begin_load(key, fetcher)
        conversation = self._conversations[key]
        if pending is not None:
            await asyncio.shield(pending)
        return conversation

    async def _load(self, conversation: Conversation, fetcher: HistoryFetcher) -> None:
        key = conversation.key
        try:
            fetched = await fetcher()
            history = [item if isinstance(item, Message) else message_from_dict(item) for item in fetched]
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._on_error(FetchFailed(key, exc))
            history = []
        finally:
            if self._pending.get(key) is asyncio.current_task():
                self._pending.pop(key, None)

        if self._conversations.get(key) is not conversation:
            logger.debug("discarding history for dropped conversation %s", key)
            return
        conversation.messages = merge_history(history, conversation.messages)
        conversation.state = LOADED
        self._publish(key, RESET)

    def drop(self, key: str) -> bool:
        conversation = self._conversations.pop(key, None)
        self._pending.pop(key, None)
        if conversation is None:
            return False
        self._publish(key, RESET)
        return True
