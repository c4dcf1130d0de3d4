from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional

from .hub import PRESENCE, PRESENCE_TOPIC, ChangeHub

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Holds the latest online snapshot pushed by the server.

    Each snapshot replaces the previous one wholesale; there are no deltas
    and no expiry timer.
    """

    def __init__(self, hub: Optional[ChangeHub] = None) -> None:
        self._hub = hub
        self._online: FrozenSet[str] = frozenset()

    @property
    def online(self) -> FrozenSet[str]:
        return self._online

    def apply_snapshot(self, online: Iterable[str], self_identity: str) -> FrozenSet[str]:
        snapshot = frozenset(identity for identity in online if identity != self_identity)
        self._online = snapshot
        logger.debug("presence snapshot: %d online", len(snapshot))
        if self._hub is not None:
            self._hub.publish(PRESENCE_TOPIC, PRESENCE)
        return snapshot

    def is_online(self, identity: str) -> bool:
        return identity in self._online
