from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

# Change kinds published on the hub.
APPEND = "append"
RESET = "reset"
PRESENCE = "presence"

PRESENCE_TOPIC = "presence"

logger = logging.getLogger(__name__)

Callback = Callable[[str, str], None]


@dataclass(eq=False)
class Subscription:
    topic: Optional[str]
    callback: Callback

    def deliver(self, topic: str, kind: str) -> None:
        self.callback(topic, kind)


class ChangeHub:
    """Registers change listeners and notifies them per topic.

    Topics are conversation keys plus :data:`PRESENCE_TOPIC`. A subscription
    without a topic receives every change.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[Optional[str], List[Subscription]] = {}

    def subscribe(self, callback: Callback, topic: Optional[str] = None) -> Subscription:
        subscription = Subscription(topic=topic, callback=callback)
        self._subscriptions.setdefault(topic, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.topic)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            self._subscriptions.pop(subscription.topic, None)

    def publish(self, topic: str, kind: str) -> None:
        targets = list(self._subscriptions.get(topic, []))
        targets.extend(self._subscriptions.get(None, []))
        for subscription in targets:
            # Listener failures are logged; delivery continues.
            try:
                subscription.deliver(topic, kind)
            except Exception:
                logger.exception("subscriber for %s raised on %s", topic, kind)
