from __future__ import annotations

from typing import Callable, Optional


class ChatMuxError(Exception):
    pass


class TransportError(ChatMuxError):
    """The socket could not be opened, or broke while in use."""


class SendRejected(ChatMuxError):
    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"not connected (connection is {state})")


class FetchFailed(ChatMuxError):
    def __init__(self, target: str, cause: Optional[BaseException] = None) -> None:
        self.target = target
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"fetch for {target} failed{detail}")


class MalformedFrame(ChatMuxError):
    def __init__(self, reason: str, raw: object = None) -> None:
        self.reason = reason
        self.raw = raw
        super().__init__(f"malformed frame: {reason}")


ErrorObserver = Callable[[ChatMuxError], None]
