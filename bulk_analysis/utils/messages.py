"""Single-slot user-visible status message."""

from enum import Enum
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Category of status message."""
    INFO = "info"
    PROGRESS = "progress"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


GLYPHS = {
    MessageKind.INFO: "ℹ️",
    MessageKind.PROGRESS: "⏳",
    MessageKind.SUCCESS: "✅",
    MessageKind.WARNING: "⚠️",
    MessageKind.ERROR: "❌",
}


class StatusMessage:
    """
    One message slot shared by progress, success and error output.

    A new message always replaces the previous one. Listeners are called
    with the rendered text (or None on clear).
    """

    def __init__(self):
        self.kind: Optional[MessageKind] = None
        self.body: str = ""
        self._listeners: List[Callable[[Optional[str]], None]] = []

    def subscribe(self, listener: Callable[[Optional[str]], None]) -> None:
        self._listeners.append(listener)

    @property
    def text(self) -> str:
        if self.kind is None:
            return ""
        return f"{GLYPHS[self.kind]} {self.body}"

    @property
    def is_error(self) -> bool:
        return self.kind == MessageKind.ERROR

    def set(self, kind: MessageKind, body: str) -> None:
        self.kind = kind
        self.body = body
        logger.debug(f"Status: {self.text}")
        for listener in self._listeners:
            listener(self.text)

    def info(self, body: str) -> None:
        self.set(MessageKind.INFO, body)

    def progress(self, body: str) -> None:
        self.set(MessageKind.PROGRESS, body)

    def success(self, body: str) -> None:
        self.set(MessageKind.SUCCESS, body)

    def warning(self, body: str) -> None:
        self.set(MessageKind.WARNING, body)

    def error(self, body: str) -> None:
        self.set(MessageKind.ERROR, body)

    def clear(self) -> None:
        self.kind = None
        self.body = ""
        for listener in self._listeners:
            listener(None)

    def __str__(self):
        return self.text
