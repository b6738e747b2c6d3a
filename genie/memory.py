"""
genie.memory
============

Bounded chat history. Messages are kept in order; once the window holds more
than ``max_messages`` the oldest turns are evicted first. A system message
stays in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, List, Optional

__all__ = ["ChatMessage", "SystemMessage", "UserMessage", "AiMessage", "MessageWindow"]


@dataclass(eq=False)
class ChatMessage:
    """
    One chat turn. Equality is identity: two turns with the same text are
    still different turns.
    """

    text: str
    role: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}


@dataclass(eq=False)
class SystemMessage(ChatMessage):
    role: ClassVar[str] = "system"


@dataclass(eq=False)
class UserMessage(ChatMessage):
    role: ClassVar[str] = "user"


@dataclass(eq=False)
class AiMessage(ChatMessage):
    role: ClassVar[str] = "assistant"


class MessageWindow:
    """
    FIFO window of at most *max_messages* messages. The system message is
    never evicted. Not thread‑safe.
    """

    def __init__(self, max_messages: int = 10) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self._max_messages = max_messages
        self._messages: List[ChatMessage] = []

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def messages(self) -> List[ChatMessage]:
        """Copy of the current history, oldest first."""
        return list(self._messages)

    def add(self, message: ChatMessage) -> None:
        self._messages.append(message)
        while len(self._messages) > self._max_messages:
            self._evict_oldest()

    def clear(self) -> None:
        self._messages.clear()

    def ensure_system_message(self, make: Callable[[], SystemMessage]) -> bool:
        """Add ``make()`` when the window is empty; returns whether it did."""
        if self._messages:
            return False
        self.add(make())
        return True

    def remove_pair(self, user: Optional[ChatMessage], ai: Optional[ChatMessage]) -> int:
        """Remove exactly the given user and assistant instances; returns how many went."""
        removed = 0
        for target in (user, ai):
            if target is None:
                continue
            for index, message in enumerate(self._messages):
                if message is target:
                    del self._messages[index]
                    removed += 1
                    break
        return removed

    def __len__(self) -> int:
        return len(self._messages)

    def _evict_oldest(self) -> None:
        # the system prompt stays; the oldest conversation turn goes
        for index, message in enumerate(self._messages):
            if not isinstance(message, SystemMessage):
                del self._messages[index]
                return
        del self._messages[0]
