"""
Conversation store: turn history and user settings per sender identity.

In-memory reference implementation of the persistence collaborator. History
is a bounded most-recent-N window; settings are created lazily with defaults
on first contact.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from truelive_chat.config import CONVERSATION
from truelive_chat.errors import PersistenceError
from truelive_chat.language import Language


class ResponseLength(Enum):
    """Preferred answer length."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(frozen=True)
class ConversationTurn:
    """One completed question/answer exchange."""

    question: str
    answer: str
    timestamp: float = field(default_factory=time.time)
    document_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON transport."""
        return {
            "question": self.question,
            "answer": self.answer,
            "timestamp": self.timestamp,
            "document_ids": list(self.document_ids),
        }


@dataclass(frozen=True)
class UserSettings:
    """Per-identity preferences."""

    show_sources: bool = False
    language: Language = Language.AUTO
    response_length: ResponseLength = ResponseLength.MEDIUM
    receive_news: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON transport."""
        data = asdict(self)
        data["language"] = self.language.value
        data["response_length"] = self.response_length.value
        return data


def last_turns(turns: list[ConversationTurn], count: int) -> list[ConversationTurn]:
    """Return the last `count` turns; a count of zero or less yields []."""
    if count <= 0:
        return []
    return list(turns[-count:])


def format_transcript(turns: list[ConversationTurn], answer_chars: int | None = None) -> str:
    """
    Render turns as a plain transcript for prompts.

    Args:
        turns: Turns in chronological order.
        answer_chars: Cap on characters kept from each answer.

    Returns:
        "User: ...\\nAssistant: ..." blocks separated by blank lines, or "".
    """
    cap = answer_chars or CONVERSATION.TRANSCRIPT_ANSWER_CHARS
    blocks = []
    for turn in turns:
        answer = turn.answer[:cap]
        if len(turn.answer) > cap:
            answer += "..."
        blocks.append(f"User: {turn.question}\nAssistant: {answer}")
    return "\n\n".join(blocks)


class ConversationStore:
    """
    Holds conversation history and settings keyed by sender identity.

    Features:
    - Bounded history per identity (oldest turns dropped)
    - Lazy default settings
    - Per-identity locks so one identity's turns and commands run one at a time
    - asyncio-safe access
    """

    def __init__(self, max_turns: int | None = None) -> None:
        """
        Initialize conversation store.

        Args:
            max_turns: Turns retained per identity.
        """
        self.max_turns = max_turns or CONVERSATION.MAX_HISTORY_TURNS

        self._history: dict[str, deque[ConversationTurn]] = {}
        self._settings: dict[str, UserSettings] = {}
        # Entries vanish once no turn or command holds the lock
        self._identity_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._lock = asyncio.Lock()

    def lock_for(self, identity: str) -> asyncio.Lock:
        """Lock serializing turns of a single identity."""
        lock = self._identity_locks.get(identity)
        if lock is None:
            lock = asyncio.Lock()
            self._identity_locks[identity] = lock
        return lock

    async def get_recent_turns(self, identity: str, limit: int | None = None) -> list[ConversationTurn]:
        """
        Get the most recent turns, oldest first.

        Args:
            identity: Sender identity.
            limit: Number of turns; defaults to the context window.
        """
        window = CONVERSATION.CONTEXT_WINDOW if limit is None else limit
        async with self._lock:
            turns = list(self._history.get(identity, ()))
        return last_turns(turns, window)

    async def append_turn(self, identity: str, turn: ConversationTurn) -> None:
        """
        Record a completed turn.

        Raises:
            PersistenceError: If the turn cannot be recorded.
        """
        if not identity:
            raise PersistenceError("Cannot persist a turn without a sender identity")

        async with self._lock:
            history = self._history.get(identity)
            if history is None:
                history = deque(maxlen=self.max_turns)
                self._history[identity] = history
            history.append(turn)

    async def get_settings(self, identity: str) -> UserSettings:
        """Get settings, creating defaults on first contact."""
        async with self._lock:
            settings = self._settings.get(identity)
            if settings is None:
                settings = UserSettings()
                self._settings[identity] = settings
            return settings

    async def update_settings(self, identity: str, **changes: Any) -> UserSettings:
        """
        Merge changes into an identity's settings.

        Raises:
            PersistenceError: If a field name is unknown.
        """
        async with self._lock:
            current = self._settings.get(identity) or UserSettings()
            try:
                updated = replace(current, **changes)
            except TypeError as e:
                raise PersistenceError(f"Invalid settings update: {e}") from e
            self._settings[identity] = updated
            return updated

    async def clear_history(self, identity: str) -> bool:
        """
        Forget an identity's history.

        Returns:
            True if there was history to delete.
        """
        async with self._lock:
            return self._history.pop(identity, None) is not None

    def get_stats(self) -> dict[str, int]:
        """Get store statistics."""
        return {
            "identities_with_history": len(self._history),
            "identities_with_settings": len(self._settings),
            "identity_locks": len(self._identity_locks),
            "max_turns": self.max_turns,
        }
