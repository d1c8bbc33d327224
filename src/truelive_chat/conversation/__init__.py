"""Conversation history, user settings and configuration commands."""

from truelive_chat.conversation.commands import (
    HELP_TEXT,
    apply_config_command,
    is_config_command,
    parse_config_command,
)
from truelive_chat.conversation.store import (
    ConversationStore,
    ConversationTurn,
    ResponseLength,
    UserSettings,
    format_transcript,
    last_turns,
)

__all__ = [
    "HELP_TEXT",
    "apply_config_command",
    "is_config_command",
    "parse_config_command",
    "ConversationStore",
    "ConversationTurn",
    "ResponseLength",
    "UserSettings",
    "format_transcript",
    "last_turns",
]
