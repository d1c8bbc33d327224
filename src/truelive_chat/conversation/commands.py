"""
Configuration commands sent as chat messages.

    /config fontes on       /config sources off
    /config noticias sim    /config news no

Anything else gets the help text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from truelive_chat.conversation.store import ConversationStore

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/config"

SOURCES_TOKENS = frozenset({"fontes", "sources"})
NEWS_TOKENS = frozenset({"noticias", "notícias", "news"})
ENABLE_TOKENS = frozenset({"on", "sim", "yes"})
DISABLE_TOKENS = frozenset({"off", "não", "nao", "no"})

HELP_TEXT = """🔧 Comandos de configuração disponíveis:

/config fontes on - Ativar exibição de fontes
/config fontes off - Desativar exibição de fontes
/config noticias on - Ativar recebimento de notícias
/config noticias off - Desativar recebimento de notícias"""


@dataclass(frozen=True)
class ConfigCommand:
    """A parsed settings toggle."""

    setting: str  # UserSettings field name
    enabled: bool


def is_config_command(message: str) -> bool:
    """Check whether a chat message is a configuration command."""
    return message.strip().lower().startswith(COMMAND_PREFIX)


def parse_config_command(message: str) -> ConfigCommand | None:
    """
    Parse a /config message.

    Returns:
        The toggle, or None when the parameters are not recognized.
    """
    tokens = message.strip().lower().split()
    if not tokens or tokens[0] != COMMAND_PREFIX:
        return None

    params = set(tokens[1:])

    if params & SOURCES_TOKENS:
        setting = "show_sources"
    elif params & NEWS_TOKENS:
        setting = "receive_news"
    else:
        return None

    if params & ENABLE_TOKENS:
        return ConfigCommand(setting=setting, enabled=True)
    if params & DISABLE_TOKENS:
        return ConfigCommand(setting=setting, enabled=False)
    return None


def _confirmation(command: ConfigCommand) -> str:
    state = "ativada" if command.enabled else "desativada"
    if command.setting == "show_sources":
        return f"✅ Configuração atualizada: exibição de fontes {state}."
    state = "ativado" if command.enabled else "desativado"
    return f"✅ Configuração atualizada: recebimento de notícias {state}."


async def apply_config_command(store: ConversationStore, identity: str, message: str) -> str:
    """
    Apply a configuration command and return the reply text.

    Args:
        store: Settings owner.
        identity: Sender identity.
        message: Raw /config message.
    """
    command = parse_config_command(message)
    if command is None:
        return HELP_TEXT

    # Waits for any in-flight turn of the same sender
    async with store.lock_for(identity):
        await store.update_settings(identity, **{command.setting: command.enabled})
    logger.info(f"Setting {command.setting} set to {command.enabled}")
    return _confirmation(command)
