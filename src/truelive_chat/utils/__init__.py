"""Utility modules."""

from truelive_chat.utils.logging import get_logger, hash_identity, setup_logging

__all__ = [
    "get_logger",
    "hash_identity",
    "setup_logging",
]
