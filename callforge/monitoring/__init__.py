"""Logging setup for the engine."""

from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_sensitive_data,
    shorten_hex_payloads,
    unbind_context,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "sanitize_sensitive_data",
    "shorten_hex_payloads",
]
