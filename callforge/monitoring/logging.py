"""
Structured Logging

Every log line the engine emits passes through a structlog processor chain
that tags the service, merges the bound execution context, hides
credentials and shortens raw calldata or bytecode before rendering.

Rendering and level come from CallForgeConfig (``log_json``/``log_level``)
unless overridden by the caller.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from ..config import CallForgeConfig

SERVICE_NAME = "callforge"

REDACTED = "[REDACTED]"

# Matched as lowercase substrings of event keys
SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "apikey",
        "access_token",
        "authorization",
        "bearer",
        "secret",
        "password",
        "private_key",
        "privatekey",
        "mnemonic",
        "seed",
    }
)

# Hex strings longer than this (selector plus two words) are shortened
MAX_HEX_CHARS = 138

_MAX_DEPTH = 10

_NOISY_LOGGERS = ("httpx", "httpcore", "web3", "urllib3", "asyncio")


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and any(marker in key.lower() for marker in SENSITIVE_KEYS)


def _redact(value: Any, depth: int = 0) -> Any:
    if depth > _MAX_DEPTH:
        return value
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(k) else _redact(v, depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(item, depth + 1) for item in value]
    return value


def _shorten(value: Any, depth: int = 0) -> Any:
    if depth > _MAX_DEPTH:
        return value
    if isinstance(value, str):
        if value.startswith("0x") and len(value) > MAX_HEX_CHARS:
            size = (len(value) - 2) // 2
            return f"{value[:18]}...{value[-8:]} ({size} bytes)"
        return value
    if isinstance(value, dict):
        return {k: _shorten(v, depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [_shorten(item, depth + 1) for item in value]
    return value


# =============================================================================
# Processors
# =============================================================================


def add_service_info(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag the entry with the service name."""
    event_dict["service"] = SERVICE_NAME
    return event_dict


def sanitize_sensitive_data(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Replace the value of every credential-like key with a placeholder.

    Keys are compared case-insensitively against SENSITIVE_KEYS by substring,
    so ``Etherscan_API_Key`` and ``relayer_api_key`` are both caught. Nested
    dicts and lists (request headers, execution configs) are walked too.
    """
    sanitized: EventDict = _redact(event_dict)
    return sanitized


def shorten_hex_payloads(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Collapse long 0x-prefixed strings such as calldata and bytecode."""
    shortened: EventDict = _shorten(event_dict)
    return shortened


# =============================================================================
# Configuration
# =============================================================================


def build_processors(json_output: bool, sanitize_logs: bool = True) -> list[Processor]:
    """Assemble the processor chain, ending in the renderer."""
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        add_service_info,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if sanitize_logs:
        chain.append(sanitize_sensitive_data)
    chain.append(shorten_hex_payloads)

    if json_output:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def configure_logging(
    config: CallForgeConfig | None = None,
    *,
    level: str | None = None,
    json_output: bool | None = None,
    sanitize_logs: bool = True,
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        config: Engine settings to read ``log_level`` and ``log_json`` from;
            the global configuration is used when omitted
        level: Overrides the configured level
        json_output: Overrides the configured renderer
        sanitize_logs: Redact credentials before rendering
    """
    if config is None:
        from ..config import get_config

        config = get_config()

    level_name = (level or config.log_level).upper()
    render_json = config.log_json if json_output is None else json_output

    structlog.configure(
        processors=build_processors(render_json, sanitize_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level_name, logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually for ``__name__``."""
    bound: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return bound


# =============================================================================
# Execution Context
# =============================================================================


def bind_context(**kwargs: Any) -> None:
    """Attach values (network, execution method, tx hash) to every later entry."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
