"""Logging setup for the CLI and masking of credentials in log output."""

import logging
import re
from typing import Any

# litellm and its HTTP client log every request at INFO, headers included.
PROVIDER_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx")

_CREDENTIAL_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization)", re.IGNORECASE)


def configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for name in PROVIDER_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))


def mask_secret(value: str) -> str:
    """Keep the last four characters of long credentials so keys stay distinguishable in logs."""
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


def redact_text(text: str, secret: str | None) -> str:
    if not secret:
        return text
    return text.replace(secret, mask_secret(secret))


def redact_payload(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: _redact(key, value) for key, value in payload.items()}


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, list):
        return [_redact(key, item) for item in value]
    if _CREDENTIAL_KEYS.search(key) and value:
        return mask_secret(str(value))
    if isinstance(value, dict):
        return redact_payload(value)
    return value
