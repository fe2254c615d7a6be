"""Utility helpers to scrub credentials and tokens from logs and diagnostics."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
        re.DOTALL,
    ),  # PEM key blocks
    re.compile(r"\bBearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),  # bearer tokens
    re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"),  # compact JWTs
    re.compile(r"\bsk-[A-Za-z0-9_-]{8,}\b"),  # OpenAI keys
)

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "assertion",
        "authorization",
        "openai_api_key",
        "private_key",
        "gcp_private_key",
        "token",
    }
)

REDACTION_TOKEN = "[REDACTED]"


def mask_email(value: str | None) -> str | None:
    """Keep the first character of the local part and the domain."""
    if not value:
        return value
    local, sep, domain = value.partition("@")
    if not sep:
        return value[:2] + "***"
    return f"{local[:1]}***@{domain}"


def redact_text(
    value: str,
    *,
    patterns: Iterable[re.Pattern[str]] | None = None,
    replacement: str = REDACTION_TOKEN,
) -> str:
    """Redact key material and bearer credentials from text payloads."""
    compiled = tuple(patterns or DEFAULT_PATTERNS)
    scrubbed = value
    for pattern in compiled:
        scrubbed = pattern.sub(replacement, scrubbed)
    return scrubbed


def redact_mapping(
    payload: Mapping[str, Any],
    *,
    patterns: Iterable[re.Pattern[str]] | None = None,
    replacement: str = REDACTION_TOKEN,
) -> dict[str, Any]:
    """Recursively redact mapping values; sensitive keys are replaced wholesale."""
    compiled = tuple(patterns or DEFAULT_PATTERNS)
    result: dict[str, Any] = {}
    for key, value in payload.items():
        if str(key).lower() in SENSITIVE_KEYS and value:
            result[key] = replacement
            continue
        result[key] = _redact_value(value, compiled, replacement)
    return result


def _redact_value(
    value: Any,
    patterns: tuple[re.Pattern[str], ...],
    replacement: str,
) -> Any:
    if isinstance(value, str):
        return redact_text(value, patterns=patterns, replacement=replacement)
    if isinstance(value, Mapping):
        return redact_mapping(value, patterns=patterns, replacement=replacement)
    if isinstance(value, list):
        return [_redact_value(item, patterns, replacement) for item in value]
    if isinstance(value, tuple):
        return tuple(_redact_value(item, patterns, replacement) for item in value)
    return value


__all__ = ["mask_email", "redact_text", "redact_mapping", "REDACTION_TOKEN"]
