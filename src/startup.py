"""Startup helpers for service account credential loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

_LOG = logging.getLogger(__name__)

_CREDENTIAL_KEYS = ("client_email", "private_key_id", "private_key")


def normalise_private_key(value: str | None) -> str | None:
    """Turn literal ``\\n`` sequences (common in env vars) into newlines."""
    if value is None:
        return None
    return value.replace("\\n", "\n")


def load_service_account_info(raw: str | None) -> Dict[str, Any]:
    """Read a service account JSON document given inline or as a file path.

    Returns only the credential keys this service needs; an unreadable or
    malformed document yields an empty mapping and a warning.
    """
    if not raw:
        return {}
    trimmed = raw.strip()
    if not trimmed:
        return {}

    payload = trimmed
    if not trimmed.startswith("{"):
        try:
            secret_path = Path(trimmed)
            if not secret_path.is_file():
                _LOG.warning(
                    "SERVICE_ACCOUNT_JSON path does not exist; ignoring",
                    extra={"path": str(secret_path)},
                )
                return {}
            payload = secret_path.read_text(encoding="utf-8")
        except OSError as exc:
            _LOG.warning(
                "SERVICE_ACCOUNT_JSON path could not be read; ignoring",
                extra={"error": str(exc)},
            )
            return {}
    try:
        info = json.loads(payload)
    except json.JSONDecodeError as exc:
        _LOG.warning(
            "SERVICE_ACCOUNT_JSON is not valid JSON; ignoring",
            extra={"error": str(exc)},
        )
        return {}
    if not isinstance(info, dict):
        _LOG.warning("SERVICE_ACCOUNT_JSON must be a JSON object; ignoring")
        return {}
    return {key: info[key] for key in _CREDENTIAL_KEYS if info.get(key)}


__all__ = ["load_service_account_info", "normalise_private_key"]
