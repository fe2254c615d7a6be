"""OAuth2 service-account token acquisition (JWT bearer grant).

A signed RS256 assertion is built from the service credential with google-auth
and exchanged at the token endpoint for a short-lived bearer token. Nothing is cached:
every call performs a full exchange.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from google.auth import crypt
from google.auth import jwt as google_jwt

from src.errors import (
    CredentialError,
    KeyDecodeError,
    SigningError,
    TokenExchangeError,
    TransportError,
)
from src.utils.logging_utils import structured_log
from src.utils.redact import mask_email

from .interfaces import MetricsClient
from .metrics import NullMetrics

_LOG = logging.getLogger("token_provider")

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600

_PEM_BOUNDARY_RE = re.compile(r"-----[^-]+-----")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class ServiceCredential:
    """Service account identity used to sign token assertions."""

    client_email: str | None
    private_key_id: str | None
    private_key: str | None

    def __repr__(self) -> str:
        key_state = "set" if self.private_key else "missing"
        return (
            f"ServiceCredential(client_email={mask_email(self.client_email)!r}, "
            f"private_key_id={'set' if self.private_key_id else 'missing'}, "
            f"private_key={key_state})"
        )

    __str__ = __repr__


@dataclass(frozen=True, slots=True)
class AccessToken:
    token: str
    expires_in: int = ASSERTION_LIFETIME_SECONDS
    token_type: str = "Bearer"

    def __repr__(self) -> str:
        return f"AccessToken(token=***, expires_in={self.expires_in}, token_type={self.token_type!r})"

    def authorization_header(self) -> str:
        return f"Bearer {self.token}"


def require_credential(credential: ServiceCredential | None) -> ServiceCredential:
    if credential is None:
        raise CredentialError("Service credential is not configured")
    missing = [
        name
        for name in ("client_email", "private_key_id", "private_key")
        if not getattr(credential, name)
    ]
    if missing:
        raise CredentialError(
            "Missing service credential fields: " + ", ".join(missing)
        )
    return credential


def load_signing_key(private_key: str) -> rsa.RSAPrivateKey:
    """Decode a PEM private key (PKCS#8 or PKCS#1) into an RSA signing key."""
    body = _WHITESPACE_RE.sub("", _PEM_BOUNDARY_RE.sub("", private_key))
    if not body:
        raise KeyDecodeError("Private key is empty once the PEM envelope is removed")
    try:
        der = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyDecodeError(f"Failed to decode private key: {exc}") from exc
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyDecodeError(f"Failed to import private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyDecodeError(
            f"Private key must be RSA for RS256, got {type(key).__name__}"
        )
    return key


def build_signer(private_key: str) -> crypt.Signer:
    """google-auth RS256 signer over the decoded key; no `kid` is attached."""
    return crypt.RSASigner(load_signing_key(private_key))


def encode_assertion(signer: crypt.Signer, claims: Dict[str, Any]) -> str:
    try:
        return google_jwt.encode(signer, claims).decode("ascii")
    except Exception as exc:  # noqa: BLE001 - any backend failure is a signing failure
        raise SigningError(f"Failed to sign token assertion: {exc}") from exc


class TokenProvider:
    """Exchanges signed service-account assertions for access tokens."""

    def __init__(
        self,
        *,
        token_uri: str = DEFAULT_TOKEN_URI,
        scope: str = DEFAULT_SCOPE,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.token_uri = token_uri
        self.scope = scope
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock
        self.metrics = metrics or NullMetrics()

    def build_assertion(self, credential: ServiceCredential) -> str:
        """Return the complete signed JWT (``header.payload.signature``)."""
        credential = require_credential(credential)
        now = int(self._clock())
        claims = {
            "iss": credential.client_email,
            "scope": self.scope,
            "aud": self.token_uri,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
            "iat": now,
        }
        signer = build_signer(credential.private_key or "")
        return encode_assertion(signer, claims)

    async def acquire_token(self, credential: ServiceCredential) -> AccessToken:
        assertion = self.build_assertion(credential)
        form = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.token_uri, data=form, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.token_uri, data=form)
        except httpx.RequestError as exc:
            self.metrics.increment("token_exchanges_total", stage="token", outcome="transport_error")
            raise TransportError(f"Token endpoint unreachable: {exc}") from exc

        payload = _safe_json(response)
        if not response.is_success:
            self.metrics.increment("token_exchanges_total", stage="token", outcome="rejected")
            structured_log(
                _LOG,
                logging.ERROR,
                "token_exchange_rejected",
                status=response.status_code,
                detail=payload,
                client_email=mask_email(credential.client_email),
            )
            raise TokenExchangeError(
                f"Failed to get access token: {json.dumps(payload)}",
                status_code=response.status_code,
                detail=payload,
            )
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            self.metrics.increment("token_exchanges_total", stage="token", outcome="malformed")
            raise TokenExchangeError(
                "Token endpoint response did not include access_token",
                status_code=response.status_code,
                detail=payload,
            )
        self.metrics.increment("token_exchanges_total", stage="token", outcome="ok")
        expires_in = payload.get("expires_in", ASSERTION_LIFETIME_SECONDS)
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = ASSERTION_LIFETIME_SECONDS
        return AccessToken(
            token=str(token),
            expires_in=expires_in,
            token_type=str(payload.get("token_type") or "Bearer"),
        )


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


__all__ = [
    "ServiceCredential",
    "AccessToken",
    "TokenProvider",
    "DEFAULT_TOKEN_URI",
    "DEFAULT_SCOPE",
    "JWT_BEARER_GRANT",
    "build_signer",
    "encode_assertion",
    "load_signing_key",
    "require_credential",
]
