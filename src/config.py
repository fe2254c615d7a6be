"""Configuration for the itinerary jobs service.

Values are read once from the environment (or a `.env` file) into an
`AppConfig` that `create_app` passes explicitly to the token provider,
document store and generation backend.

Variables (env names in parentheses):
 - PROJECT_ID, FIRESTORE_DATABASE, FIRESTORE_COLLECTION, FIRESTORE_BASE_URL
 - GCP_CLIENT_EMAIL, GCP_PRIVATE_KEY_ID, GCP_PRIVATE_KEY
 - SERVICE_ACCOUNT_JSON (inline JSON or path; fills missing GCP_* values)
 - OAUTH_TOKEN_URI, OAUTH_SCOPE
 - OPENAI_API_KEY, OPENAI_MODEL, MAX_OUTPUT_TOKENS, TEMPERATURE
 - GENERATION_TIMEOUT_SECONDS, GENERATION_MAX_ATTEMPTS, HTTP_TIMEOUT_SECONDS
 - ENABLE_METRICS, SHUTDOWN_DRAIN_SECONDS
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.services.token_provider import DEFAULT_SCOPE, DEFAULT_TOKEN_URI, ServiceCredential
from src.startup import load_service_account_info, normalise_private_key


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class AppConfig(BaseSettings):
    project_id: str = Field('', validation_alias=AliasChoices('PROJECT_ID', 'GCP_PROJECT_ID'))
    firestore_database: str = Field('(default)', validation_alias='FIRESTORE_DATABASE')
    firestore_collection: str = Field('itineraries', validation_alias='FIRESTORE_COLLECTION')
    firestore_base_url: str = Field(
        'https://firestore.googleapis.com/v1', validation_alias='FIRESTORE_BASE_URL'
    )
    gcp_client_email: str | None = Field(None, validation_alias='GCP_CLIENT_EMAIL')
    gcp_private_key_id: str | None = Field(None, validation_alias='GCP_PRIVATE_KEY_ID')
    gcp_private_key: str | None = Field(None, validation_alias='GCP_PRIVATE_KEY', repr=False)
    service_account_json: str | None = Field(None, validation_alias='SERVICE_ACCOUNT_JSON', repr=False)
    oauth_token_uri: str = Field(DEFAULT_TOKEN_URI, validation_alias='OAUTH_TOKEN_URI')
    oauth_scope: str = Field(DEFAULT_SCOPE, validation_alias='OAUTH_SCOPE')
    openai_api_key: str | None = Field(None, validation_alias='OPENAI_API_KEY', repr=False)
    openai_model: str = Field('gpt-4o', validation_alias='OPENAI_MODEL')
    llm_max_tokens: int = Field(1500, validation_alias='MAX_OUTPUT_TOKENS')
    llm_temperature: float = Field(0.7, validation_alias='TEMPERATURE')
    # Deadline for one generation call; 0 disables it.
    generation_timeout_seconds: float = Field(60.0, validation_alias='GENERATION_TIMEOUT_SECONDS')
    generation_max_attempts: int = Field(1, ge=1, le=5, validation_alias='GENERATION_MAX_ATTEMPTS')
    http_timeout_seconds: float = Field(15.0, validation_alias='HTTP_TIMEOUT_SECONDS')
    enable_metrics_raw: str | bool | None = Field(True, validation_alias='ENABLE_METRICS')
    shutdown_drain_seconds: float = Field(30.0, validation_alias='SHUTDOWN_DRAIN_SECONDS')

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False)

    def model_post_init(self, __context: Any) -> None:  # pylint: disable=W0221
        """Merge SERVICE_ACCOUNT_JSON and unescape the PEM key after loading."""
        info = load_service_account_info(self.service_account_json)
        if not self.gcp_client_email:
            self.gcp_client_email = info.get("client_email")
        if not self.gcp_private_key_id:
            self.gcp_private_key_id = info.get("private_key_id")
        if not self.gcp_private_key:
            self.gcp_private_key = info.get("private_key")
        self.gcp_private_key = normalise_private_key(self.gcp_private_key)

    @property
    def enable_metrics(self) -> bool:
        raw = self.enable_metrics_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def generation_timeout(self) -> float | None:
        return self.generation_timeout_seconds if self.generation_timeout_seconds > 0 else None

    def service_credential(self) -> ServiceCredential:
        return ServiceCredential(
            client_email=self.gcp_client_email,
            private_key_id=self.gcp_private_key_id,
            private_key=self.gcp_private_key,
        )

    def validate_required(self) -> None:
        required_pairs = [
            ("project_id", self.project_id),
            ("gcp_client_email", self.gcp_client_email),
            ("gcp_private_key_id", self.gcp_private_key_id),
            ("gcp_private_key", self.gcp_private_key),
            ("openai_api_key", self.openai_api_key),
            ("firestore_collection", self.firestore_collection),
        ]
        missing = [name for name, value in required_pairs if not value]
        if missing:
            raise RuntimeError("Missing required configuration values: " + ", ".join(sorted(missing)))
        if "@" not in (self.gcp_client_email or ""):
            raise RuntimeError("GCP_CLIENT_EMAIL must be a service account email address")
        if "PRIVATE KEY" not in (self.gcp_private_key or ""):
            raise RuntimeError("GCP_PRIVATE_KEY must be a PEM encoded private key")


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "get_config", "parse_bool"]
