from __future__ import annotations

from typing import Iterator

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.config import AppConfig
from src.services.token_provider import ServiceCredential

CONFIG_ENV_KEYS = [
    "PROJECT_ID",
    "GCP_PROJECT_ID",
    "FIRESTORE_DATABASE",
    "FIRESTORE_COLLECTION",
    "FIRESTORE_BASE_URL",
    "GCP_CLIENT_EMAIL",
    "GCP_PRIVATE_KEY_ID",
    "GCP_PRIVATE_KEY",
    "SERVICE_ACCOUNT_JSON",
    "OAUTH_TOKEN_URI",
    "OAUTH_SCOPE",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "MAX_OUTPUT_TOKENS",
    "TEMPERATURE",
    "GENERATION_TIMEOUT_SECONDS",
    "GENERATION_MAX_ATTEMPTS",
    "HTTP_TIMEOUT_SECONDS",
    "ENABLE_METRICS",
    "SHUTDOWN_DRAIN_SECONDS",
]


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def credential(rsa_private_pem: str) -> ServiceCredential:
    return ServiceCredential(
        client_email="itinerary-writer@travel-test.iam.gserviceaccount.com",
        private_key_id="key-123",
        private_key=rsa_private_pem,
    )


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir("/")  # keep a developer .env out of AppConfig
    yield monkeypatch


@pytest.fixture
def app_config(clean_env: pytest.MonkeyPatch, rsa_private_pem: str) -> AppConfig:
    clean_env.setenv("PROJECT_ID", "travel-test")
    clean_env.setenv("GCP_CLIENT_EMAIL", "itinerary-writer@travel-test.iam.gserviceaccount.com")
    clean_env.setenv("GCP_PRIVATE_KEY_ID", "key-123")
    clean_env.setenv("GCP_PRIVATE_KEY", rsa_private_pem.replace("\n", "\\n"))
    clean_env.setenv("OPENAI_API_KEY", "sk-test-key-000000")
    clean_env.setenv("ENABLE_METRICS", "false")
    return AppConfig()
