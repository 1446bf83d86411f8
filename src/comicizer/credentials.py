"""API key storage, resolution and validation.

Keys are stored per provider in ``~/.comicizer/api_keys.json`` together
with the result of their last validation. The pipeline itself only ever
receives a resolved key string.

Resolution order for a provider:
    1. Stored key, if it was flagged valid when saved
    2. Environment variable (OPENROUTER_API_KEY / CRSAI_API_KEY)
    3. ``api_key`` of the provider configuration (supports env: syntax)
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from comicizer.config import ComicizerConfig
from comicizer.constants import (
    API_KEY_ENV_VARS,
    API_KEYS_FILENAME,
    CRSAI_CODE_OK,
    CRSAI_CREDITS_PATH,
    DEFAULT_CRSAI_BASE_URL,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_USER_DIR,
    OPENROUTER_MODELS_PATH,
    PROVIDER_CRSAI,
    PROVIDER_OPENROUTER,
)
from comicizer.errors import AuthError, ComicizerError
from comicizer.security import atomic_write_json
from comicizer.transport import HttpTransport, bearer_headers, join_url


class KeyValidity(BaseModel):
    """Validation flags of the stored keys."""

    openrouter: bool = False
    crsai: bool = False


class ApiKeyStorage(BaseModel):
    """Persisted API keys."""

    openrouter_api_key: str = ""
    crsai_api_key: str = ""
    last_updated: str | None = None  # ISO timestamp
    is_valid: KeyValidity = Field(default_factory=KeyValidity)

    def key_for(self, provider: str) -> str:
        if provider == PROVIDER_OPENROUTER:
            return self.openrouter_api_key
        if provider == PROVIDER_CRSAI:
            return self.crsai_api_key
        return ""

    def is_valid_for(self, provider: str) -> bool:
        return bool(getattr(self.is_valid, provider, False))

    @property
    def active_provider(self) -> str | None:
        """First provider with a valid key, OpenRouter preferred."""
        if self.is_valid.openrouter:
            return PROVIDER_OPENROUTER
        if self.is_valid.crsai:
            return PROVIDER_CRSAI
        return None


class ApiKeyStore:
    """JSON file store for API keys.

    Args:
        path: Storage file, defaults to ``~/.comicizer/api_keys.json``
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = (
            Path(path)
            if path is not None
            else Path(DEFAULT_USER_DIR).expanduser() / API_KEYS_FILENAME
        )

    def load(self) -> ApiKeyStorage:
        """Load stored keys; missing or unreadable storage yields empty keys."""
        if not self.path.exists():
            return ApiKeyStorage()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return ApiKeyStorage.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"[Credentials] Ignoring unreadable key storage: {e}")
            return ApiKeyStorage()

    def save(
        self,
        openrouter_key: str,
        crsai_key: str,
        validity: KeyValidity,
    ) -> ApiKeyStorage:
        """Persist keys with their validation flags."""
        storage = ApiKeyStorage(
            openrouter_api_key=openrouter_key.strip(),
            crsai_api_key=crsai_key.strip(),
            last_updated=datetime.now(timezone.utc).isoformat(),
            is_valid=validity,
        )
        atomic_write_json(self.path, storage.model_dump(), mode=0o600)
        logger.debug(f"[Credentials] Saved API keys to {self.path}")
        return storage

    def clear(self) -> None:
        """Remove all stored keys."""
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"[Credentials] Removed {self.path}")

    def has_valid_key(self) -> bool:
        return self.load().active_provider is not None


def resolve_api_key(
    provider: str,
    store: ApiKeyStore | None = None,
    config: ComicizerConfig | None = None,
) -> str:
    """Resolve the API key for ``provider``.

    Raises:
        AuthError: If no key is available
    """
    storage = (store or ApiKeyStore()).load()
    stored = storage.key_for(provider)
    if stored and storage.is_valid_for(provider):
        logger.debug(f"[Credentials] Using stored {provider} key")
        return stored

    env_var = API_KEY_ENV_VARS.get(provider)
    env_value = os.environ.get(env_var) if env_var else None
    if env_value:
        logger.debug(f"[Credentials] Using {provider} key from {env_var}")
        return env_value

    if config is not None:
        configured = config.provider(provider).get_resolved_api_key()
        if configured:
            logger.debug(f"[Credentials] Using configured {provider} key")
            return configured

    raise AuthError(
        "API Key not found. Please configure your API key", provider=provider
    )


async def validate_openrouter_key(
    api_key: str,
    transport: HttpTransport,
    base_url: str = DEFAULT_OPENROUTER_BASE_URL,
) -> bool:
    """Check an OpenRouter key by listing models."""
    if not api_key.strip():
        return False
    try:
        status, _ = await transport.get(
            join_url(base_url, OPENROUTER_MODELS_PATH), headers=bearer_headers(api_key)
        )
    except ComicizerError as e:
        logger.warning(f"[Credentials] OpenRouter key validation failed: {e}")
        return False
    return 200 <= status < 300


async def validate_crsai_key(
    api_key: str,
    transport: HttpTransport,
    base_url: str = DEFAULT_CRSAI_BASE_URL,
) -> bool:
    """Check a CRSAI key against the credits endpoint."""
    if not api_key.strip():
        return False
    try:
        status, data = await transport.get(
            join_url(base_url, CRSAI_CREDITS_PATH),
            headers={"Content-Type": "application/json"},
            params={"apikey": api_key},
        )
    except ComicizerError as e:
        logger.warning(f"[Credentials] CRSAI key validation failed: {e}")
        return False
    if not 200 <= status < 300:
        logger.warning(f"[Credentials] CRSAI validation failed with status {status}")
        return False
    return data.get("code") == CRSAI_CODE_OK


async def validate_api_keys(
    openrouter_key: str,
    crsai_key: str,
    transport: HttpTransport | None = None,
    config: ComicizerConfig | None = None,
) -> KeyValidity:
    """Validate both keys concurrently."""
    owned = transport is None
    transport = transport or HttpTransport(timeout=30)
    config = config or ComicizerConfig()
    try:
        openrouter_ok, crsai_ok = await asyncio.gather(
            validate_openrouter_key(
                openrouter_key, transport, config.openrouter.base_url
            ),
            validate_crsai_key(crsai_key, transport, config.crsai.base_url),
        )
    finally:
        if owned:
            await transport.aclose()
    return KeyValidity(openrouter=openrouter_ok, crsai=crsai_ok)


__all__ = [
    "ApiKeyStorage",
    "ApiKeyStore",
    "KeyValidity",
    "resolve_api_key",
    "validate_api_keys",
    "validate_crsai_key",
    "validate_openrouter_key",
]
