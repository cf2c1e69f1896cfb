"""
Credential lookup for backend clients.

Keys are read from the process environment, falling back to the values
loaded into Settings (.env). Found keys are cached by environment variable
name for the lifetime of the process; a missing key is never cached, so
setting it later makes the next lookup succeed.
"""

import os
from typing import Optional

import structlog

from llm_layer.backends.exceptions import LLMError, MissingCredentialError
from llm_layer.config import Settings, settings as default_settings
from llm_layer.models.enums import Backend

logger = structlog.get_logger(__name__)

API_KEY_ENV_VARS: dict[Backend, str] = {
    Backend.ANTHROPIC: "ANTHROPIC_API_KEY",
    Backend.GOOGLE: "GOOGLE_AI_API_KEY",
    Backend.OPENAI: "OPENAI_API_KEY",
    Backend.VENICE: "VENICE_API_KEY",
    Backend.XAI: "XAI_API_KEY",
}

KLING_ENV_VARS = ("KLING_ACCESS_KEY_ID", "KLING_ACCESS_KEY_SECRET")

_api_key_cache: dict[str, str] = {}


def _lookup(env_var: str, settings: Settings) -> Optional[str]:
    if env_var in _api_key_cache:
        return _api_key_cache[env_var]
    value = os.environ.get(env_var) or getattr(settings, env_var, None)
    if value:
        _api_key_cache[env_var] = value
        logger.debug("Credential cached", env_var=env_var)
    return value or None


def get_credential(backend: Backend, settings: Settings | None = None) -> str:
    """
    Get the API key for a backend.

    Raises:
        MissingCredentialError: the expected environment variable is not set
        LLMError: the backend does not authenticate with a single API key
    """
    settings = settings or default_settings
    env_var = API_KEY_ENV_VARS.get(backend)
    if env_var is None:
        raise LLMError(f"Unknown provider: {backend.value}", {"code": "UNKNOWN_PROVIDER"})

    api_key = _lookup(env_var, settings)
    if not api_key:
        raise MissingCredentialError(backend, [env_var])
    return api_key


def get_kling_credentials(settings: Settings | None = None) -> tuple[str, str]:
    """Get the (access key id, access key secret) pair used to sign Kling tokens."""
    settings = settings or default_settings
    key_id, secret = (_lookup(name, settings) for name in KLING_ENV_VARS)
    if not key_id or not secret:
        raise MissingCredentialError(Backend.KLING, list(KLING_ENV_VARS))
    return key_id, secret


def clear_credential_cache() -> None:
    _api_key_cache.clear()
