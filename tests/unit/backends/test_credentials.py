"""
Unit tests for credential lookup and caching.
"""

import pytest

from llm_layer.backends.credentials import get_credential, get_kling_credentials
from llm_layer.backends.exceptions import LLMError, MissingCredentialError
from llm_layer.models.enums import Backend


class TestGetCredential:
    def test_read_from_environment(self, test_settings, monkeypatch):
        monkeypatch.setenv("XAI_API_KEY", "xai-123")

        assert get_credential(Backend.XAI, test_settings) == "xai-123"

    def test_settings_fallback(self, test_settings):
        test_settings.VENICE_API_KEY = "from-dotenv"

        assert get_credential(Backend.VENICE, test_settings) == "from-dotenv"

    def test_environment_wins_over_settings(self, test_settings, monkeypatch):
        test_settings.OPENAI_API_KEY = "from-dotenv"
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")

        assert get_credential(Backend.OPENAI, test_settings) == "from-env"

    def test_found_key_is_cached(self, test_settings, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "first")
        get_credential(Backend.ANTHROPIC, test_settings)
        monkeypatch.setenv("ANTHROPIC_API_KEY", "second")

        assert get_credential(Backend.ANTHROPIC, test_settings) == "first"

    def test_missing_key_names_the_variable(self, test_settings):
        with pytest.raises(MissingCredentialError) as exc_info:
            get_credential(Backend.GOOGLE, test_settings)

        assert str(exc_info.value) == (
            "API key not found for google. Please set GOOGLE_AI_API_KEY environment variable."
        )
        assert exc_info.value.code == "MISSING_API_KEY"

    def test_kling_has_no_single_api_key(self, test_settings):
        with pytest.raises(LLMError) as exc_info:
            get_credential(Backend.KLING, test_settings)

        assert exc_info.value.details["code"] == "UNKNOWN_PROVIDER"


class TestKlingCredentials:
    def test_pair_returned(self, test_settings, monkeypatch):
        monkeypatch.setenv("KLING_ACCESS_KEY_ID", "ak")
        monkeypatch.setenv("KLING_ACCESS_KEY_SECRET", "sk")

        assert get_kling_credentials(test_settings) == ("ak", "sk")

    def test_missing_secret(self, test_settings, monkeypatch):
        monkeypatch.setenv("KLING_ACCESS_KEY_ID", "ak")

        with pytest.raises(MissingCredentialError) as exc_info:
            get_kling_credentials(test_settings)

        assert "KLING_ACCESS_KEY_ID and KLING_ACCESS_KEY_SECRET" in str(exc_info.value)
