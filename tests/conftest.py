"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import pytest

from fixtures.fake_backends import FakeBackend, RecordingSink, SleepRecorder
from llm_layer.backends.credentials import clear_credential_cache
from llm_layer.backends.registry import BackendRegistry
from llm_layer.config import Settings
from llm_layer.dispatch.dispatcher import FallbackDispatcher
from llm_layer.models.enums import Backend, Role
from llm_layer.models.messages import Message
from llm_layer.monitoring.tracking import TrackingEmitter


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.DEFAULT_RETRY = 3
    """
    return Settings(
        # === Application ===
        APP_NAME="LLM Layer (Test)",
        APP_VERSION="0.1.0",
        DEBUG=True,
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Request defaults ===
        DEFAULT_FALLBACK_ORDER=["google", "anthropic"],
        DEFAULT_IMAGE_FALLBACK_ORDER=["google", "openai", "kling"],
        DEFAULT_RETRY=1,
        RETRY_INITIAL_DELAY=1.0,

        # === Credentials (never sent anywhere: tests use fakes or MockTransport) ===
        ANTHROPIC_API_KEY=None,
        GOOGLE_AI_API_KEY=None,
        OPENAI_API_KEY=None,
        VENICE_API_KEY=None,
        XAI_API_KEY=None,
        KLING_ACCESS_KEY_ID=None,
        KLING_ACCESS_KEY_SECRET=None,

        # === Monitoring ===
        PROMETHEUS_ENABLED=False,  # Disable metrics endpoint in tests unless explicitly needed
    )


@pytest.fixture(autouse=True)
def _isolated_credentials(monkeypatch):
    """Each test starts without cached or ambient API keys."""
    for name in (
        "ANTHROPIC_API_KEY",
        "GOOGLE_AI_API_KEY",
        "OPENAI_API_KEY",
        "VENICE_API_KEY",
        "XAI_API_KEY",
        "KLING_ACCESS_KEY_ID",
        "KLING_ACCESS_KEY_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_credential_cache()
    yield
    clear_credential_cache()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def emitter(sink: RecordingSink) -> TrackingEmitter:
    return TrackingEmitter(sink)


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Records backoff delays instead of sleeping."""
    return SleepRecorder()


@pytest.fixture
def registry(test_settings: Settings) -> BackendRegistry:
    return BackendRegistry(test_settings)


@pytest.fixture
def dispatcher(
    registry: BackendRegistry,
    test_settings: Settings,
    emitter: TrackingEmitter,
    sleeper: SleepRecorder,
) -> FallbackDispatcher:
    return FallbackDispatcher(registry, test_settings, emitter=emitter, sleep=sleeper)


@pytest.fixture
def register_fakes(registry: BackendRegistry):
    """Factory fixture installing fakes in the registry.

    Usage:
        def test_something(register_fakes):
            google, anthropic = register_fakes(
                FakeBackend(Backend.GOOGLE, outcomes=["hi"]),
                FakeBackend(Backend.ANTHROPIC),
            )
    """
    def _register(*fakes: FakeBackend):
        for fake in fakes:
            registry.register(fake.backend, fake)
        return fakes if len(fakes) > 1 else fakes[0]

    return _register


@pytest.fixture
def user_messages() -> list[Message]:
    return [Message(role=Role.USER, content="Hello")]
