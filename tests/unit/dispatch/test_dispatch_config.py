"""
Unit tests for merging requests with the configured defaults.
"""

import pytest

from llm_layer.dispatch.config import (
    dedupe,
    resolve_dispatch_config,
    resolve_retries,
)
from llm_layer.dispatch.exceptions import ConfigurationError
from llm_layer.models.enums import Backend, ErrorLevel, OperationKind, Role
from llm_layer.models.messages import Message
from llm_layer.models.requests import (
    ImageGenerationRequest,
    StreamGenerationRequest,
    TextGenerationRequest,
)

G, A, O, K = Backend.GOOGLE, Backend.ANTHROPIC, Backend.OPENAI, Backend.KLING


def text_request(**kwargs) -> TextGenerationRequest:
    return TextGenerationRequest(messages=[Message(role=Role.USER, content="hi")], **kwargs)


class TestFallbackOrder:
    def test_default_text_order(self, test_settings):
        config = resolve_dispatch_config(text_request(), OperationKind.TEXT, test_settings)

        assert config.fallback_order == [G, A]

    def test_default_image_order(self, test_settings):
        request = ImageGenerationRequest(prompt="a cat")

        config = resolve_dispatch_config(request, OperationKind.IMAGE, test_settings)

        assert config.fallback_order == [G, O, K]

    def test_request_order_wins_and_is_deduplicated(self, test_settings):
        request = text_request(fallback_order=[A, G, A, G])

        config = resolve_dispatch_config(request, OperationKind.TEXT, test_settings)

        assert config.fallback_order == [A, G]

    def test_empty_request_order_uses_default(self, test_settings):
        config = resolve_dispatch_config(
            text_request(fallback_order=[]), OperationKind.TEXT, test_settings
        )

        assert config.fallback_order == [G, A]

    def test_empty_configured_order_is_a_configuration_error(self, test_settings):
        test_settings.DEFAULT_FALLBACK_ORDER = []

        with pytest.raises(ConfigurationError):
            resolve_dispatch_config(text_request(), OperationKind.TEXT, test_settings)

    def test_dedupe_keeps_first_occurrence(self):
        assert dedupe([O, G, O, A, G]) == [O, G, A]


class TestModels:
    def test_request_models_override_defaults(self, test_settings):
        request = text_request(models={G: "gemini-custom"})

        config = resolve_dispatch_config(request, OperationKind.TEXT, test_settings)

        assert config.model_for(G) == "gemini-custom"
        assert config.model_for(A) == test_settings.MODEL_DEFAULTS["text"]["anthropic"]

    def test_stream_uses_text_model_table(self, test_settings):
        request = StreamGenerationRequest(messages=[Message(role=Role.USER, content="hi")])

        config = resolve_dispatch_config(request, OperationKind.STREAM, test_settings)

        assert config.model_for(G) == test_settings.MODEL_DEFAULTS["text"]["google"]

    def test_backend_without_model_has_none(self, test_settings):
        config = resolve_dispatch_config(text_request(), OperationKind.TEXT, test_settings)

        assert config.model_for(O) is None

    def test_request_is_not_mutated(self, test_settings):
        request = text_request(fallback_order=[A, A])

        resolve_dispatch_config(request, OperationKind.TEXT, test_settings)

        assert request.fallback_order == [A, A]
        assert request.models == {}


class TestRetries:
    def test_none_uses_configured_default(self):
        assert resolve_retries(None, [G, A], 1) == {G: 1, A: 1}

    def test_int_applies_to_every_backend(self):
        assert resolve_retries(3, [G, A], 1) == {G: 3, A: 3}

    def test_zero_is_honoured(self):
        assert resolve_retries(0, [G, A], 1) == {G: 0, A: 0}

    def test_list_aligns_with_order_and_last_value_repeats(self):
        assert resolve_retries([2, 0], [G, A, O], 1) == {G: 2, A: 0, O: 0}

    def test_empty_list_uses_default(self):
        assert resolve_retries([], [G, A], 1) == {G: 1, A: 1}

    def test_mapping_falls_back_to_default(self):
        assert resolve_retries({A: 4}, [G, A], 1) == {G: 1, A: 4}


class TestOtherFields:
    def test_caller_and_error_level(self, test_settings):
        request = text_request(caller="billing-job", error_level=ErrorLevel.WARN)

        config = resolve_dispatch_config(request, OperationKind.TEXT, test_settings)

        assert config.caller == "billing-job"
        assert config.error_level == ErrorLevel.WARN

    def test_default_caller(self, test_settings):
        config = resolve_dispatch_config(text_request(), OperationKind.TEXT, test_settings)

        assert config.caller == test_settings.DEFAULT_CALLER

    def test_backoff_settings_copied(self, test_settings):
        test_settings.RETRY_INITIAL_DELAY = 0.5
        test_settings.RETRY_BACKOFF_MULTIPLIER = 3.0

        config = resolve_dispatch_config(text_request(), OperationKind.TEXT, test_settings)

        assert config.initial_delay == 0.5
        assert config.multiplier == 3.0
