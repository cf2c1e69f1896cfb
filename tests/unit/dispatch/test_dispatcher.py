"""
Unit tests for FallbackDispatcher (text, image and structured operations).

Backends are scripted fakes registered in an isolated registry; the sleep
function records backoff delays instead of waiting.
"""

import asyncio
from typing import Optional

import pytest
from pydantic import BaseModel

from fixtures.fake_backends import (
    FakeBackend,
    FakeImageBackend,
    FakeImageOnlyBackend,
    RecordingSink,
    failing,
)
from llm_layer.backends.exceptions import (
    BackendError,
    MissingCredentialError,
    UnsupportedOperationError,
)
from llm_layer.dispatch.dispatcher import FallbackDispatcher
from llm_layer.dispatch.exceptions import (
    AllBackendsFailedError,
    ConfigurationError,
    ImageStoreError,
    MalformedOutputError,
)
from llm_layer.models.backend_models import TextCompletion, Usage
from llm_layer.models.enums import Backend, OperationKind, Role
from llm_layer.models.messages import Message
from llm_layer.models.requests import (
    ImageGenerationRequest,
    StructuredDataRequest,
    TextGenerationRequest,
)
from llm_layer.monitoring.tracking import TrackingEmitter

G, A, O, K = Backend.GOOGLE, Backend.ANTHROPIC, Backend.OPENAI, Backend.KLING


def text_request(**kwargs) -> TextGenerationRequest:
    kwargs.setdefault("messages", [Message(role=Role.USER, content="Hello")])
    return TextGenerationRequest(**kwargs)


def structured_request(**kwargs) -> StructuredDataRequest:
    kwargs.setdefault("messages", [Message(role=Role.USER, content="Give me a person")])
    return StructuredDataRequest(**kwargs)


class TestTextFallback:
    """Test ordering, retries and fallback for generate_text."""

    @pytest.mark.asyncio
    async def test_first_backend_success(self, dispatcher, register_fakes, sink):
        google, anthropic = register_fakes(
            FakeBackend(G, outcomes=["from google"]),
            FakeBackend(A, outcomes=["from anthropic"]),
        )

        response = await dispatcher.generate_text(text_request(fallback_order=[G, A]))

        assert response.text == "from google"
        assert response.backend == G
        assert response.model == "gemini-2.5-flash"
        assert response.usage == Usage(input_tokens=10, output_tokens=20)
        assert google.call_count == 1
        assert anthropic.call_count == 0
        assert len(sink.events) == 1
        assert sink.events[0].track_id == response.track_id
        assert sink.events[0].succeeded

    @pytest.mark.asyncio
    async def test_falls_back_after_retries_exhausted(
        self, dispatcher, register_fakes, sink, sleeper
    ):
        """A failing first backend is tried retry+1 times before the next one."""
        google, anthropic = register_fakes(
            FakeBackend(G, outcomes=[failing("google down", G)]),
            FakeBackend(A, outcomes=["from anthropic"]),
        )

        response = await dispatcher.generate_text(text_request(fallback_order=[G, A], retry=2))

        assert response.text == "from anthropic"
        assert response.backend == A
        assert google.call_count == 3
        assert anthropic.call_count == 1
        assert sleeper.delays == [1.0, 2.0]
        # Only the success is tracked
        assert [e.backend for e in sink.events] == [A]
        assert sink.events[0].retry_count == 0

    @pytest.mark.asyncio
    async def test_retry_count_recorded_on_success(self, dispatcher, register_fakes, sink):
        register_fakes(FakeBackend(G, outcomes=[failing("flaky", G), "second time lucky"]))

        response = await dispatcher.generate_text(text_request(fallback_order=[G], retry=1))

        assert response.text == "second time lucky"
        assert sink.events[0].retry_count == 1

    @pytest.mark.asyncio
    async def test_at_most_one_success_and_later_backends_untouched(
        self, dispatcher, register_fakes
    ):
        google, anthropic, openai = register_fakes(
            FakeBackend(G, outcomes=[failing("nope", G)]),
            FakeBackend(A, outcomes=["ok"]),
            FakeBackend(O, outcomes=["never"]),
        )

        await dispatcher.generate_text(
            text_request(fallback_order=[G, A, O], models={O: "gpt-4o"}, retry=0)
        )

        assert google.call_count == 1
        assert anthropic.call_count == 1
        assert openai.call_count == 0

    @pytest.mark.asyncio
    async def test_per_backend_retry_list(self, dispatcher, register_fakes):
        google, anthropic = register_fakes(
            FakeBackend(G, outcomes=[failing("g", G)]),
            FakeBackend(A, outcomes=[failing("a", A)]),
        )

        with pytest.raises(BackendError):
            await dispatcher.generate_text(text_request(fallback_order=[G, A], retry=[2, 0]))

        assert google.call_count == 3
        assert anthropic.call_count == 1

    @pytest.mark.asyncio
    async def test_request_parameters_forwarded(self, dispatcher, register_fakes):
        google = register_fakes(FakeBackend(G))
        messages = [Message(role=Role.USER, content="What is 2+2?")]

        await dispatcher.generate_text(
            text_request(
                fallback_order=[G],
                system="Be terse",
                messages=messages,
                max_tokens=50,
                temperature=0.0,
                models={G: "gemini-pro"},
            )
        )

        call = google.calls[0]
        assert call["model"] == "gemini-pro"
        assert call["system"] == "Be terse"
        assert call["messages"] == messages
        assert call["max_tokens"] == 50
        assert call["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_defaults_applied_when_request_leaves_them_unset(
        self, dispatcher, register_fakes, test_settings
    ):
        google = register_fakes(FakeBackend(G))

        await dispatcher.generate_text(text_request(fallback_order=[G]))

        assert google.calls[0]["max_tokens"] == test_settings.DEFAULT_MAX_TOKENS
        assert google.calls[0]["temperature"] == test_settings.DEFAULT_TEMPERATURE


class TestExhaustion:
    """Test behaviour when every backend fails."""

    @pytest.mark.asyncio
    async def test_last_backend_error_propagates_unchanged(self, dispatcher, register_fakes):
        last = failing("anthropic overloaded", A, status_code=529)
        register_fakes(
            FakeBackend(G, outcomes=[failing("google down", G)]),
            FakeBackend(A, outcomes=[last]),
        )

        with pytest.raises(BackendError) as exc_info:
            await dispatcher.generate_text(text_request(fallback_order=[G, A]))

        assert exc_info.value is last
        assert str(exc_info.value) == "anthropic overloaded"

    @pytest.mark.asyncio
    async def test_terminal_event_emitted(self, dispatcher, register_fakes, sink):
        register_fakes(
            FakeBackend(G, outcomes=[failing("google down", G)]),
            FakeBackend(A, outcomes=[failing("anthropic down", A)]),
        )

        with pytest.raises(BackendError):
            await dispatcher.generate_text(
                text_request(fallback_order=[G, A], retry=1, caller="nightly")
            )

        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.backend == G
        assert event.model == "unknown"
        assert event.error == "anthropic down"
        assert event.caller == "nightly"
        assert event.input_tokens == 0
        assert event.output_tokens == 0
        # Four attempts in total, three of them beyond the first
        assert event.retry_count == 3

    @pytest.mark.asyncio
    async def test_every_backend_skipped_raises_all_backends_failed(
        self, dispatcher, register_fakes, sink
    ):
        openai = register_fakes(FakeBackend(O))

        with pytest.raises(AllBackendsFailedError) as exc_info:
            await dispatcher.generate_text(text_request(fallback_order=[O]))

        assert str(exc_info.value) == "All providers failed"
        assert openai.call_count == 0
        assert sink.events[0].error == "All providers failed"
        assert sink.events[0].backend == O

    @pytest.mark.asyncio
    async def test_backend_without_model_is_skipped(self, dispatcher, register_fakes, sink):
        """No call and no tracking event for a backend with no configured model."""
        openai, google = register_fakes(FakeBackend(O), FakeBackend(G, outcomes=["ok"]))

        response = await dispatcher.generate_text(text_request(fallback_order=[O, G]))

        assert response.backend == G
        assert openai.call_count == 0
        assert [e.backend for e in sink.events] == [G]


class TestInitialization:
    @pytest.mark.asyncio
    async def test_missing_credentials_fall_through_without_retry(
        self, dispatcher, register_fakes, sleeper
    ):
        """Google has no API key configured; the dispatcher moves to Anthropic."""
        anthropic = register_fakes(FakeBackend(A, outcomes=["ok"]))

        response = await dispatcher.generate_text(text_request(fallback_order=[G, A], retry=3))

        assert response.backend == A
        assert anthropic.call_count == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_missing_credentials_everywhere_raises_last_init_error(self, dispatcher):
        with pytest.raises(MissingCredentialError) as exc_info:
            await dispatcher.generate_text(text_request(fallback_order=[G, A]))

        assert exc_info.value.backend == A
        assert "ANTHROPIC_API_KEY" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unsupported_operation_not_retried(self, dispatcher, register_fakes):
        kling, google = register_fakes(
            FakeImageOnlyBackend(K, outcomes=[UnsupportedOperationError("Text generation", K)]),
            FakeBackend(G, outcomes=["ok"]),
        )

        response = await dispatcher.generate_text(
            text_request(fallback_order=[K, G], models={K: "kling-v1-5"}, retry=3)
        )

        assert response.backend == G
        assert kling.call_count == 1


class TestTracking:
    @pytest.mark.asyncio
    async def test_concurrent_calls_get_distinct_track_ids(self, dispatcher, register_fakes, sink):
        register_fakes(FakeBackend(G))

        first, second = await asyncio.gather(
            dispatcher.generate_text(text_request(fallback_order=[G])),
            dispatcher.generate_text(text_request(fallback_order=[G])),
        )

        assert first.track_id != second.track_id
        assert {e.track_id for e in sink.events} == {first.track_id, second.track_id}

    @pytest.mark.asyncio
    async def test_unavailable_usage_is_flagged(self, dispatcher, register_fakes, sink):
        register_fakes(FakeBackend(G, usage=Usage.unavailable()))

        response = await dispatcher.generate_text(text_request(fallback_order=[G]))

        assert response.usage.available is False
        assert sink.events[0].usage_available is False

    @pytest.mark.asyncio
    async def test_failing_sink_never_fails_the_call(
        self, registry, test_settings, sleeper, register_fakes
    ):
        register_fakes(FakeBackend(G))
        dispatcher = FallbackDispatcher(
            registry, test_settings, emitter=TrackingEmitter(RecordingSink(fail=True)), sleep=sleeper
        )

        response = await dispatcher.generate_text(text_request(fallback_order=[G]))

        assert response.text == "ok"


class NoneStore:
    """Image store answering None a fixed number of times."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def store(self, data_url: str) -> Optional[str]:
        self.calls += 1
        if self.calls <= self.failures:
            return None
        return "https://cdn.example.com/image.png"


class TestImageGeneration:
    @pytest.mark.asyncio
    async def test_data_url_returned_inline_by_default(self, dispatcher, register_fakes):
        register_fakes(FakeImageBackend(G, image_outcomes=["data:image/png;base64,iVBORw0K"]))

        response = await dispatcher.generate_image(
            ImageGenerationRequest(prompt="a lighthouse", fallback_order=[G])
        )

        assert response.image_url == "data:image/png;base64,iVBORw0K"
        assert response.backend == G
        assert response.model == "gemini-2.0-flash-exp-image-generation"
        assert response.text is None

    @pytest.mark.asyncio
    async def test_options_forwarded(self, dispatcher, register_fakes):
        openai = register_fakes(FakeImageBackend(O))

        await dispatcher.generate_image(
            ImageGenerationRequest(
                prompt="a fox",
                system="watercolor",
                width=1792,
                height=1024,
                quality="hd",
                reference_image="data:image/png;base64,AAAA",
                fallback_order=[O],
                models={O: "dall-e-3"},
            )
        )

        options = openai.image_calls[0]
        assert options.model == "dall-e-3"
        assert options.prompt == "a fox"
        assert options.system == "watercolor"
        assert (options.width, options.height) == (1792, 1024)
        assert options.quality == "hd"
        assert options.reference_images == ["data:image/png;base64,AAAA"]

    @pytest.mark.asyncio
    async def test_backend_without_image_support_rejected_before_any_attempt(
        self, dispatcher, register_fakes, sink
    ):
        google, anthropic = register_fakes(FakeImageBackend(G), FakeBackend(A))

        with pytest.raises(ConfigurationError) as exc_info:
            await dispatcher.generate_image(
                ImageGenerationRequest(prompt="x", fallback_order=[G, A])
            )

        assert "anthropic" in str(exc_info.value)
        assert google.image_calls == []
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_registry_capabilities_used_without_registered_clients(self, dispatcher):
        with pytest.raises(ConfigurationError):
            await dispatcher.generate_image(ImageGenerationRequest(prompt="x", fallback_order=[A]))

    @pytest.mark.asyncio
    async def test_model_entry_for_text_only_backend_rejected(self, dispatcher, register_fakes, sink):
        google = register_fakes(FakeImageBackend(G))

        with pytest.raises(ConfigurationError) as exc_info:
            await dispatcher.generate_image(
                ImageGenerationRequest(
                    prompt="x", fallback_order=[G], models={A: "claude-3-7-sonnet-latest"}
                )
            )

        assert exc_info.value.details == {"backends": ["anthropic"]}
        assert google.image_calls == []
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_store_returning_none_is_retried(
        self, registry, test_settings, emitter, sleeper, register_fakes
    ):
        google = register_fakes(FakeImageBackend(G))
        store = NoneStore(failures=1)
        dispatcher = FallbackDispatcher(
            registry, test_settings, emitter=emitter, image_store=store, sleep=sleeper
        )

        response = await dispatcher.generate_image(
            ImageGenerationRequest(prompt="x", fallback_order=[G], retry=1)
        )

        assert response.image_url == "https://cdn.example.com/image.png"
        assert len(google.image_calls) == 2

    @pytest.mark.asyncio
    async def test_store_failure_exhausts_like_any_error(
        self, registry, test_settings, emitter, sleeper, register_fakes
    ):
        register_fakes(FakeImageBackend(G))
        dispatcher = FallbackDispatcher(
            registry, test_settings, emitter=emitter, image_store=NoneStore(failures=99), sleep=sleeper
        )

        with pytest.raises(ImageStoreError):
            await dispatcher.generate_image(
                ImageGenerationRequest(prompt="x", fallback_order=[G], retry=0)
            )

    @pytest.mark.asyncio
    async def test_hosted_url_passes_through(self, dispatcher, register_fakes):
        register_fakes(FakeImageOnlyBackend(K, image_outcomes=["https://kling.example/i.png"]))

        response = await dispatcher.generate_image(
            ImageGenerationRequest(prompt="x", fallback_order=[K])
        )

        assert response.image_url == "https://kling.example/i.png"


class Person(BaseModel):
    name: str
    age: int
    city: str


PERSON_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer"},
        "city": {"type": "string"},
    },
    "required": ["name", "age", "city"],
}


class TestStructuredData:
    @pytest.mark.asyncio
    async def test_malformed_output_retried_and_every_raw_attempt_tracked(
        self, dispatcher, register_fakes, sink
    ):
        """Invalid JSON then valid JSON on the same backend yields two events."""
        google = register_fakes(
            FakeBackend(G, outcomes=["Sure! Here it is", '{"name":"John","age":30,"city":"NYC"}'])
        )

        response = await dispatcher.generate_structured_data(
            structured_request(fallback_order=[G], retry=1)
        )

        assert response.data == {"name": "John", "age": 30, "city": "NYC"}
        assert google.call_count == 2
        events = sink.for_backend(G)
        assert len(events) == 2
        assert [e.retry_count for e in events] == [0, 1]
        assert all(e.operation == OperationKind.STRUCTURED for e in events)
        assert {e.track_id for e in events} == {response.track_id}

    @pytest.mark.asyncio
    async def test_fenced_json_parsed(self, dispatcher, register_fakes):
        register_fakes(FakeBackend(G, outcomes=['```json\n{"ok": true}\n```']))

        response = await dispatcher.generate_structured_data(structured_request(fallback_order=[G]))

        assert response.data == {"ok": True}

    @pytest.mark.asyncio
    async def test_schema_violation_falls_back(self, dispatcher, register_fakes):
        google, anthropic = register_fakes(
            FakeBackend(G, outcomes=['{"name": "John"}']),
            FakeBackend(A, outcomes=['{"name": "Ann", "age": 41, "city": "Oslo"}']),
        )

        response = await dispatcher.generate_structured_data(
            structured_request(fallback_order=[G, A], retry=0, json_schema=PERSON_SCHEMA)
        )

        assert response.backend == A
        assert response.data["name"] == "Ann"

    @pytest.mark.asyncio
    async def test_output_type_conversion(self, dispatcher, register_fakes):
        register_fakes(FakeBackend(G, outcomes=['{"name":"John","age":30,"city":"NYC"}']))

        response = await dispatcher.generate_structured_data(
            structured_request(fallback_order=[G]), output_type=Person
        )

        assert response.data == Person(name="John", age=30, city="NYC")

    @pytest.mark.asyncio
    async def test_malformed_everywhere_raises_malformed_output(
        self, dispatcher, register_fakes, sink
    ):
        register_fakes(
            FakeBackend(G, outcomes=["no json here"]),
            FakeBackend(A, outcomes=["null"]),
        )

        with pytest.raises(MalformedOutputError):
            await dispatcher.generate_structured_data(
                structured_request(fallback_order=[G, A], retry=0)
            )

        # One event per raw completion plus the terminal one
        assert len(sink.events) == 3
        assert sink.events[-1].model == "unknown"
        assert sink.events[-1].error is not None

    @pytest.mark.asyncio
    async def test_invalid_schema_is_a_configuration_error(self, dispatcher, register_fakes):
        google = register_fakes(FakeBackend(G))

        with pytest.raises(ConfigurationError):
            await dispatcher.generate_structured_data(
                structured_request(fallback_order=[G], json_schema={"type": "not-a-type"})
            )

        assert google.call_count == 0

    @pytest.mark.asyncio
    async def test_completion_usage_reported(self, dispatcher, register_fakes):
        usage = Usage(input_tokens=5, output_tokens=7, reasoning_tokens=3)
        register_fakes(FakeBackend(G, outcomes=[TextCompletion(text="[1, 2, 3]", usage=usage)]))

        response = await dispatcher.generate_structured_data(structured_request(fallback_order=[G]))

        assert response.data == [1, 2, 3]
        assert response.usage == usage
