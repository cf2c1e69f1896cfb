"""
Structured output post-processing.

Turns the raw text of a completion into validated JSON data. Every failure
raises MalformedOutputError so the dispatcher retries it like any other
failed attempt.

Stages:
1. Lenient JSON parse (markdown fences, stray newlines, surrounding prose)
2. Optional JSON Schema validation (jsonschema)
3. Optional conversion to a Python type (pydantic TypeAdapter)
"""

import json
import re
from typing import Any, Generic, Optional, TypeVar

import structlog
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import TypeAdapter, ValidationError

from llm_layer.dispatch.exceptions import ConfigurationError, MalformedOutputError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*")
_FENCE_END_RE = re.compile(r"\s*```$")
_EMBEDDED_JSON_RE = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")

MAX_REPORTED_ERRORS = 10


def _clean(text: str) -> str:
    # Literal newlines only; escaped "\n" sequences inside strings survive
    cleaned = text.replace("\n", "")
    cleaned = _FENCE_START_RE.sub("", cleaned)
    cleaned = _FENCE_END_RE.sub("", cleaned)
    return cleaned.strip()


def parse_llm_json(text: str) -> Any:
    """
    Parse JSON out of LLM output.

    Tries the cleaned text first; on failure extracts the first {...} or
    [...] span and parses that.

    Raises:
        MalformedOutputError: no parseable JSON found, or the document is null
    """
    if not text or not text.strip():
        raise MalformedOutputError(
            "LLM response content is empty or whitespace-only",
            raw_content=text,
            parse_error="Empty content",
        )

    try:
        data = json.loads(_clean(text))
    except json.JSONDecodeError as e:
        match = _EMBEDDED_JSON_RE.search(text)
        if match is None:
            raise MalformedOutputError(
                f"Failed to parse LLM JSON: {e.msg}",
                raw_content=text,
                parse_error=f"{e.msg} at line {e.lineno} col {e.colno}",
            ) from e
        try:
            data = json.loads(_clean(match.group(0)))
        except json.JSONDecodeError as inner:
            raise MalformedOutputError(
                f"Failed to parse LLM JSON: {e.msg}",
                raw_content=text,
                parse_error=f"{inner.msg} at line {inner.lineno} col {inner.colno}",
            ) from inner

    if data is None:
        raise MalformedOutputError(
            "LLM response is JSON null",
            raw_content=text,
            parse_error="null document",
        )
    return data


class StructuredOutputParser(Generic[T]):
    """
    Parser for one structured request.

    Args:
        json_schema: JSON Schema the document must satisfy
        output_type: Python type the document is converted to
    """

    def __init__(
        self,
        json_schema: Optional[dict[str, Any]] = None,
        output_type: Optional[type[T]] = None,
    ):
        self._validator: Optional[Draft7Validator] = None
        if json_schema is not None:
            try:
                Draft7Validator.check_schema(json_schema)
            except SchemaError as e:
                raise ConfigurationError(f"Invalid JSON schema: {e.message}") from e
            self._validator = Draft7Validator(json_schema)

        self._adapter: Optional[TypeAdapter] = (
            TypeAdapter(output_type) if output_type is not None else None
        )

    def parse(self, text: str) -> T:
        data = parse_llm_json(text)

        if self._validator is not None:
            errors = list(self._validator.iter_errors(data))
            if errors:
                messages = []
                for error in errors[:MAX_REPORTED_ERRORS]:
                    path = ".".join(str(p) for p in error.path) if error.path else "root"
                    messages.append(f"{path}: {error.message}")
                raise MalformedOutputError(
                    f"JSON Schema validation failed with {len(errors)} error(s)",
                    raw_content=text,
                    validation_errors=messages,
                )

        if self._adapter is not None:
            try:
                data = self._adapter.validate_python(data)
            except ValidationError as e:
                raise MalformedOutputError(
                    f"Output does not match expected type: {e.error_count()} error(s)",
                    raw_content=text,
                    validation_errors=[
                        f"{'.'.join(str(p) for p in err['loc']) or 'root'}: {err['msg']}"
                        for err in e.errors()[:MAX_REPORTED_ERRORS]
                    ],
                ) from e

        logger.debug("Structured output parsed", data_type=type(data).__name__)
        return data
