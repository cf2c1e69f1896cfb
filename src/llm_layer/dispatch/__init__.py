"""
Fallback-and-retry orchestration.

Main Components:
    - FallbackDispatcher: text, image and structured generation
    - StreamDispatcher: streaming with mid-stream failover
    - StructuredOutputParser / parse_llm_json: JSON post-processing
    - ImageStore: post-processing of generated images
"""

from llm_layer.dispatch.config import DispatchConfig, resolve_dispatch_config
from llm_layer.dispatch.dispatcher import AttemptResult, FallbackDispatcher
from llm_layer.dispatch.exceptions import (
    AllBackendsFailedError,
    ConfigurationError,
    ImageStoreError,
    MalformedOutputError,
)
from llm_layer.dispatch.image_store import DataUrlImageStore, ImageStore
from llm_layer.dispatch.streaming import StreamDispatcher
from llm_layer.dispatch.structured import StructuredOutputParser, parse_llm_json

__all__ = [
    "AttemptResult",
    "DispatchConfig",
    "FallbackDispatcher",
    "StreamDispatcher",
    "resolve_dispatch_config",
    # Exceptions
    "AllBackendsFailedError",
    "ConfigurationError",
    "ImageStoreError",
    "MalformedOutputError",
    # Collaborators
    "DataUrlImageStore",
    "ImageStore",
    "StructuredOutputParser",
    "parse_llm_json",
]
