"""
Image post-processing.

Backends return either a hosted URL or a data URL. Data URLs are handed to an
ImageStore, which may persist them and return a durable URL. A store
answering None fails the attempt with ImageStoreError (retryable).
"""

from typing import Optional, Protocol, runtime_checkable

import structlog

from llm_layer.backends.image_utils import to_data_url
from llm_layer.dispatch.exceptions import ImageStoreError

logger = structlog.get_logger(__name__)


@runtime_checkable
class ImageStore(Protocol):
    async def store(self, data_url: str) -> Optional[str]:
        """Persist an image and return the URL callers should use."""
        ...


class DataUrlImageStore:
    """Keeps images inline: returns the data URL itself."""

    async def store(self, data_url: str) -> Optional[str]:
        return to_data_url(data_url)


async def finalize_image_url(image_url: str, store: ImageStore) -> str:
    """
    Route a data URL through the store; hosted URLs pass through unchanged.

    Raises:
        ImageStoreError: the store failed or returned nothing
    """
    if not image_url.startswith("data:image"):
        return image_url

    try:
        stored = await store.store(image_url)
    except ImageStoreError:
        raise
    except Exception as e:
        raise ImageStoreError(f"Failed to store image: {e}", {"store": type(store).__name__}) from e

    if not stored:
        raise ImageStoreError("Failed to store image", {"store": type(store).__name__})

    logger.debug("Image stored", store=type(store).__name__, url_prefix=stored[:32])
    return stored
