"""
Image payload utilities for backend clients.

Handles:
- Data URL splitting and construction
- Base64 validation
- Snapping requested dimensions to what a vendor accepts
"""

import base64
import binascii
import re
from typing import Optional

DEFAULT_MIME_TYPE = "image/png"

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")

# Ratios accepted by Kling and Imagen-style endpoints
ALLOWED_ASPECT_RATIOS: list[tuple[str, float]] = [
    ("16:9", 16 / 9),
    ("9:16", 9 / 16),
    ("1:1", 1.0),
    ("4:3", 4 / 3),
    ("3:4", 3 / 4),
    ("3:2", 3 / 2),
    ("2:3", 2 / 3),
    ("21:9", 21 / 9),
]


def split_data_url(value: str) -> tuple[str, str]:
    """
    Split an image payload into (mime type, base64 data).

    Raw base64 without a data URL prefix is assumed to be PNG.
    """
    match = _DATA_URL_RE.match(value)
    if match:
        return match.group(1), value[match.end():]
    return DEFAULT_MIME_TYPE, value


def to_data_url(data: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    """Wrap base64 data in a data URL; values already carrying a prefix pass through."""
    if data.startswith("data:"):
        return data
    return f"data:{mime_type};base64,{data}"


def bytes_to_data_url(content: bytes, mime_type: Optional[str] = None) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return to_data_url(encoded, (mime_type or DEFAULT_MIME_TYPE).split(";")[0].strip())


def decode_image(value: str) -> tuple[str, bytes]:
    """Decode an image payload into (mime type, raw bytes)."""
    mime_type, data = split_data_url(value)
    return mime_type, base64.b64decode(data)


def is_valid_base64(value: str) -> bool:
    """Check that value (optionally a data URL) holds well-formed base64."""
    if not value or not isinstance(value, str):
        return False

    _, data = split_data_url(value)
    if not _BASE64_RE.match(data) or len(data) % 4 != 0:
        return False

    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def nearest_aspect_ratio(width: Optional[int], height: Optional[int]) -> str:
    """Allowed aspect ratio closest to width/height, "1:1" when either is unset."""
    if not width or not height:
        return "1:1"

    requested = width / height
    label, _ = min(ALLOWED_ASPECT_RATIOS, key=lambda item: abs(requested - item[1]))
    return label


def nearest_size(
    width: Optional[int],
    height: Optional[int],
    supported: list[tuple[int, int]],
    default: str = "1024x1024",
) -> str:
    """Supported "WxH" size with the smallest total pixel distance to the request."""
    if not width or not height:
        return default

    w, h = min(supported, key=lambda size: abs(width - size[0]) + abs(height - size[1]))
    return f"{w}x{h}"
