"""
Utility Functions for MetaScan
==============================
Small helpers shared by the fetcher, the metadata extractor and the analyzer.

Features:
- Lexical locator helpers (declared extension, scheme check)
- Bounded chunked byte accumulation (64KB buffers)
- JSON-safe cleaning of raw metadata tag values
"""

from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse


# 64KB chunk size - optimal for most transports and memory usage
CHUNK_SIZE = 65536

ALLOWED_SCHEMES = ("http", "https")


def declared_extension(locator: str) -> str:
    """
    Returns the extension a locator claims to have.

    Purely lexical: the lowercase substring after the final ".". A locator
    without any "." yields the whole lowercased string.

    Args:
        locator: URL or filename

    Returns:
        Declared extension
    """
    return locator.rsplit(".", 1)[-1].lower()


def is_fetchable_locator(locator: str) -> bool:
    """
    Checks that a locator is an absolute http(s) URL with a host.

    Args:
        locator: Candidate media URL

    Returns:
        True if the fetcher can be pointed at it
    """
    try:
        parsed = urlparse(locator)
    except ValueError:
        return False
    return parsed.scheme.lower() in ALLOWED_SCHEMES and bool(parsed.netloc)


async def read_limited(
    chunks: AsyncIterator[bytes],
    max_bytes: int
) -> Optional[bytes]:
    """
    Accumulates an async byte stream up to a size ceiling.

    Args:
        chunks: Async iterator of byte chunks
        max_bytes: Maximum number of bytes to accept

    Returns:
        The full payload, or None if the ceiling was exceeded
    """
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            return None
    return bytes(buffer)


def clean_tag_value(value: Any) -> Any:
    """
    Converts a raw metadata value into something JSON can carry.

    - Rationals (IFDRational, Fraction) become floats
    - Bytes are decoded as UTF-8 with undecodable bytes dropped
    - Tuples and lists are cleaned element-wise into lists
    - Strings lose trailing NUL padding and surrounding whitespace
    """
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return value
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        try:
            return float(value.numerator) / float(value.denominator)
        except ZeroDivisionError:
            return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore").rstrip("\x00").strip()
    if isinstance(value, str):
        return value.rstrip("\x00").strip()
    if isinstance(value, (tuple, list)):
        return [clean_tag_value(v) for v in value]
    return str(value)


def format_coordinate(value: Any) -> str:
    """
    Renders a coordinate the way a JSON number prints.

    Integral floats drop their fractional part, so -74.0 becomes "-74".
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
