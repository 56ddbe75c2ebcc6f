"""
Media Fetcher Service for MetaScan
==================================
Retrieves the raw bytes behind a media URL.

- Single attempt, no retries
- Redirects followed
- Duration bounded by FETCH_TIMEOUT_SECONDS
- Body streamed in 64KB chunks and capped at MAX_MEDIA_BYTES
"""

import logging
from typing import Optional

import httpx

from metascan.config import FETCH_TIMEOUT_SECONDS, MAX_MEDIA_BYTES
from metascan.utils import CHUNK_SIZE, read_limited

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """The media URL could not be retrieved."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


async def fetch_media(
    url: str,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    max_bytes: int = MAX_MEDIA_BYTES,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> bytes:
    """
    Downloads a media file into memory.

    Args:
        url: Absolute http(s) URL
        timeout: Overall request timeout in seconds
        max_bytes: Largest payload accepted
        transport: Optional httpx transport (used by tests)

    Returns:
        Raw bytes of the response body

    Raises:
        FetchError: Non-2xx status, unreachable host, timeout or oversize body
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport
        ) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchError(
                        f"Fetch failed: {response.status_code}",
                        status_code=response.status_code
                    )

                data = await read_limited(
                    response.aiter_bytes(chunk_size=CHUNK_SIZE),
                    max_bytes
                )
                if data is None:
                    raise FetchError(
                        f"Fetch failed: payload exceeds {max_bytes} bytes",
                        status_code=response.status_code
                    )

    except httpx.TimeoutException as e:
        logger.error(f"Fetch timed out for {url}: {e}")
        raise FetchError(f"Fetch failed: timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        logger.error(f"Fetch failed for {url}: {e}")
        raise FetchError(f"Fetch failed: {e}") from e

    logger.debug(f"Fetched {len(data)} bytes from {url}")
    return data
