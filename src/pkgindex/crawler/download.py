"""
HTTP helpers for registry documents and archive downloads.
"""

from pathlib import Path
from typing import Any

import httpx

from pkgindex.config.settings import HttpSettings
from pkgindex.core.exceptions import DownloadError, MetadataError
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)


def create_http_client(settings: HttpSettings) -> httpx.AsyncClient:
    """
    Create the shared async client used by discovery and all workers.

    Args:
        settings: HTTP configuration

    Returns:
        Configured httpx.AsyncClient; the caller closes it
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """
    GET a registry JSON document.

    Raises:
        DownloadError: On transport errors or non-2xx responses
        MetadataError: If the body is not valid JSON
    """
    try:
        response = await client.get(url, headers=headers, params=params)
    except httpx.HTTPError as e:
        raise DownloadError(f"Request failed: {e}", url=url) from e

    if not response.is_success:
        raise DownloadError(
            f"Registry returned HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
            retry_after=_retry_after(response),
        )

    try:
        return response.json()
    except ValueError as e:
        raise MetadataError(f"Invalid JSON from registry: {e}",
                            details={"url": url}) from e


async def download_file(
    client: httpx.AsyncClient,
    url: str,
    destination: Path,
    max_bytes: int,
    headers: dict[str, str] | None = None,
) -> int:
    """
    Stream a URL to a file without buffering it in memory.

    Args:
        client: HTTP client
        url: Archive URL
        destination: File to write
        max_bytes: Abort once the body exceeds this many bytes
        headers: Extra request headers

    Returns:
        Number of bytes written

    Raises:
        DownloadError: On transport errors, non-2xx responses, or an
            oversized body (the partial file is removed)
    """
    written = 0
    try:
        async with client.stream("GET", url, headers=headers) as response:
            if not response.is_success:
                raise DownloadError(
                    f"Download returned HTTP {response.status_code}",
                    url=url,
                    status_code=response.status_code,
                    retry_after=_retry_after(response),
                )

            declared = response.headers.get("Content-Length")
            if declared is not None and declared.isdigit() and int(declared) > max_bytes:
                raise DownloadError(
                    "Archive exceeds download size limit",
                    url=url,
                    retryable=False,
                    details={"size": int(declared), "limit": max_bytes},
                )

            with open(destination, "wb") as out:
                async for chunk in response.aiter_bytes():
                    written += len(chunk)
                    if written > max_bytes:
                        raise DownloadError(
                            "Archive exceeds download size limit",
                            url=url,
                            retryable=False,
                            details={"limit": max_bytes},
                        )
                    out.write(chunk)

    except httpx.HTTPError as e:
        destination.unlink(missing_ok=True)
        raise DownloadError(f"Download failed: {e}", url=url) from e
    except DownloadError:
        destination.unlink(missing_ok=True)
        raise

    logger.debug(f"Downloaded {written} bytes from {url}")
    return written
