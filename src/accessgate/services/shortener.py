"""Client for the third-party ad/shortener gateway.

The gateway wraps our verification callback URL in an ad-supported short link.
Its internals are opaque to us; when it is not configured or keeps failing we
hand out the raw callback URL instead so the flow still works.
"""

import logging

import httpx

from accessgate.config import settings
from accessgate.services.resilience import CircuitOpenError, shortener_circuit, with_retry

logger = logging.getLogger(__name__)


class ShortenerError(Exception):
    """The shortener answered but did not return a usable link."""

    pass


async def _request_short_link(client: httpx.AsyncClient, url: str) -> str:
    response = await client.get(
        settings.shortener_api_url,
        params={"api": settings.shortener_api_key, "url": url},
    )
    response.raise_for_status()
    data = response.json()
    short_link = data.get("shortenedUrl") or data.get("short_url")
    if data.get("status") == "error" or not short_link:
        raise ShortenerError(f"Shortener rejected link: {data.get('message', data)}")
    return short_link


async def shorten_url(url: str, client: httpx.AsyncClient | None = None) -> str:
    """Wrap ``url`` in a short link, falling back to ``url`` on any failure."""
    if not settings.shortener_api_url:
        return url

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.shortener_timeout)
    try:
        return await shortener_circuit.call(
            with_retry, _request_short_link, client, url, max_attempts=2, min_wait=0.5, max_wait=2.0
        )
    except CircuitOpenError:
        logger.warning("Shortener circuit open, using direct callback URL")
    except (httpx.HTTPError, ShortenerError, ValueError) as e:
        logger.warning(f"Shortener failed, using direct callback URL: {e!r}")
    finally:
        if owns_client:
            await client.aclose()
    return url
