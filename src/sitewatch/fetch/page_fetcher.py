# src/sitewatch/fetch/page_fetcher.py

"""
Page fetcher: download a URL and extract text by CSS selectors.

Include selectors pick the elements whose text is returned; exclude
selectors (written with a leading '!' in task configs) remove matching
elements, and everything inside them, before extraction.
"""

from __future__ import annotations

import logging
import re

import httpx
import soupsieve as sv
from bs4 import BeautifulSoup

from ..core.errors import FetchError, FetchErrorKind

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}
_URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)

NO_CONTENT = "No content found"


def selector_error(selector: str) -> str | None:
    """Return a short description of why `selector` is not valid CSS, or None."""
    try:
        sv.compile(selector)
    except sv.SelectorSyntaxError as e:
        return str(e).splitlines()[0]
    except (NotImplementedError, ValueError) as e:
        return str(e) or e.__class__.__name__
    return None


def _compile(selector: str) -> sv.SoupSieve:
    err = selector_error(selector)
    if err:
        raise FetchError(FetchErrorKind.INVALID_SELECTOR, f"Invalid selector {selector!r}: {err}")
    return sv.compile(selector)


def extract_text(html: str, include: list[sv.SoupSieve], exclude: list[sv.SoupSieve]) -> str:
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    for pattern in exclude:
        for el in pattern.select(soup):
            el.decompose()

    results: list[str] = []
    for pattern in include:
        for el in pattern.select(soup):
            text = el.get_text(" ", strip=True)
            if text:
                results.append(text)
    return "\n".join(results)


class HtmlPageFetcher:
    """
    ContentFetcher backed by httpx + BeautifulSoup.

    One attempt per call; retries and per-attempt deadlines belong to the executor.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_chars: int = 20_000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._max_chars = max(1, int(max_chars))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=_HEADERS,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=5,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str, include: list[str], exclude: list[str]) -> str:
        if not url or not _URL_RE.match(url.strip()):
            raise FetchError(FetchErrorKind.NOT_REACHABLE, f"Invalid URL: {url!r}", retryable=False)
        if not include:
            raise FetchError(FetchErrorKind.INVALID_SELECTOR, "At least one include selector is required")

        # Compile before touching the network: a bad selector is not worth a request.
        inc = [_compile(s) for s in include]
        exc = [_compile(s) for s in exclude]

        html = await self._get(url.strip())
        text = extract_text(html, inc, exc)

        if not text:
            logger.debug("No content matched url=%s include=%s", url, include)
            return NO_CONTENT

        if len(text) > self._max_chars:
            logger.debug("Content truncated url=%s chars=%d", url, len(text))
            text = text[: self._max_chars] + f"\n\n[Content truncated, {len(text):,} total characters]"
        return text

    async def _get(self, url: str) -> str:
        logger.debug("GET %s", url)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchError(FetchErrorKind.TIMEOUT, f"Request timed out: {url}") from e
        except httpx.TooManyRedirects as e:
            raise FetchError(FetchErrorKind.NOT_REACHABLE, f"Too many redirects: {url}") from e
        except httpx.HTTPStatusError as e:
            raise FetchError(FetchErrorKind.NOT_REACHABLE, f"HTTP {e.response.status_code}: {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(FetchErrorKind.NOT_REACHABLE, f"Request failed: {e.__class__.__name__}") from e
        return response.text
