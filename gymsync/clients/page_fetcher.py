"""
Singleton page fetcher with rate limiting using aiolimiter.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Dict, Optional
from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gymsync.config import FETCH_RETRIES, FETCH_TIMEOUT_SECONDS, REQUESTS_PER_SECOND
from gymsync.errors import SourceBlocked

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
]

BLOCK_STATUSES = {403, 429}
BLOCK_MARKERS = ("captcha", "자동입력 방지", "unusual traffic")


@dataclass
class FetchResponse:
    status: int
    body: str
    url: str


class TransientFetchError(Exception):
    """Server-side or connection failure worth retrying."""


def build_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Browser-like request headers with a rotated user agent."""
    headers = {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        "Cache-Control": "no-cache",
    }
    if extra:
        headers.update(extra)
    return headers


def looks_blocked(body: str) -> bool:
    lowered = body[:5000].lower()
    return any(marker in lowered for marker in BLOCK_MARKERS)


class PageFetcher:
    """
    Singleton fetcher for search result pages.
    Uses AsyncLimiter for rate limiting instead of semaphores.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not PageFetcher._initialized:
            self.timeout = FETCH_TIMEOUT_SECONDS
            # Token bucket: REQUESTS_PER_SECOND requests per second across all sources
            self.rate_limiter = AsyncLimiter(max_rate=max(REQUESTS_PER_SECOND, 0.1), time_period=1.0)
            self._session: Optional[ClientSession] = None
            PageFetcher._initialized = True

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=ClientTimeout(total=self.timeout))
        return self._session

    async def fetch(
        self,
        url: str,
        source: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        """
        GET a page and return its status and decoded body.

        Args:
            url: Target URL to request.
            source: Source tag used in block errors and logs.
            headers: Optional extra HTTP headers.
            timeout: Optional per-request timeout in seconds.

        Returns:
            FetchResponse for any status below 500 that is not a block.

        Raises:
            SourceBlocked: On HTTP 403/429 or a captcha page. Never retried.
            TransientFetchError: When retries on 5xx/connection errors run out.
        """
        return await self._fetch_with_retry(url, source, headers, timeout)

    @retry(
        stop=stop_after_attempt(FETCH_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientFetchError),
        reraise=True,
    )
    async def _fetch_with_retry(
        self,
        url: str,
        source: str,
        headers: Optional[Dict[str, str]],
        timeout: Optional[float],
    ) -> FetchResponse:
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.get(
                    url,
                    headers=build_headers(headers),
                    timeout=ClientTimeout(total=timeout or self.timeout),
                    max_redirects=5,
                ) as resp:
                    body = await resp.text(errors="ignore")
                    status = resp.status
            except (ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"⚠️ {source} request failed for {url}: {e}")
                raise TransientFetchError(str(e)) from e

        if status in BLOCK_STATUSES:
            logger.warning(f"🚫 {source} returned HTTP {status} for {url}")
            raise SourceBlocked(source, status)
        if status >= 500:
            raise TransientFetchError(f"{source} returned HTTP {status}")
        if looks_blocked(body):
            logger.warning(f"🚫 {source} served a captcha page for {url}")
            raise SourceBlocked(source, status, "captcha page")
        return FetchResponse(status=status, body=body, url=url)

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
