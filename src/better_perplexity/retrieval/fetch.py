"""HTTP fetching with strict timeouts.

Fetches HTML with separate connect/read timeouts plus a hard wall-clock cap
over the whole request: connect, headers and body. fetch() never raises: any
failure comes back as FetchResult(status=0).
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Optional, Protocol

import httpx

from ..config import Settings, get_settings
from ..log import get_logger
from ..schemas.evidence import FetchResult
from ..store.cache import Cache, safe_get, safe_set

logger = get_logger("fetch")

MAX_BODY_BYTES = 3 * 1024 * 1024
# Requests past their hard timeout are abandoned here; each one still ends
# within its own clamped httpx timeouts.
FETCH_THREADS = 16

_request_pool = ThreadPoolExecutor(max_workers=FETCH_THREADS, thread_name_prefix="fetch")


class HardTimeout(Exception):
    pass


class PageFetcher(Protocol):
    def fetch(self, url: str) -> FetchResult:
        ...


class Fetcher:
    def __init__(
        self,
        cache: Optional[Cache] = None,
        connect_timeout: float = 4.0,
        read_timeout: float = 7.0,
        hard_timeout: float = 8.0,
        ttl_seconds: int = 6 * 60 * 60,
    ):
        self.cache = cache
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.hard_timeout = hard_timeout
        self.ttl_seconds = ttl_seconds
        self.headers = {
            "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) BetterPerplexity/1.0",
            "Accept": "text/html,application/xhtml+xml",
        }

    def timeout_for(self, remaining: float) -> httpx.Timeout:
        """Per-phase timeouts, none longer than the time left before the hard deadline."""
        connect = min(self.connect_timeout, remaining)
        read = min(self.read_timeout, remaining)
        return httpx.Timeout(connect=connect, read=read, write=read, pool=connect)

    def fetch(self, url: str) -> FetchResult:
        cache_key = f"fetch:v2:{url}"
        cached = safe_get(self.cache, cache_key)
        if cached is not None:
            try:
                return FetchResult.model_validate_json(cached)
            except ValueError:
                logger.warning(f"Ignoring corrupt fetch cache entry for {url}")

        try:
            result = self._fetch_live(url)
        except Exception as e:
            logger.debug(f"Fetch failed for {url}: {e!r}")
            return FetchResult(url=url, status=0, error=f"{type(e).__name__}: {e}")

        if result.ok and result.html:
            safe_set(self.cache, cache_key, result.model_dump_json(), self.ttl_seconds)
        return result

    def _fetch_live(self, url: str) -> FetchResult:
        deadline = time.monotonic() + self.hard_timeout
        future = _request_pool.submit(self._request, url, deadline)
        try:
            return future.result(timeout=self.hard_timeout)
        except FuturesTimeout:
            raise HardTimeout(f"Exceeded {self.hard_timeout}s fetching {url}") from None

    def _request(self, url: str, deadline: float) -> FetchResult:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise HardTimeout(f"Exceeded {self.hard_timeout}s before requesting {url}")

        with httpx.Client(timeout=self.timeout_for(remaining), follow_redirects=True, headers=self.headers) as client:
            with client.stream("GET", url) as resp:
                status = resp.status_code
                content_type = resp.headers.get("content-type", "")
                html = ""
                # Non-HTML or error bodies are never read
                if 200 <= status < 300 and "text/html" in content_type.lower():
                    chunks = []
                    size = 0
                    for chunk in resp.iter_bytes():
                        if time.monotonic() > deadline:
                            raise HardTimeout(f"Exceeded {self.hard_timeout}s reading {url}")
                        chunks.append(chunk)
                        size += len(chunk)
                        if size >= MAX_BODY_BYTES:
                            break
                    html = b"".join(chunks).decode(resp.charset_encoding or "utf-8", errors="replace")
                return FetchResult(url=url, status=status, content_type=content_type, html=html)


def build_fetcher(cache: Optional[Cache] = None, settings: Optional[Settings] = None) -> Fetcher:
    settings = settings or get_settings()
    return Fetcher(
        cache=cache,
        connect_timeout=settings.FETCH_CONNECT_TIMEOUT_S,
        read_timeout=settings.FETCH_READ_TIMEOUT_S,
        hard_timeout=settings.FETCH_HARD_TIMEOUT_S,
        ttl_seconds=settings.FETCH_TTL_S,
    )
