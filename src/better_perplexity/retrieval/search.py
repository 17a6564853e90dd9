"""Web search capability backed by Serper (Google results API).

Results are trimmed to title/link/snippet and cached for SEARCH_TTL_S.
"""

import json
from typing import List, Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from ..config import Settings, get_settings
from ..errors import UpstreamFailure
from ..log import get_logger
from ..schemas.evidence import SearchResult
from ..store.cache import Cache, safe_get, safe_set

logger = get_logger("search")

SERPER_ENDPOINT = "https://google.serper.dev/search"


class SearchProvider(Protocol):
    def search(self, query: str, k: int = 6) -> List[SearchResult]:
        ...


class SerperSearch:
    def __init__(self, api_key: Optional[str], cache: Optional[Cache] = None, ttl_seconds: int = 30 * 60, timeout: float = 10.0):
        self.api_key = api_key
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    def search(self, query: str, k: int = 6) -> List[SearchResult]:
        """
        Returns up to k ranked results.
        Raises UpstreamFailure on missing credentials or API errors.
        """
        if not self.api_key:
            raise UpstreamFailure("SERPER_API_KEY is not set.")

        norm = query.strip().lower()
        cache_key = f"search:v1:{norm}:{k}"
        cached = safe_get(self.cache, cache_key)
        if cached is not None:
            try:
                return [SearchResult(**r) for r in json.loads(cached)]
            except (ValueError, TypeError):
                logger.warning(f"Ignoring corrupt search cache entry for {norm!r}")

        try:
            data = self._post(query, k)
        except httpx.HTTPStatusError as e:
            raise UpstreamFailure(f"Search failed ({e.response.status_code}): {e.response.text[:200]}") from e
        except httpx.RequestError as e:
            raise UpstreamFailure(f"Search request failed: {e}") from e
        except ValueError as e:
            raise UpstreamFailure(f"Search returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamFailure(f"Search returned {type(data).__name__}, expected an object")
        organic = data.get("organic") or []
        if not isinstance(organic, list):
            raise UpstreamFailure("Search response 'organic' is not a list")

        results = []
        for r in organic[:k]:
            if not isinstance(r, dict) or not r.get("link"):
                continue
            try:
                results.append(SearchResult(title=r.get("title") or "", link=r["link"], snippet=r.get("snippet") or ""))
            except ValueError:
                logger.debug(f"Skipping malformed search result: {r!r}")

        safe_set(self.cache, cache_key, json.dumps([r.model_dump() for r in results]), self.ttl_seconds)
        return results

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(httpx.RequestError),
        reraise=True
    )
    def _post(self, query: str, k: int) -> dict:
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(
                SERPER_ENDPOINT,
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                json={"q": query, "num": k},
            )
            resp.raise_for_status()
            return resp.json()


def build_search(cache: Optional[Cache] = None, settings: Optional[Settings] = None) -> SerperSearch:
    settings = settings or get_settings()
    return SerperSearch(settings.SERPER_API_KEY, cache=cache, ttl_seconds=settings.SEARCH_TTL_S)
