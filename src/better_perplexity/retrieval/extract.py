import hashlib
from typing import Optional, Protocol
from urllib.parse import urlparse

import trafilatura

from ..config import Settings, get_settings
from ..log import get_logger
from ..schemas.evidence import ExtractedDoc
from ..store.cache import Cache, safe_get, safe_set

logger = get_logger("extract")

EXCERPT_CHARS = 400


class TextExtractor(Protocol):
    def extract(self, html: str, url: str) -> ExtractedDoc:
        ...


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:24]


def normalize_paragraphs(text: str) -> str:
    """
    Trafilatura separates paragraphs with single newlines; we want blank lines
    between them so downstream chunking can split on paragraph boundaries.
    """
    paragraphs = [p.strip() for p in text.splitlines() if p.strip()]
    return "\n\n".join(paragraphs)


class Extractor:
    def __init__(self, cache: Optional[Cache] = None, ttl_seconds: int = 24 * 60 * 60):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def extract(self, html: str, url: str) -> ExtractedDoc:
        """
        Extracts main readable text from HTML.
        May raise on input trafilatura cannot handle; callers skip the page.
        """
        cache_key = f"extract:v1:{url}"
        cached = safe_get(self.cache, cache_key)
        if cached is not None:
            try:
                return ExtractedDoc.model_validate_json(cached)
            except ValueError:
                logger.warning(f"Ignoring corrupt extract cache entry for {url}")

        extracted = trafilatura.extract(html, include_comments=False, include_tables=True, url=url)
        text = normalize_paragraphs(extracted or "")

        metadata = trafilatura.extract_metadata(html, default_url=url)
        title = ((metadata.title if metadata else None) or "").strip() or (urlparse(url).hostname or url)

        doc = ExtractedDoc(
            title=title,
            text=text,
            excerpt=text[:EXCERPT_CHARS],
            content_hash=content_hash(text or html[:2000]),
        )
        safe_set(self.cache, cache_key, doc.model_dump_json(), self.ttl_seconds)
        return doc


def build_extractor(cache: Optional[Cache] = None, settings: Optional[Settings] = None) -> Extractor:
    settings = settings or get_settings()
    return Extractor(cache=cache, ttl_seconds=settings.EXTRACT_TTL_S)
