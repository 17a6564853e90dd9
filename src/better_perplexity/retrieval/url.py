from typing import List
from urllib.parse import urlparse

from ..schemas.evidence import Candidate, SearchResult

MIN_SNIPPET_CHARS = 30
SELECT_REASON = "Top-ranked unique domain with informative snippet."

def normalized_domain(url: str) -> str:
    """
    Hostname with scheme, port and a leading 'www.' stripped, lower-cased.
    Raises ValueError if the URL has no hostname.
    """
    host = (urlparse(url.strip()).hostname or "").strip(".")
    if not host:
        raise ValueError(f"No hostname in URL: {url!r}")
    if host.startswith("www."):
        host = host[len("www."):]
    return host

def select_urls(results: List[SearchResult], max_urls: int = 2) -> List[Candidate]:
    """
    Walks ranked search results and picks up to `max_urls` candidates,
    at most one per domain, skipping results with a thin snippet.
    """
    seen_domains = set()
    selected = []

    for r in results:
        if len(selected) >= max_urls:
            break
        try:
            domain = normalized_domain(r.link)
        except ValueError:
            continue
        if domain in seen_domains:
            continue
        if not r.snippet or len(r.snippet) < MIN_SNIPPET_CHARS:
            continue

        seen_domains.add(domain)
        selected.append(Candidate(url=r.link, reason=SELECT_REASON))

    return selected
