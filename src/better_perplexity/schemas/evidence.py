"""Pydantic schemas for evidence and retrieval data.

Defines the search/fetch/extract capability payloads and EvidenceSource,
the unit of evidence handed to the responder and verifier.
"""

from pydantic import BaseModel
from typing import Optional

class SearchResult(BaseModel):
    title: str = ""
    link: str
    snippet: str = ""

class Candidate(BaseModel):
    url: str
    reason: str

class FetchResult(BaseModel):
    url: str
    status: int # 0 = total failure (timeout, DNS, TLS...)
    content_type: str = ""
    html: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()

class ExtractedDoc(BaseModel):
    title: str
    text: str
    excerpt: str
    content_hash: str

class SourceRef(BaseModel):
    """Source metadata without the page body; this is what gets cached."""
    url: str
    title: str
    domain: str
    excerpt: str
    content_hash: str

class EvidenceSource(SourceRef):
    text: str

    def to_ref(self) -> SourceRef:
        return SourceRef(**self.model_dump(exclude={"text"}))
