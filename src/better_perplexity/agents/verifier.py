"""Claim extraction and deterministic lexical verification.

extract_claims() asks the model for atomic factual claims in a draft answer.
verify_claims() scores each claim against chunked source text by token overlap;
no model is involved, so the same inputs always give the same labels.
"""

from __future__ import annotations

import re
import uuid
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, Field, StringConstraints

from ..llm.client import JsonSpec, LLMClient
from ..llm.prompts import load_prompt
from ..log import get_logger
from ..schemas.evidence import EvidenceSource
from ..schemas.run import Claim, ClaimEvidence, SupportLabel

logger = get_logger("verifier")

CHUNK_MAX_CHARS = 900
MAX_CHUNKS_PER_SOURCE = 40
MIN_TOKEN_CHARS = 4
MIN_DENOMINATOR = 8
SNIPPET_CHARS = 280
MAX_EVIDENCE_PER_CLAIM = 3
SUPPORTED_THRESHOLD = 0.75
WEAK_THRESHOLD = 0.45

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_BLANK_LINES = re.compile(r"\n{2,}")

ClaimText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=8)]


class ClaimsPayload(BaseModel):
    claims: List[ClaimText] = Field(..., min_length=1, max_length=6)


class ClaimExtraction(BaseModel):
    """Result of claim extraction. An empty claim list means: skip verification."""
    claims: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return not self.claims


def parse_claims(raw: Any) -> List[str]:
    """
    Accepts a bare JSON array or {"claims": [...]}, with items either strings
    or {"claim": "..."} objects. Raises ValueError on anything else.
    """
    if isinstance(raw, list):
        raw = {"claims": raw}
    if isinstance(raw, dict) and isinstance(raw.get("claims"), list):
        raw = {"claims": [c.get("claim") if isinstance(c, dict) else c for c in raw["claims"]]}
    return ClaimsPayload.model_validate(raw).claims


def extract_claims(llm: LLMClient, question: str, draft_answer: str, temperature: float = 0.2) -> ClaimExtraction:
    """Never raises: failures come back as an empty ClaimExtraction carrying the error."""
    try:
        prompt = (
            f"{load_prompt('extract_claims').strip()}\n\n"
            f"Question:\n{question}\n\n"
            f"Draft Answer:\n{draft_answer}"
        )
        spec = JsonSpec(instruction=load_prompt("extract_claims", key="instruction"), parse=parse_claims)
        result = llm.chat([{"role": "user", "content": prompt}], temperature=temperature, json_spec=spec)
        claims = [c for c in result.parsed if c]
    except Exception as e:
        logger.warning(f"Claim extraction failed, skipping verification: {e}")
        return ClaimExtraction(claims=[], error=str(e))

    return ClaimExtraction(claims=claims)


def chunk_text(text: str, max_len: int = CHUNK_MAX_CHARS, max_chunks: int = MAX_CHUNKS_PER_SOURCE) -> List[str]:
    """Greedily packs blank-line separated paragraphs into chunks of at most max_len chars."""
    paragraphs = [p.strip() for p in _BLANK_LINES.split(text or "")]
    paragraphs = [p for p in paragraphs if p]

    chunks = []
    buf = ""
    for p in paragraphs:
        candidate = f"{buf}\n\n{p}" if buf else p
        if len(candidate) > max_len:
            # A single oversized paragraph still becomes its own chunk
            if buf:
                chunks.append(buf)
            buf = p
        else:
            buf = candidate
    if buf:
        chunks.append(buf)
    return chunks[:max_chunks]


def tokenize(text: str) -> List[str]:
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) >= MIN_TOKEN_CHARS]


def overlap_score(claim: str, chunk: str) -> float:
    """
    Share of chunk tokens (with repeats) that appear in the claim's token set,
    normalized by max(8, |claim set|) and capped at 1.
    """
    claim_tokens = set(tokenize(claim))
    chunk_tokens = tokenize(chunk)
    if not claim_tokens or not chunk_tokens:
        return 0.0

    hits = sum(1 for t in chunk_tokens if t in claim_tokens)
    return min(1.0, hits / max(MIN_DENOMINATOR, len(claim_tokens)))


def label_from_score(score: float) -> SupportLabel:
    if score >= SUPPORTED_THRESHOLD:
        return "supported"
    if score >= WEAK_THRESHOLD:
        return "weak"
    return "unsupported"


def verify_claims(claims: List[str], sources: List[EvidenceSource]) -> List[Claim]:
    source_chunks = [(s.url, chunk_text(s.text)) for s in sources]

    records = []
    for claim in claims:
        scored = []
        for url, chunks in source_chunks:
            best_score = 0.0
            best_snippet = ""
            for chunk in chunks:
                score = overlap_score(claim, chunk)
                if score > best_score:
                    best_score = score
                    best_snippet = chunk[:SNIPPET_CHARS]
            if best_score > 0:
                scored.append((best_score, url, best_snippet))

        # Stable sort keeps source order among equal scores
        scored.sort(key=lambda item: item[0], reverse=True)
        top = scored[:MAX_EVIDENCE_PER_CLAIM]
        max_score = top[0][0] if top else 0.0

        records.append(Claim(
            id=uuid.uuid4().hex,
            claim=claim,
            score=round(max_score, 2),
            label=label_from_score(max_score),
            evidence=[ClaimEvidence(source_url=url, snippet=snippet) for _, url, snippet in top],
        ))

    summary = ", ".join(f"{r.label}={r.score}" for r in records) or "none"
    logger.info(f"Verified {len(records)} claim(s): {summary}")
    return records
