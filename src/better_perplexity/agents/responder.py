from typing import List, Optional

from ..llm.client import ChatMessage, LLMClient
from ..llm.prompts import load_prompt
from ..schemas.evidence import EvidenceSource
from ..schemas.run import Claim, Mode

MAX_PACKED_SOURCES = 6
TITLE_CHARS = 160
EXCERPT_CHARS = 300
BODY_CHARS = 600


def clamp(s: Optional[str], max_len: int) -> str:
    t = (s or "").strip()
    return t[:max_len] + "…" if len(t) > max_len else t


def evidence_pack(sources: List[EvidenceSource]) -> str:
    """
    Packs evidence with strict caps so the context stays small:
    title + excerpt + a slice of the body, never the whole page.
    """
    blocks = []
    for i, s in enumerate(sources[:MAX_PACKED_SOURCES]):
        blocks.append("\n".join([
            f"Source[{i + 1}]",
            f"URL: {s.url}",
            f"Title: {clamp(s.title, TITLE_CHARS)}",
            f"Excerpt: {clamp(s.excerpt, EXCERPT_CHARS)}",
            f"Body: {clamp(s.text, BODY_CHARS)}",
        ]))
    return "\n\n".join(blocks)


def claims_pack(claims: List[Claim]) -> str:
    return "\n".join(f"Claim[{i + 1}] ({c.label}, score={c.score}): {c.claim}" for i, c in enumerate(claims))


def responder_messages(
    question: str,
    mode: Mode,
    sources: List[EvidenceSource],
    verified_claims: Optional[List[Claim]] = None,
) -> List[ChatMessage]:
    parts = [
        "Question:",
        question,
        "",
        "Evidence:",
        evidence_pack(sources),
        "",
    ]
    if mode == "reliability":
        parts += [
            "Verified claims:",
            claims_pack(verified_claims or []),
            "",
            load_prompt("responder", key="rules_reliability").strip(),
        ]
    else:
        parts.append(load_prompt("responder", key="rules_normal").strip())

    return [
        {"role": "system", "content": load_prompt("responder").strip()},
        {"role": "user", "content": "\n".join(parts)},
    ]


def final_messages(
    question: str,
    mode: Mode,
    sources: List[EvidenceSource],
    verified_claims: Optional[List[Claim]] = None,
) -> List[ChatMessage]:
    """Responder messages plus the closing instruction for the user-visible answer."""
    key = "final_reliability" if mode == "reliability" else "final_normal"
    return [
        *responder_messages(question, mode, sources, verified_claims),
        {"role": "system", "content": load_prompt("responder", key=key).strip()},
    ]


def draft_answer(llm: LLMClient, messages: List[ChatMessage], temperature: float = 0.2) -> str:
    return llm.chat(messages, temperature=temperature).text.strip()
