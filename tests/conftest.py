import json
import os
import threading
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest
from dotenv import load_dotenv

from better_perplexity.config import Settings
from better_perplexity.errors import UpstreamFailure
from better_perplexity.llm.client import LLMClient
from better_perplexity.retrieval.extract import content_hash
from better_perplexity.schemas.evidence import EvidenceSource, ExtractedDoc, FetchResult, SearchResult
from better_perplexity.store.cache import MemoryCache

@pytest.fixture(scope="session", autouse=True)
def _load_env():
    # Load .env once per session to avoid side-effects on import time
    load_dotenv()

def _truthy(v: str | None) -> bool:
    return v is not None and v.strip().lower() not in ("", "0", "false", "no")

@pytest.fixture(scope="session")
def allow_integration(_load_env) -> bool:
    return _truthy(os.getenv("RUN_INTEGRATION_TESTS"))


# --- Generation stub -------------------------------------------------------
# A fake OpenAI client so tests exercise the real LLMClient parsing/streaming code.

class FakeCompletions:
    def __init__(self, responder: Callable[[List[dict], bool], object]):
        self.responder = responder
        self.calls: List[dict] = []

    def create(self, model, messages, temperature=None, stream=False):
        self.calls.append({"model": model, "messages": messages, "temperature": temperature, "stream": stream})
        reply = self.responder(messages, stream)
        if stream:
            if isinstance(reply, str):
                return iter(_stream_chunks(reply))
            return reply  # already an iterator of chunks
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def _stream_chunks(text: str, size: int = 7):
    return [
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text[i:i + size]))])
        for i in range(0, len(text), size)
    ]


class FakeOpenAI:
    def __init__(self, responder):
        self.completions = FakeCompletions(responder)
        self.chat = SimpleNamespace(completions=self.completions)


def make_llm(responder, settings: Optional[Settings] = None, model: str = "stub-model") -> LLMClient:
    return LLMClient(model, settings=settings, client=FakeOpenAI(responder))


def prompt_text(messages: List[dict]) -> str:
    return "\n".join(m["content"] for m in messages)


def scripted_responder(
    plan: Optional[dict] = None,
    claims: Optional[list] = None,
    draft: str = "Draft answer (Source[1]).",
    answer: str = "Final answer citing (Source[1]) and (Source[2]).",
):
    """Routes each request to a canned reply based on which prompt it carries."""
    def respond(messages, stream):
        text = prompt_text(messages)
        if "Create a web research plan" in text:
            if plan is None:
                raise UpstreamFailure("planner offline")
            return json.dumps(plan)
        if "Extract atomic, checkable factual claims" in text:
            if claims is None:
                return "no json here"
            return "Sure! Here you go:\n" + json.dumps({"claims": claims})
        if stream:
            return answer
        return draft
    return respond


# --- Retrieval stubs -------------------------------------------------------

class StubSearch:
    def __init__(self, results: Optional[Dict[str, List[SearchResult]]] = None, default: Optional[List[SearchResult]] = None, failing: tuple = ()):
        self.results = results or {}
        self.default = default or []
        self.failing = set(failing)
        self.calls: List[str] = []

    def search(self, query: str, k: int = 6) -> List[SearchResult]:
        self.calls.append(query)
        if query in self.failing or "*" in self.failing:
            raise UpstreamFailure(f"search down for {query}")
        return list(self.results.get(query, self.default))[:k]


class StubFetcher:
    def __init__(self, statuses: Optional[Dict[str, int]] = None, content_types: Optional[Dict[str, str]] = None, on_fetch: Optional[Callable[[str], None]] = None):
        self.statuses = statuses or {}
        self.content_types = content_types or {}
        self.on_fetch = on_fetch
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        status = self.statuses.get(url, 200)
        if status == 0:
            return FetchResult(url=url, status=0, error="ConnectError")
        return FetchResult(
            url=url,
            status=status,
            content_type=self.content_types.get(url, "text/html; charset=utf-8"),
            html=f"<html><body>{url}</body></html>",
        )


def page_text(url: str, length: int = 400) -> str:
    base = f"Evidence page for {url}. Photosynthesis converts light energy into chemical energy in plants. "
    return (base * (length // len(base) + 1))[:length]


class StubExtractor:
    def __init__(self, texts: Optional[Dict[str, str]] = None, length: int = 400, failing: tuple = ()):
        self.texts = texts or {}
        self.length = length
        self.failing = set(failing)

    def extract(self, html: str, url: str) -> ExtractedDoc:
        if url in self.failing:
            raise ValueError(f"cannot parse {url}")
        text = self.texts.get(url, page_text(url, self.length))
        return ExtractedDoc(title=f"Title of {url}", text=text, excerpt=text[:400], content_hash=content_hash(text))


def result(url: str, snippet: str = "A sufficiently long snippet describing the page content.") -> SearchResult:
    return SearchResult(title=f"Result {url}", link=url, snippet=snippet)


def make_source(url: str, text: str, domain: Optional[str] = None) -> EvidenceSource:
    return EvidenceSource(
        url=url,
        title=f"Title of {url}",
        domain=domain or url.split("/")[2],
        excerpt=text[:400],
        text=text,
        content_hash=content_hash(text),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        CACHE_BACKEND="memory",
        CACHE_DB_PATH=str(tmp_path / "cache.sqlite"),
        MODEL="stub-model",
        MODEL_FAST="stub-fast",
        RESEARCH_BUDGET_MS=10_000,
        MLFLOW_ENABLE_TRACING=False,
    )


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()
