"""Evidence retrieval: search -> domain-diverse selection -> bounded parallel fetch/extract.

Phase A runs one search per intent, sequentially, and picks candidate URLs.
Phase B drains the candidate list with a small thread pool. Every worker
checks the shared deadline and the sufficiency predicate before taking the
next task; a task already started is never cancelled, so the worst-case wall
time is budget + one fetch hard timeout + extraction.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from queue import Empty, Queue
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..errors import DeadlineExceeded, UpstreamFailure
from ..log import get_logger
from ..schemas.evidence import Candidate, EvidenceSource
from ..schemas.run import FetchEvent, SearchEvent, SelectEvent, TimingEvent, TraceEvent
from .extract import TextExtractor
from .fetch import PageFetcher
from .search import SearchProvider
from .url import normalized_domain, select_urls

logger = get_logger("research")

MIN_TEXT_CHARS = 300
SUFFICIENT_TOTAL_CHARS = 2500


class ResearchOptions(BaseModel):
    budget_ms: int = Field(7000, gt=0)
    per_intent_urls: int = Field(2, ge=1)
    concurrency: int = Field(3, ge=1)
    max_sources: int = Field(6, ge=1)
    min_sources: int = Field(2, ge=0)
    search_k: int = Field(6, ge=1)
    # Raise DeadlineExceeded instead of returning an empty result when the budget ran out
    strict_deadline: bool = False


class ResearchResult(BaseModel):
    trace: List[TraceEvent]
    sources: List[EvidenceSource]


class EvidenceCollection:
    """Append-only sources and trace shared by the fetch workers of one run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sources: List[EvidenceSource] = []
        self._trace: List[TraceEvent] = []
        self._total_chars = 0
        self.deadline_hit = threading.Event()

    def add_source(self, source: EvidenceSource):
        with self._lock:
            self._sources.append(source)
            self._total_chars += len(source.text)

    def add_trace(self, event: TraceEvent):
        with self._lock:
            self._trace.append(event)

    def is_sufficient(self, max_sources: int, min_sources: int) -> bool:
        with self._lock:
            count = len(self._sources)
            total = self._total_chars
        if count >= max_sources:
            return True
        return count >= min_sources and total >= SUFFICIENT_TOTAL_CHARS

    def sources(self) -> List[EvidenceSource]:
        with self._lock:
            return list(self._sources)

    def trace(self) -> List[TraceEvent]:
        with self._lock:
            return list(self._trace)


def dedupe_by_hash(sources: Iterable[EvidenceSource]) -> List[EvidenceSource]:
    """Keeps the first source per content hash, preserving order."""
    seen = set()
    out = []
    for s in sources:
        if s.content_hash in seen:
            continue
        seen.add(s.content_hash)
        out.append(s)
    return out


def merge_by_hash(first: List[EvidenceSource], second: List[EvidenceSource], cap: int) -> List[EvidenceSource]:
    return dedupe_by_hash([*first, *second])[:cap]


class Researcher:
    def __init__(
        self,
        search: SearchProvider,
        fetcher: PageFetcher,
        extractor: TextExtractor,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.search = search
        self.fetcher = fetcher
        self.extractor = extractor
        self.clock = clock

    def research(self, intents: List[str], options: Optional[ResearchOptions] = None) -> ResearchResult:
        options = options or ResearchOptions()
        start = self.clock()
        deadline = start + options.budget_ms / 1000.0
        collection = EvidenceCollection()

        tasks = self._select_candidates(intents, options, collection)

        pool_size = min(options.concurrency, len(tasks))
        if pool_size > 0:
            queue: Queue = Queue()
            for task in tasks:
                queue.put(task)
            with ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="research") as pool:
                futures = [
                    pool.submit(self._worker, queue, collection, deadline, options)
                    for _ in range(pool_size)
                ]
                for fut in futures:
                    fut.result()

        sources = dedupe_by_hash(collection.sources())[:options.max_sources]
        elapsed_ms = int((self.clock() - start) * 1000)
        collection.add_trace(TimingEvent(ms=elapsed_ms))

        if collection.deadline_hit.is_set() and not collection.is_sufficient(options.max_sources, options.min_sources):
            logger.info(f"Research budget of {options.budget_ms}ms exhausted with {len(sources)} source(s)")
            if options.strict_deadline and not sources:
                raise DeadlineExceeded(f"No evidence collected within {options.budget_ms}ms")

        logger.info(f"Research finished: {len(tasks)} candidate(s), {len(sources)} source(s) in {elapsed_ms}ms")
        return ResearchResult(trace=collection.trace(), sources=sources)

    def _select_candidates(self, intents: List[str], options: ResearchOptions, collection: EvidenceCollection) -> List[Candidate]:
        tasks: List[Candidate] = []
        failures = 0

        for query in intents:
            try:
                results = self.search.search(query, options.search_k)
            except Exception as e:
                failures += 1
                logger.warning(f"Search failed for intent {query!r}: {e}")
                collection.add_trace(SearchEvent(query=query, result_count=0))
                continue

            collection.add_trace(SearchEvent(query=query, result_count=len(results)))
            selected = select_urls(results, options.per_intent_urls)
            collection.add_trace(SelectEvent(selected=selected))
            tasks.extend(selected)

        if intents and failures == len(intents):
            raise UpstreamFailure(f"Search failed for all {len(intents)} intent(s)")
        return tasks

    def _worker(self, queue: Queue, collection: EvidenceCollection, deadline: float, options: ResearchOptions):
        while True:
            if self.clock() > deadline:
                collection.deadline_hit.set()
                return
            if collection.is_sufficient(options.max_sources, options.min_sources):
                return
            try:
                task = queue.get_nowait()
            except Empty:
                return
            self._process(task, collection)

    def _process(self, task: Candidate, collection: EvidenceCollection):
        page = self.fetcher.fetch(task.url)
        collection.add_trace(FetchEvent(url=task.url, status=page.status))

        if not page.ok or not page.is_html or not page.html:
            return

        try:
            doc = self.extractor.extract(page.html, task.url)
        except Exception as e:
            logger.debug(f"Extraction failed for {task.url}: {e!r}")
            return

        if len(doc.text) < MIN_TEXT_CHARS:
            return

        collection.add_source(EvidenceSource(
            url=task.url,
            title=doc.title,
            domain=normalized_domain(task.url),
            excerpt=doc.excerpt,
            text=doc.text,
            content_hash=doc.content_hash,
        ))
