"""Run orchestration: plan -> research -> draft -> (verify) -> final answer.

One Orchestrator serves many runs. Each run is strictly sequential except for
the fetch pool inside Researcher. Finished runs are cached as an Artifact keyed
by (mode, normalized question) and replayed without touching the network.
"""

import uuid
from typing import List, Optional

from ..agents.planner import plan_query
from ..agents.responder import draft_answer, final_messages, responder_messages
from ..agents.verifier import extract_claims, verify_claims
from ..config import Settings, get_settings
from ..errors import NotFound, UpstreamFailure, ValidationError
from ..llm.client import ChatMessage, LLMClient, build_llm, build_llm_fast
from ..llm.prompts import load_prompt
from ..log import get_logger
from ..mlops.tracing import tracer
from ..retrieval.extract import build_extractor
from ..retrieval.fetch import build_fetcher
from ..retrieval.researcher import Researcher, ResearchOptions, merge_by_hash
from ..retrieval.search import build_search
from ..schemas.evidence import EvidenceSource
from ..schemas.progress import ClaimsEvent, DoneEvent, ErrorEvent, MetaEvent, TraceDumpEvent
from ..schemas.run import Artifact, Claim, Mode, PlannerEvent, RunResult, TraceEvent
from ..store.cache import Cache, build_cache, safe_get, safe_set
from .progress import Listener, ProgressEmitter

logger = get_logger("pipeline")

MODES = ("normal", "reliability")
MAX_QUESTION_CHARS = 4000
QUESTION_KEY_CHARS = 300


def normalize_question(question: str) -> str:
    return " ".join(question.strip().lower().split())[:QUESTION_KEY_CHARS]


def artifact_key(mode: str, question: str) -> str:
    return f"artifact:v1:{mode}:{normalize_question(question)}"


def required_sources(mode: str) -> int:
    return 3 if mode == "reliability" else 2


class Orchestrator:
    def __init__(
        self,
        llm: LLMClient,
        llm_fast: LLMClient,
        researcher: Researcher,
        cache: Optional[Cache] = None,
        settings: Optional[Settings] = None,
    ):
        self.llm = llm
        self.llm_fast = llm_fast
        self.researcher = researcher
        self.cache = cache
        self.settings = settings or get_settings()

    def research_options(self, mode: str) -> ResearchOptions:
        return ResearchOptions(
            budget_ms=self.settings.RESEARCH_BUDGET_MS,
            per_intent_urls=3 if mode == "reliability" else 2,
            concurrency=self.settings.RESEARCH_CONCURRENCY,
            max_sources=self.settings.MAX_SOURCES,
            min_sources=required_sources(mode),
            search_k=self.settings.SEARCH_TOP_K,
        )

    def run(
        self,
        question: str,
        mode: Mode = "normal",
        on_event: Optional[Listener] = None,
        include_trace: bool = False,
    ) -> RunResult:
        """
        Answers `question`, streaming progress to `on_event`.

        Raises ValidationError before any event is emitted for bad input.
        Any later failure emits exactly one terminal `error` event and is re-raised.
        """
        self._validate(question, mode)
        emitter = ProgressEmitter(on_event)
        run_id = uuid.uuid4().hex

        try:
            return self._run(run_id, question, mode, emitter, include_trace)
        except Exception as e:
            logger.exception(f"Run {run_id} failed")
            emitter.emit(ErrorEvent(message=str(e) or type(e).__name__))
            raise

    def lookup_artifact(self, mode: str, question: str) -> Artifact:
        artifact = self._load_artifact(artifact_key(mode, question))
        if artifact is None:
            raise NotFound(f"No cached artifact for mode={mode!r} question={normalize_question(question)!r}")
        return artifact

    def _validate(self, question: str, mode: str):
        if not isinstance(question, str) or not question.strip():
            raise ValidationError("Question must be a non-empty string.")
        if len(question) > MAX_QUESTION_CHARS:
            raise ValidationError(f"Question exceeds {MAX_QUESTION_CHARS} characters.")
        if mode not in MODES:
            raise ValidationError(f"Unknown mode {mode!r}; expected one of {MODES}.")

    def _run(self, run_id: str, question: str, mode: str, emitter: ProgressEmitter, include_trace: bool) -> RunResult:
        emitter.emit(MetaEvent(run_id=run_id, mode=mode))
        emitter.status("Starting…", 0)

        key = artifact_key(mode, question)
        cached = self._load_artifact(key)
        if cached is not None:
            logger.info(f"Run {run_id}: serving cached artifact")
            return self._replay(run_id, mode, cached, emitter, include_trace)

        temperature = self.settings.LLM_TEMPERATURE
        trace: List[TraceEvent] = []

        emitter.status("Planning searches…", 1)
        with tracer.span("planner.plan_query", span_type="LLM", inputs={"question": question}):
            plan = plan_query(self.llm_fast, question, temperature=temperature)
        trace.append(PlannerEvent(intents=plan.intents))

        emitter.status("Searching & fetching sources…", 2)
        sources = self._gather_sources(question, mode, plan.intents, trace, emitter)

        claims: List[Claim] = []
        if mode == "reliability":
            emitter.status("Drafting & verifying…", 3)
            with tracer.span("responder.draft", span_type="LLM"):
                draft = draft_answer(self.llm_fast, responder_messages(question, "normal", sources), temperature)

            extraction = extract_claims(self.llm_fast, question, draft, temperature=temperature)
            selected = extraction.claims[:self.settings.MAX_VERIFIED_CLAIMS]
            if selected:
                with tracer.span("verifier.verify_claims", span_type="CHAIN"):
                    claims = verify_claims(selected, sources)
                    tracer.trace_verification([c.label for c in claims])
                emitter.emit(ClaimsEvent(claims=claims))

        emitter.status("Writing answer…", 3)
        final_answer = self._stream_answer(final_messages(question, mode, sources, claims), emitter)

        artifact = Artifact(
            final_answer=final_answer,
            sources=[s.to_ref() for s in sources],
            trace=trace,
            claims=claims,
        )
        safe_set(self.cache, key, artifact.model_dump_json(), self.settings.ARTIFACT_TTL_S)

        if include_trace:
            emitter.emit(TraceDumpEvent(trace=trace))
        emitter.status("Done", 4)
        emitter.emit(DoneEvent(run_id=run_id))
        return RunResult(
            run_id=run_id,
            mode=mode,
            final_answer=final_answer,
            sources=artifact.sources,
            trace=trace,
            claims=claims,
        )

    def _gather_sources(
        self,
        question: str,
        mode: str,
        intents: List[str],
        trace: List[TraceEvent],
        emitter: ProgressEmitter,
    ) -> List[EvidenceSource]:
        options = self.research_options(mode)

        with tracer.span("retrieval.research", span_type="RETRIEVER", inputs={"intents": intents}):
            first = self.researcher.research(intents, options)
            tracer.trace_retrieval(len(intents), len(first.sources), [s.domain for s in first.sources])
        trace.extend(first.trace)
        sources = first.sources

        if mode != "reliability" or len(sources) >= options.min_sources:
            return sources

        emitter.status("Fetching extra sources…", 2)
        widened = [*intents, f"{question} definition", f"{question} authoritative source"]
        logger.info(f"Only {len(sources)} source(s) after first pass; widening to {len(widened)} intents")
        try:
            with tracer.span("retrieval.research_widened", span_type="RETRIEVER", inputs={"intents": widened}):
                second = self.researcher.research(widened, options)
                tracer.trace_retrieval(len(widened), len(second.sources), [s.domain for s in second.sources], widened=True)
        except UpstreamFailure as e:
            logger.warning(f"Widened research pass failed, keeping first pass: {e}")
            return sources

        trace.extend(second.trace)
        return merge_by_hash(sources, second.sources, options.max_sources)

    def _stream_answer(self, messages: List[ChatMessage], emitter: ProgressEmitter) -> str:
        temperature = self.settings.LLM_TEMPERATURE
        with tracer.span("responder.generate", span_type="LLM"):
            text = self.llm.stream_chat(messages, temperature, on_token=emitter.token)
        if text.strip():
            return text

        # Nothing usable was streamed; try plain completions before giving up
        logger.warning("Streamed answer was empty, falling back to non-streamed completion")
        text = self.llm.chat(messages, temperature=temperature).text.strip()
        if not text:
            text = self.llm_fast.chat(messages, temperature=temperature).text.strip()
        if not text:
            text = load_prompt("responder", key="empty_answer").strip()
        emitter.replay_text(text)
        return text

    def _replay(self, run_id: str, mode: str, artifact: Artifact, emitter: ProgressEmitter, include_trace: bool) -> RunResult:
        emitter.status("Cached answer", 4)
        if mode == "reliability" and artifact.claims:
            emitter.emit(ClaimsEvent(claims=artifact.claims))
        emitter.replay_text(artifact.final_answer)
        if include_trace:
            emitter.emit(TraceDumpEvent(trace=artifact.trace))
        emitter.emit(DoneEvent(run_id=run_id))
        return RunResult(
            run_id=run_id,
            mode=mode,
            final_answer=artifact.final_answer,
            sources=artifact.sources,
            trace=artifact.trace,
            claims=artifact.claims,
            cached=True,
        )

    def _load_artifact(self, key: str) -> Optional[Artifact]:
        raw = safe_get(self.cache, key)
        if raw is None:
            return None
        try:
            return Artifact.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable cached artifact {key}: {e}")
            return None


def build_orchestrator(settings: Optional[Settings] = None, cache: Optional[Cache] = None) -> Orchestrator:
    """Wires the default capabilities: OpenAI-compatible LLMs, Serper, httpx, trafilatura, cache."""
    settings = settings or get_settings()
    cache = cache if cache is not None else build_cache(settings)
    researcher = Researcher(
        search=build_search(cache, settings),
        fetcher=build_fetcher(cache, settings),
        extractor=build_extractor(cache, settings),
    )
    return Orchestrator(
        llm=build_llm(settings),
        llm_fast=build_llm_fast(settings),
        researcher=researcher,
        cache=cache,
        settings=settings,
    )
