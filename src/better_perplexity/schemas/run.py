"""Schemas for a single research run: plan, trace, claims and the cached artifact."""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, confloat

from .evidence import Candidate, SourceRef

TimeSensitivity = Literal["none", "recent", "current"]
SupportLabel = Literal["supported", "weak", "unsupported"]
Mode = Literal["normal", "reliability"]


class Intent(BaseModel):
    query: str = Field(..., min_length=3)
    rationale: Optional[str] = None


class Plan(BaseModel):
    intents: List[str] = Field(..., min_length=2, max_length=6)
    must_include: List[str] = Field(default_factory=list)
    time_sensitivity: TimeSensitivity = "none"
    origin: Literal["generated", "fallback"] = "generated"


# Trace events, discriminated on `type`

class PlannerEvent(BaseModel):
    type: Literal["planner"] = "planner"
    intents: List[str]

class SearchEvent(BaseModel):
    type: Literal["search"] = "search"
    query: str
    result_count: int

class SelectEvent(BaseModel):
    type: Literal["select"] = "select"
    selected: List[Candidate]

class FetchEvent(BaseModel):
    type: Literal["fetch"] = "fetch"
    url: str
    status: int

class TimingEvent(BaseModel):
    type: Literal["timing"] = "timing"
    ms: int

TraceEvent = Annotated[
    Union[PlannerEvent, SearchEvent, SelectEvent, FetchEvent, TimingEvent],
    Field(discriminator="type"),
]


class ClaimEvidence(BaseModel):
    source_url: str
    snippet: str

class Claim(BaseModel):
    id: str
    claim: str
    label: SupportLabel
    score: confloat(ge=0.0, le=1.0)
    evidence: List[ClaimEvidence] = Field(default_factory=list, max_length=3)


class Artifact(BaseModel):
    """Everything needed to replay a finished run without touching the network."""
    final_answer: str
    sources: List[SourceRef] = Field(default_factory=list)
    trace: List[TraceEvent] = Field(default_factory=list)
    claims: List[Claim] = Field(default_factory=list)


class RunResult(BaseModel):
    run_id: str
    mode: Mode
    final_answer: str
    sources: List[SourceRef]
    trace: List[TraceEvent]
    claims: List[Claim]
    cached: bool = False
