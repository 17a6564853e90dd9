"""Progress events streamed to the caller of a run.

Observational only: the pipeline never waits on, or reads back from, a consumer.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from .run import Claim, TraceEvent


class MetaEvent(BaseModel):
    type: Literal["meta"] = "meta"
    run_id: str
    mode: str

class StatusEvent(BaseModel):
    type: Literal["status"] = "status"
    message: str
    step: Optional[int] = None
    total: Optional[int] = None

class TokenEvent(BaseModel):
    type: Literal["token"] = "token"
    chunk: str

class ClaimsEvent(BaseModel):
    type: Literal["claims"] = "claims"
    claims: List[Claim]

class TraceDumpEvent(BaseModel):
    type: Literal["trace"] = "trace"
    trace: List[TraceEvent]

class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    run_id: str

class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str

ProgressEvent = Annotated[
    Union[MetaEvent, StatusEvent, TokenEvent, ClaimsEvent, TraceDumpEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]
