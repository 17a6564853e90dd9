"""Error taxonomy for the research pipeline.

Planner, claim extraction and fetch never let these escape; search, generation
and input validation failures propagate up to the orchestrator.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError):
    """Malformed input to the pipeline (empty question, unknown mode...)."""


class UpstreamFailure(PipelineError):
    """Search, fetch or generation capability unreachable or erroring."""


class ParseFailure(PipelineError):
    """Generation output did not satisfy its JSON contract."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class DeadlineExceeded(PipelineError):
    """Retrieval budget exhausted before the sufficiency predicate held."""


class NotFound(PipelineError):
    """Unknown run or artifact lookup."""
