"""Query planner.

Turns a user question into 2-6 search intents. Planning never fails the run:
any generation, parse or validation problem yields the deterministic fallback plan.
"""

from __future__ import annotations

from typing import Annotated, List, Union
from pydantic import BaseModel, Field, StringConstraints

from ..llm.client import JsonSpec, LLMClient
from ..llm.prompts import load_prompt
from ..log import get_logger
from ..schemas.run import Intent, Plan, TimeSensitivity

logger = get_logger("planner")

QueryString = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]


class PlanPayload(BaseModel):
    """Raw planner JSON. Intents may be bare strings or {query, rationale} objects."""
    intents: List[Union[QueryString, Intent]] = Field(..., min_length=2, max_length=6)
    must_include: List[str] = Field(default_factory=list)
    time_sensitivity: TimeSensitivity = "none"

    def to_plan(self) -> Plan:
        intents = [i if isinstance(i, str) else i.query for i in self.intents]
        return Plan(
            intents=intents,
            must_include=self.must_include,
            time_sensitivity=self.time_sensitivity,
            origin="generated",
        )


def fallback_plan(question: str) -> Plan:
    q = question.strip()
    return Plan(
        intents=[q, f"{q} primary source", f"{q} overview"],
        must_include=[],
        time_sensitivity="none",
        origin="fallback",
    )


def plan_query(llm: LLMClient, question: str, temperature: float = 0.2) -> Plan:
    """Never raises; returns fallback_plan(question) on any failure."""
    try:
        prompt = f"{load_prompt('plan_query').strip()}\n\nQuestion:\n{question}"
        spec = JsonSpec(
            instruction=load_prompt("plan_query", key="instruction"),
            parse=PlanPayload.model_validate,
        )
        result = llm.chat([{"role": "user", "content": prompt}], temperature=temperature, json_spec=spec)
        plan = result.parsed.to_plan()
    except Exception as e:
        logger.warning(f"Planner fell back to default plan: {e}")
        return fallback_plan(question)

    logger.info(f"Planned {len(plan.intents)} intent(s), time_sensitivity={plan.time_sensitivity}")
    return plan
