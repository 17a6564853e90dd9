"""
MLflow tracing integration for pipeline observability.
Provides span-based tracing for planning, retrieval, verification and answer generation.
"""
import logging
import time
from typing import Optional, Dict, Any, List
from contextlib import contextmanager

import mlflow

from ..config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class MLflowTracer:
    """Handles MLflow tracing for research runs."""

    def __init__(self):
        self.enabled = settings.MLFLOW_ENABLE_TRACING
        if self.enabled:
            try:
                mlflow.set_tracking_uri(settings.MLFLOW_TRACKING_URI)
                logger.info("MLflow tracing enabled")
            except Exception as e:
                logger.warning(f"Failed to initialize MLflow tracing: {e}")
                self.enabled = False
        else:
            logger.debug("MLflow tracing disabled")

    @contextmanager
    def span(
        self,
        name: str,
        span_type: str = "UNKNOWN",
        attributes: Optional[Dict[str, Any]] = None,
        inputs: Optional[Dict[str, Any]] = None
    ):
        """
        Create a traced span for an operation.

        Args:
            name: Name of the span (e.g., "planner.plan_query", "retrieval.research")
            span_type: Type of span (e.g., "LLM", "RETRIEVER", "CHAIN")
            attributes: Additional metadata for the span
            inputs: Input data to the operation
        """
        if not self.enabled:
            yield None
            return

        try:
            with mlflow.start_span(name=name, span_type=span_type) as span:
                if attributes:
                    span.set_attributes(attributes)
                if inputs:
                    span.set_inputs(inputs)

                start_time = time.time()
                yield span
                elapsed = time.time() - start_time
                span.set_attribute("latency_ms", int(elapsed * 1000))
        except Exception as e:
            logger.warning(f"Tracing span failed for {name}: {e}")
            raise

    def _set_current(self, attributes: Dict[str, Any]):
        try:
            current_span = mlflow.get_current_active_span()
            if current_span:
                current_span.set_attributes(attributes)
        except AttributeError:
            # MLflow version may not have this method
            pass

    def trace_retrieval(
        self,
        intent_count: int,
        source_count: int,
        domains: List[str],
        widened: bool = False
    ):
        """Log details of a retrieval pass."""
        if not self.enabled:
            return

        try:
            self._set_current({
                "intent_count": intent_count,
                "source_count": source_count,
                "domains": ",".join(domains),
                "widened": widened,
            })
        except Exception as e:
            logger.warning(f"Failed to trace retrieval: {e}")

    def trace_verification(self, labels: List[str]):
        """Log claim label distribution."""
        if not self.enabled:
            return

        try:
            self._set_current({
                "claim_count": len(labels),
                "supported": labels.count("supported"),
                "weak": labels.count("weak"),
                "unsupported": labels.count("unsupported"),
            })
        except Exception as e:
            logger.warning(f"Failed to trace verification: {e}")


# Global tracer instance
tracer = MLflowTracer()
