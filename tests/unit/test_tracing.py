"""Tests for MLflow tracing of research runs."""
import pytest
from unittest.mock import Mock, patch

from better_perplexity.mlops.tracing import MLflowTracer


@pytest.fixture
def mock_settings_enabled():
    with patch('better_perplexity.mlops.tracing.settings') as mock:
        mock.MLFLOW_ENABLE_TRACING = True
        mock.MLFLOW_TRACKING_URI = "http://localhost:5000"
        yield mock


@pytest.fixture
def mock_settings_disabled():
    with patch('better_perplexity.mlops.tracing.settings') as mock:
        mock.MLFLOW_ENABLE_TRACING = False
        yield mock


class TestTracerEnabled:

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_initialization_sets_tracking_uri(self, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()

        assert tracer.enabled is True
        mock_mlflow.set_tracking_uri.assert_called_once_with("http://localhost:5000")

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_span_records_inputs_and_type(self, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()
        mock_span = Mock()
        mock_mlflow.start_span.return_value.__enter__.return_value = mock_span

        with tracer.span("retrieval.research", "RETRIEVER", {"mode": "normal"}, {"intents": ["a b c"]}) as span:
            assert span is mock_span

        call_kwargs = mock_mlflow.start_span.call_args[1]
        assert call_kwargs['name'] == "retrieval.research"
        assert call_kwargs['span_type'] == "RETRIEVER"
        mock_span.set_attributes.assert_called_once_with({"mode": "normal"})
        mock_span.set_inputs.assert_called_once_with({"intents": ["a b c"]})

    @patch('better_perplexity.mlops.tracing.mlflow')
    @patch('better_perplexity.mlops.tracing.time')
    def test_span_tracks_latency(self, mock_time, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()
        mock_span = Mock()
        mock_mlflow.start_span.return_value.__enter__.return_value = mock_span
        mock_time.time.side_effect = [1000.0, 1001.5]

        with tracer.span("responder.generate", "LLM"):
            pass

        mock_span.set_attribute.assert_called_once_with("latency_ms", 1500)

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_span_propagates_errors(self, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()
        mock_mlflow.start_span.return_value.__enter__.return_value = Mock()

        with pytest.raises(ValueError):
            with tracer.span("planner.plan_query", "LLM"):
                raise ValueError("boom")

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_trace_retrieval(self, mock_mlflow, mock_settings_enabled):
        """
        WHY: Retrieval spans should show how wide each pass went and where evidence came from.
        HOW: Record a widened pass against a mocked active span.
        EXPECTED: Counts, joined domains and the widened flag are set as span attributes.
        """
        tracer = MLflowTracer()
        mock_span = Mock()
        mock_mlflow.get_current_active_span.return_value = mock_span

        tracer.trace_retrieval(intent_count=4, source_count=2, domains=["a.org", "b.org"], widened=True)

        attributes = mock_span.set_attributes.call_args[0][0]
        assert attributes == {"intent_count": 4, "source_count": 2, "domains": "a.org,b.org", "widened": True}

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_trace_verification(self, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()
        mock_span = Mock()
        mock_mlflow.get_current_active_span.return_value = mock_span

        tracer.trace_verification(["supported", "weak", "supported", "unsupported"])

        attributes = mock_span.set_attributes.call_args[0][0]
        assert attributes["claim_count"] == 4
        assert attributes["supported"] == 2
        assert attributes["weak"] == 1
        assert attributes["unsupported"] == 1

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_no_active_span_is_fine(self, mock_mlflow, mock_settings_enabled):
        tracer = MLflowTracer()
        mock_mlflow.get_current_active_span.return_value = None

        tracer.trace_verification(["weak"])


class TestTracerDisabled:

    @patch('better_perplexity.mlops.tracing.mlflow')
    def test_disabled_tracer_does_nothing(self, mock_mlflow, mock_settings_disabled):
        tracer = MLflowTracer()

        with tracer.span("retrieval.research", "RETRIEVER") as span:
            assert span is None
        tracer.trace_retrieval(2, 1, ["a.org"])
        tracer.trace_verification(["supported"])

        assert tracer.enabled is False
        mock_mlflow.set_tracking_uri.assert_not_called()
        mock_mlflow.start_span.assert_not_called()
        mock_mlflow.get_current_active_span.assert_not_called()
