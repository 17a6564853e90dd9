import logging
from unittest.mock import MagicMock, patch

import pytest

from better_perplexity import main as cli
from better_perplexity.errors import UpstreamFailure, ValidationError
from better_perplexity.log import get_logger, setup_logging
from better_perplexity.schemas.evidence import SourceRef
from better_perplexity.schemas.progress import ErrorEvent, StatusEvent, TokenEvent
from better_perplexity.schemas.run import RunResult


@pytest.fixture
def orchestrator():
    with patch("better_perplexity.main.build_orchestrator") as build, \
            patch("better_perplexity.main.setup_logging"), \
            patch("better_perplexity.main.load_dotenv"):
        yield build.return_value


def test_cli_passes_arguments_and_succeeds(orchestrator):
    orchestrator.run.return_value = RunResult(
        run_id="r1",
        mode="reliability",
        final_answer="Answer (Source[1]).",
        sources=[SourceRef(url="https://a.org/", title="A [bold]", domain="a.org", excerpt="", content_hash="h")],
        trace=[],
        claims=[],
    )

    assert cli.main(["What is CRISPR?", "--mode", "reliability", "--trace"]) == 0
    orchestrator.run.assert_called_once_with(
        "What is CRISPR?", mode="reliability", on_event=cli.render_event, include_trace=True
    )


def test_cli_exit_codes(orchestrator):
    orchestrator.run.side_effect = ValidationError("Question must be a non-empty string.")
    assert cli.main([" "]) == 2

    orchestrator.run.side_effect = UpstreamFailure("search down")
    assert cli.main(["q?"]) == 1


def test_render_event_prints_untrusted_text_verbatim():
    """
    WHY: Model tokens and error messages may contain rich markup brackets.
    HOW: Render events whose text looks like markup.
    EXPECTED: Console receives the text without markup interpretation.
    """
    with patch.object(cli, "console", MagicMock()) as console:
        cli.render_event(TokenEvent(chunk="[red]not red[/red]"))
        cli.render_event(StatusEvent(message="Writing answer…", step=3, total=4))
        cli.render_event(ErrorEvent(message="bad [link]"))

    token_call, status_call, error_call = console.print.call_args_list
    assert token_call.args == ("[red]not red[/red]",)
    assert token_call.kwargs["markup"] is False
    assert "Writing answer…" in status_call.args[0]
    assert "bad \\[link]" in error_call.args[0]


def test_unexpected_run_error_exits_with_one(orchestrator):
    """
    WHY: A bug outside the PipelineError hierarchy must not dump a traceback over the streamed output.
    HOW: The run raises RuntimeError after the orchestrator has already emitted its error event.
    EXPECTED: main() returns 1 instead of propagating.
    """
    orchestrator.run.side_effect = RuntimeError("boom")
    assert cli.main(["q?"]) == 1


def test_startup_failure_exits_with_one():
    with patch("better_perplexity.main.build_orchestrator", side_effect=RuntimeError("bad config")), \
            patch("better_perplexity.main.setup_logging"), \
            patch("better_perplexity.main.load_dotenv"), \
            patch.object(cli, "console", MagicMock()) as console:
        assert cli.main(["q?"]) == 1

    assert "bad config" in console.print.call_args.args[0]


@pytest.mark.parametrize("flags, level", [([], None), (["-v"], "DEBUG"), (["--verbose"], "DEBUG")])
def test_verbose_flag_selects_debug_logging(flags, level):
    with patch("better_perplexity.main.build_orchestrator") as build, \
            patch("better_perplexity.main.setup_logging") as setup, \
            patch("better_perplexity.main.load_dotenv"):
        build.return_value.run.side_effect = UpstreamFailure("search down")
        cli.main(["q?", *flags])

    setup.assert_called_once_with(level)


def test_setup_logging_namespaces_and_level_override(settings):
    """
    WHY: Module loggers must share one package namespace so -v reaches all of them.
    HOW: Configure logging with an explicit level while settings say INFO.
    EXPECTED: Root logger at DEBUG, noisy libraries held at WARNING, module loggers namespaced.
    """
    root = logging.getLogger()
    saved = (root.level, root.handlers[:])
    try:
        with patch("better_perplexity.log.get_settings", return_value=settings):
            setup_logging("debug")
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(saved[0])
        root.handlers[:] = saved[1]

    assert logging.getLogger("httpx").level == logging.WARNING
    assert get_logger("fetch").name == "better_perplexity.fetch"
