"""Tests for the agent loop, driven through execute_run with scripted models."""

import anthropic
import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from studio.agents.capability import StopReason, classify_upstream_error
from studio.progress import CompleteEvent, ErrorEvent, ErrorReason, ProgressEvent, ToolsEvent
from studio.runtime import (
    ITERATION_BUDGET_MESSAGE,
    TIME_BUDGET_MESSAGE,
    execute_run,
    run_to_completion,
)
from studio.schemas import ChatTurn

from tests.helpers import (
    VALID_CODE,
    ScriptedCapability,
    StatusError,
    final,
    reply_with_code,
    tool_use,
)

TURNS = [ChatTurn(role="user", content="Make a dark techno track")]

_ANTHROPIC_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


async def collect(config, profile, capability, clock=None, turns=TURNS):
    kwargs = {"clock": clock} if clock is not None else {}
    return [e async for e in execute_run(config, profile, turns, capability, **kwargs)]


def assert_well_formed(events):
    """started first, exactly one terminal event, and it is last."""
    assert events[0].kind == "started"
    terminals = [e for e in events if e.terminal]
    assert len(terminals) == 1
    assert events[-1] is terminals[0]


@pytest.mark.anyio
class TestCompletion:
    async def test_single_iteration(self, studio_config):
        capability = ScriptedCapability(final(reply_with_code(VALID_CODE)))
        events = await collect(studio_config, "patient", capability)

        assert [e.kind for e in events] == ["started", "progress", "complete"]
        complete = events[-1]
        assert complete.iterations == 1
        assert complete.code == VALID_CODE
        assert complete.valid is True
        assert len(capability.calls) == 1

    async def test_tool_round_trip_feeds_results_back(self, studio_config):
        capability = ScriptedCapability(
            tool_use(("read_genre", {"genre": "techno"})),
            tool_use(("validate_code", {"code": VALID_CODE})),
            final(reply_with_code(VALID_CODE)),
        )
        events = await collect(studio_config, "patient", capability)
        assert_well_formed(events)

        assert [e.kind for e in events] == [
            "started",
            "progress", "tools",
            "progress", "tools",
            "progress", "complete",
        ]
        tools_events = [e for e in events if isinstance(e, ToolsEvent)]
        assert tools_events[0].tools == ["read_genre"]
        assert tools_events[0].status == "Looking up genre reference..."
        assert tools_events[1].status == "Validating code..."

        # third call sees: user turn, tool_use, result, tool_use, result
        history = capability.calls[2]
        assert isinstance(history[0], HumanMessage)
        assert isinstance(history[2], ToolMessage)
        assert history[2].tool_call_id == history[1].tool_calls[0]["id"]
        assert history[2].content.startswith("# Techno")
        assert history[4].content == "✓ Code is valid!"
        assert events[-1].iterations == 3

    async def test_parallel_tool_calls_each_get_a_result(self, studio_config):
        capability = ScriptedCapability(
            tool_use(("read_genre", {"genre": "house"}), ("validate_code", {"code": VALID_CODE})),
            final("done"),
        )
        events = await collect(studio_config, "patient", capability)

        results = [m for m in capability.calls[1] if isinstance(m, ToolMessage)]
        assert [m.name for m in results] == ["read_genre", "validate_code"]
        tools_event = next(e for e in events if isinstance(e, ToolsEvent))
        assert tools_event.tools == ["read_genre", "validate_code"]
        assert tools_event.status == "Validating code..."

    async def test_unknown_tool_is_recoverable(self, studio_config):
        capability = ScriptedCapability(
            tool_use(("play_audio", {})),
            final(reply_with_code(VALID_CODE)),
        )
        events = await collect(studio_config, "patient", capability)

        assert isinstance(events[-1], CompleteEvent)
        result = capability.calls[1][-1]
        assert result.content == "Unknown tool: play_audio"
        assert next(e for e in events if isinstance(e, ToolsEvent)).status == "Processing..."

    async def test_validity_is_rederived_not_trusted(self, studio_config):
        text = reply_with_code('stack(s("bd*4"))', "Validated and ready to play!")
        capability = ScriptedCapability(final(text))
        complete = (await collect(studio_config, "patient", capability))[-1]

        assert complete.valid is False
        assert complete.content == text

    async def test_reply_without_code(self, studio_config):
        capability = ScriptedCapability(final("What tempo would you like?"))
        complete = (await collect(studio_config, "patient", capability))[-1]

        assert isinstance(complete, CompleteEvent)
        assert complete.code is None
        assert complete.valid is None

    async def test_tool_use_without_calls_completes(self, studio_config):
        capability = ScriptedCapability(final("partial answer", stop_reason="tool_use"))
        events = await collect(studio_config, "patient", capability)

        assert isinstance(events[-1], CompleteEvent)
        assert events[-1].content == "partial answer"
        assert len(capability.calls) == 1

    @pytest.mark.parametrize("raw", ["max_tokens", "stop_sequence", "pause_turn", None])
    async def test_other_stop_reasons_return_partial_content(self, studio_config, raw):
        capability = ScriptedCapability(final("half a groove", stop_reason=raw))
        events = await collect(studio_config, "patient", capability)

        assert isinstance(events[-1], CompleteEvent)
        assert events[-1].content == "half a groove"

    async def test_caller_history_is_not_mutated(self, studio_config):
        turns = [
            ChatTurn(role="user", content="techno please"),
            ChatTurn(role="assistant", content="Sure, how dark?"),
            ChatTurn(role="user", content="very"),
        ]
        snapshot = [t.model_copy() for t in turns]
        capability = ScriptedCapability(
            tool_use(("validate_code", {"code": VALID_CODE})), final("ok")
        )
        await collect(studio_config, "patient", capability, turns=turns)

        assert turns == snapshot
        first_call = capability.calls[0]
        assert [type(m) for m in first_call] == [HumanMessage, AIMessage, HumanMessage]
        assert first_call[1].content == "Sure, how dark?"

    async def test_loop_offers_both_tools(self, studio_config):
        capability = ScriptedCapability(final("ok"))
        await collect(studio_config, "patient", capability)
        assert capability.tool_names[0] == ["read_genre", "validate_code"]
        assert "validate_code" in capability.systems[0]


@pytest.mark.anyio
class TestBudgets:
    async def test_iteration_budget_caps_model_calls(self, studio_config):
        capability = ScriptedCapability(tool_use(("validate_code", {"code": VALID_CODE})))
        events = await collect(studio_config, "fast", capability)
        assert_well_formed(events)

        assert len(capability.calls) == 4
        error = events[-1]
        assert isinstance(error, ErrorEvent)
        assert error.reason == ErrorReason.BUDGET_EXCEEDED
        assert error.error == ITERATION_BUDGET_MESSAGE
        assert error.retryable is True
        assert error.iterations == 4

        progress = [e for e in events if isinstance(e, ProgressEvent)]
        assert [p.iteration for p in progress] == [1, 2, 3, 4]
        assert progress[0].status == "Composing your track..."
        assert progress[1].status == "Refining (step 2 of 4)..."

    async def test_patient_budget_allows_more_iterations(self, studio_config):
        capability = ScriptedCapability(tool_use(("validate_code", {"code": VALID_CODE})))
        events = await collect(studio_config, "patient", capability)

        assert len(capability.calls) == 10
        assert events[-1].iterations == 10

    async def test_time_budget_stops_before_next_call(self, studio_config, clock):
        capability = ScriptedCapability(
            tool_use(("validate_code", {"code": VALID_CODE})), clock=clock, delay=30
        )
        events = await collect(studio_config, "fast", capability, clock=clock)
        assert_well_formed(events)

        assert len(capability.calls) == 1
        error = events[-1]
        assert error.reason == ErrorReason.BUDGET_EXCEEDED
        assert error.error == TIME_BUDGET_MESSAGE
        assert error.time_ms == 30_000

    async def test_slow_final_answer_still_completes(self, studio_config, clock):
        capability = ScriptedCapability(final("late but done"), clock=clock, delay=30)
        events = await collect(studio_config, "fast", capability, clock=clock)

        assert isinstance(events[-1], CompleteEvent)
        assert events[-1].time_ms == 30_000

    async def test_patient_profile_has_no_time_budget(self, studio_config, clock):
        capability = ScriptedCapability(
            tool_use(("validate_code", {"code": VALID_CODE})),
            final("done"),
            clock=clock,
            delay=100,
        )
        events = await collect(studio_config, "patient", capability, clock=clock)

        assert isinstance(events[-1], CompleteEvent)
        assert len(capability.calls) == 2


@pytest.mark.anyio
class TestUpstreamErrors:
    async def test_rate_limit_is_retryable(self, studio_config):
        capability = ScriptedCapability(StatusError("slow down", 429))
        error = (await collect(studio_config, "patient", capability))[-1]

        assert error.reason == ErrorReason.RATE_LIMITED
        assert error.retryable is True
        assert error.iterations == 1

    async def test_generic_failure_keeps_message(self, studio_config):
        capability = ScriptedCapability(
            tool_use(("read_genre", {"genre": "trap"})), RuntimeError("socket closed")
        )
        events = await collect(studio_config, "patient", capability)
        assert_well_formed(events)

        error = events[-1]
        assert error.reason == ErrorReason.UPSTREAM
        assert error.error == "Generation failed: socket closed"
        assert error.retryable is False
        assert error.iterations == 2


class TestClassifyUpstreamError:
    def test_anthropic_rate_limit(self):
        exc = anthropic.RateLimitError(
            "rate limited",
            response=httpx.Response(429, request=_ANTHROPIC_REQUEST),
            body=None,
        )
        assert classify_upstream_error(exc).reason == ErrorReason.RATE_LIMITED

    def test_anthropic_authentication(self):
        exc = anthropic.AuthenticationError(
            "bad key",
            response=httpx.Response(401, request=_ANTHROPIC_REQUEST),
            body=None,
        )
        failure = classify_upstream_error(exc)
        assert failure.reason == ErrorReason.AUTHENTICATION
        assert "ANTHROPIC_API_KEY" in failure.message

    def test_anthropic_connection_error(self):
        exc = anthropic.APIConnectionError(request=_ANTHROPIC_REQUEST)
        failure = classify_upstream_error(exc)
        assert failure.reason == ErrorReason.UPSTREAM
        assert failure.message.startswith("Anthropic API error:")

    def test_status_code_fallback(self):
        assert classify_upstream_error(StatusError("nope", 403)).reason == ErrorReason.AUTHENTICATION


def test_unrecognised_stop_reason_collapses_to_other():
    assert StopReason("pause_turn") is StopReason.OTHER
    assert StopReason("tool_use") is StopReason.TOOL_USE


@pytest.mark.anyio
async def test_run_to_completion_returns_terminal_event(studio_config):
    capability = ScriptedCapability(final(reply_with_code(VALID_CODE)))
    terminal = await run_to_completion(studio_config, "fast", TURNS, capability)

    assert isinstance(terminal, CompleteEvent)
    assert terminal.valid is True
