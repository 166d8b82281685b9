"""Runtime — bridges HTTP requests to the LangGraph agent loop.

Runs the loop graph for one conversation and turns its node updates into
progress events. Both transports use :func:`execute_run`; the synchronous
one only keeps the terminal event (:func:`run_to_completion`).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator, Callable, Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from studio.agents.builder import build_loop_graph, recursion_limit
from studio.agents.state import LoopOutcome
from studio.progress import (
    CompleteEvent,
    ErrorEvent,
    ErrorReason,
    ProgressChannel,
    ProgressEvent,
    StartedEvent,
    ToolsEvent,
)
from studio.validator import extract_code_from_markdown, validate_strudel_code

if TYPE_CHECKING:
    from studio.agents.capability import GenerationCapability
    from studio.config import BudgetProfile, StudioConfig
    from studio.progress import LoopEvent
    from studio.schemas import ChatTurn

logger = logging.getLogger(__name__)

TIME_BUDGET_MESSAGE = "Generation taking too long. Try a simpler request."
ITERATION_BUDGET_MESSAGE = "Generation taking too many steps. Try a simpler request."


def to_messages(turns: Sequence[ChatTurn]) -> list[BaseMessage]:
    """Copy caller-supplied turns into LangChain messages."""
    return [
        HumanMessage(content=t.content) if t.role == "user" else AIMessage(content=t.content)
        for t in turns
    ]


def progress_status(iteration: int, budget: BudgetProfile) -> str:
    if iteration == 1:
        return "Composing your track..."
    return f"Refining (step {iteration} of {budget.max_iterations})..."


def tools_status(names: Sequence[str]) -> str:
    if "validate_code" in names:
        return "Validating code..."
    if "read_genre" in names:
        return "Looking up genre reference..."
    return "Processing..."


def _terminal_event(result: dict, time_ms: int) -> CompleteEvent | ErrorEvent:
    """Build the single closing event from the final loop state."""
    outcome = result["outcome"]
    iterations = result["iteration"]

    if outcome == LoopOutcome.DONE_OK:
        content = result["final_text"] or ""
        code = extract_code_from_markdown(content)
        # re-derived locally; the model saying it validated is not evidence
        valid = validate_strudel_code(code).valid if code else None
        return CompleteEvent(
            content=content, code=code, iterations=iterations, time_ms=time_ms, valid=valid
        )

    if outcome == LoopOutcome.DONE_BUDGET_EXCEEDED:
        message = (
            TIME_BUDGET_MESSAGE if result["budget_trigger"] == "time" else ITERATION_BUDGET_MESSAGE
        )
        return ErrorEvent(
            error=message,
            reason=ErrorReason.BUDGET_EXCEEDED,
            retryable=True,
            iterations=iterations,
            time_ms=time_ms,
        )

    if outcome == LoopOutcome.DONE_ERROR:
        reason = ErrorReason(result["error_reason"] or ErrorReason.UPSTREAM)
        return ErrorEvent(
            error=result["error"] or "Failed to generate. Please try again.",
            reason=reason,
            retryable=reason == ErrorReason.RATE_LIMITED,
            iterations=iterations,
            time_ms=time_ms,
        )

    return ErrorEvent(
        error="Generation ended unexpectedly. Please try again.",
        reason=ErrorReason.INTERNAL,
        iterations=iterations,
        time_ms=time_ms,
    )


async def execute_run(
    config: StudioConfig,
    profile: str,
    turns: Sequence[ChatTurn],
    capability: GenerationCapability,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncGenerator[LoopEvent, None]:
    """Run the agent loop and yield progress events.

    1. Emit ``started``
    2. Stream the loop graph: a ``progress`` event per iteration,
       a ``tools`` event per tool step
    3. Emit exactly one ``complete`` or ``error`` event
    """
    budget = config.get_profile(profile)
    channel = ProgressChannel()
    started_at = clock()

    def elapsed_ms() -> int:
        return int((clock() - started_at) * 1000)

    logger.info(
        f"Executing run: profile={profile}, turns={len(turns)}, "
        f"max_iterations={budget.max_iterations}, "
        f"time_budget={budget.time_budget_seconds}"
    )
    yield channel.emit(StartedEvent(profile=profile))

    initial_state = {
        "messages": to_messages(turns),
        "iteration": 0,
        "started_at": started_at,
        "elapsed_seconds": 0.0,
        "outcome": LoopOutcome.RUNNING,
        "final_text": None,
        "budget_trigger": None,
        "error": None,
        "error_reason": None,
        "tools_invoked": [],
    }
    run_config = {
        "configurable": {"capability": capability, "budget": budget, "clock": clock},
        "recursion_limit": recursion_limit(budget),
    }
    result = {k: v for k, v in initial_state.items() if k != "messages"}

    try:
        async for update in build_loop_graph().astream(
            initial_state, config=run_config, stream_mode="updates"
        ):
            for node_name, delta in update.items():
                if not delta:
                    continue
                result.update({k: v for k, v in delta.items() if k != "messages"})

                if node_name == "budget" and result["outcome"] == LoopOutcome.RUNNING:
                    yield channel.emit(
                        ProgressEvent(
                            status=progress_status(delta["iteration"], budget),
                            iteration=delta["iteration"],
                        )
                    )
                elif node_name == "tools":
                    yield channel.emit(
                        ToolsEvent(
                            tools=delta["tools_invoked"],
                            status=tools_status(delta["tools_invoked"]),
                        )
                    )
    except Exception as e:
        logger.error(f"Agent loop error: {e}", exc_info=True)
        yield channel.emit(
            ErrorEvent(
                error=f"Execution error: {e}",
                reason=ErrorReason.INTERNAL,
                iterations=result["iteration"],
                time_ms=elapsed_ms(),
            )
        )
        return

    terminal = _terminal_event(result, elapsed_ms())
    logger.info(
        f"Run finished: outcome={result['outcome'].value}, "
        f"iterations={result['iteration']}, time_ms={terminal.time_ms}"
    )
    yield channel.emit(terminal)


async def run_to_completion(
    config: StudioConfig,
    profile: str,
    turns: Sequence[ChatTurn],
    capability: GenerationCapability,
    clock: Callable[[], float] = time.monotonic,
) -> CompleteEvent | ErrorEvent:
    """Run the loop without streaming and return only the terminal event."""
    terminal = None
    async for event in execute_run(config, profile, turns, capability, clock=clock):
        terminal = event
    return terminal
