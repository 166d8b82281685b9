"""LangGraph node functions — one budget check, one model call, one tool step.

Per-request collaborators (capability, budget, clock) arrive through the
``configurable`` section of the run config so the compiled graph itself
holds no request state.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from langchain_core.messages import ToolMessage

from studio.agents.capability import StopReason, classify_upstream_error
from studio.agents.state import LoopOutcome
from studio.prompts import GENERATE_DIRECTIVE
from studio.tools import execute_tool, resolve_tools

if TYPE_CHECKING:
    from langchain_core.runnables import RunnableConfig

    from studio.agents.state import LoopState

logger = logging.getLogger(__name__)

LOOP_TOOLS = ["read_genre", "validate_code"]

DONE = "__done__"


def check_budget(state: LoopState, config: RunnableConfig) -> dict:
    """Stop the loop if the wall clock or the iteration ceiling is spent."""
    settings = config["configurable"]
    budget = settings["budget"]
    clock = settings.get("clock", time.monotonic)

    elapsed = clock() - state["started_at"]
    limit = budget.time_budget_seconds
    if limit is not None and elapsed > limit:
        logger.warning(
            f"Time budget exhausted: {elapsed:.1f}s > {limit}s "
            f"after {state['iteration']} iterations"
        )
        return {
            "outcome": LoopOutcome.DONE_BUDGET_EXCEEDED,
            "budget_trigger": "time",
            "elapsed_seconds": elapsed,
        }

    iteration = state["iteration"] + 1
    if iteration > budget.max_iterations:
        logger.warning(f"Iteration budget exhausted: {budget.max_iterations} iterations")
        return {
            "outcome": LoopOutcome.DONE_BUDGET_EXCEEDED,
            "budget_trigger": "iterations",
            "elapsed_seconds": elapsed,
        }

    return {"iteration": iteration, "elapsed_seconds": elapsed}


async def generate(state: LoopState, config: RunnableConfig) -> dict:
    """Call the model once and classify how it stopped."""
    capability = config["configurable"]["capability"]
    logger.info(f"Iteration {state['iteration']}: calling model")

    try:
        turn = await capability.generate(
            GENERATE_DIRECTIVE, list(state["messages"]), resolve_tools(LOOP_TOOLS)
        )
    except Exception as e:
        logger.error(f"Model call failed on iteration {state['iteration']}: {e}", exc_info=True)
        failure = classify_upstream_error(e)
        return {
            "outcome": LoopOutcome.DONE_ERROR,
            "error": failure.message,
            "error_reason": failure.reason.value,
        }

    match turn.stop_reason:
        case StopReason.TOOL_USE if turn.tool_calls:
            return {"messages": [turn.message]}
        case StopReason.TOOL_USE:
            logger.warning("Model stopped for tool use but sent no tool calls — treating as done")
        case StopReason.END_TURN:
            pass
        case _:
            logger.warning(
                f"Unexpected stop reason {turn.raw_stop_reason!r} — returning partial content"
            )

    return {
        "messages": [turn.message],
        "outcome": LoopOutcome.DONE_OK,
        "final_text": turn.text,
    }


def run_tools(state: LoopState) -> dict:
    """Execute every tool call of the last model turn and append the results."""
    calls = state["messages"][-1].tool_calls
    results = [
        ToolMessage(
            content=execute_tool(call["name"], call.get("args")),
            tool_call_id=call["id"],
            name=call["name"],
        )
        for call in calls
    ]
    names = [call["name"] for call in calls]
    logger.info(f"Ran tools: {names}")
    return {"messages": results, "tools_invoked": names}


def route_running(state: LoopState, next_node: str) -> str:
    """Continue to *next_node* while the loop is running, else finish."""
    if state["outcome"] == LoopOutcome.RUNNING:
        return next_node
    return DONE
