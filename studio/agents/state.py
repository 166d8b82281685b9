"""LangGraph loop state — owned by one request, discarded when it ends."""

from enum import Enum
from typing import Annotated

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict


class LoopOutcome(str, Enum):
    RUNNING = "running"
    DONE_OK = "done_ok"
    DONE_BUDGET_EXCEEDED = "done_budget_exceeded"
    DONE_ERROR = "done_error"


class LoopState(TypedDict):
    """State passed through every node in the loop graph.

    messages         — working copy of the conversation; add_messages appends.
    iteration        — model invocations started so far.
    started_at       — clock reading when the run began.
    elapsed_seconds  — clock delta at the last budget check.
    outcome          — RUNNING until a node sets a terminal value, once.
    final_text       — text of the completing model turn.
    budget_trigger   — "iterations" | "time" when the budget ran out.
    error            — upstream error message when outcome is DONE_ERROR.
    error_reason     — ErrorReason value for ``error``.
    tools_invoked    — names of the tools run by the latest tools step.
    """

    messages: Annotated[list[BaseMessage], add_messages]
    iteration: int
    started_at: float
    elapsed_seconds: float
    outcome: LoopOutcome
    final_text: str | None
    budget_trigger: str | None
    error: str | None
    error_reason: str | None
    tools_invoked: list[str]
