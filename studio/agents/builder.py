"""Graph builder — wires the loop nodes into a LangGraph StateGraph.

START → [budget] → conditional
  → "generate" → [generate] → conditional
      → "tools" → [tools] → [budget] ...
      → "__done__" → END
  → "__done__" → END
"""

from __future__ import annotations

import logging
from functools import lru_cache, partial
from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph

from studio.agents.nodes import DONE, check_budget, generate, route_running, run_tools
from studio.agents.state import LoopState

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

    from studio.config import BudgetProfile

logger = logging.getLogger(__name__)

# Graph steps per loop iteration: budget, generate, tools.
STEPS_PER_ITERATION = 3


@lru_cache(maxsize=1)
def build_loop_graph() -> CompiledStateGraph:
    """Build and compile the agent loop. The result is shared across requests."""
    graph = StateGraph(LoopState)

    graph.add_node("budget", check_budget)
    graph.add_node("generate", generate)
    graph.add_node("tools", run_tools)

    graph.set_entry_point("budget")

    graph.add_conditional_edges(
        "budget",
        partial(route_running, next_node="generate"),
        {"generate": "generate", DONE: END},
    )
    graph.add_conditional_edges(
        "generate",
        partial(route_running, next_node="tools"),
        {"tools": "tools", DONE: END},
    )
    graph.add_edge("tools", "budget")

    logger.info("Built agent loop graph: budget → generate → tools")
    return graph.compile()


def recursion_limit(budget: BudgetProfile) -> int:
    """Graph step ceiling that never cuts a run short of its own budget."""
    return budget.max_iterations * STEPS_PER_ITERATION + 4
