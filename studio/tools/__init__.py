"""Tool registry — name-based lookup and total dispatch for LangChain tools.

Tools are Python functions decorated with ``@register`` and ``@tool``.
The loop binds them to the model with :func:`resolve_tools` and runs the
model's tool calls through :func:`execute_tool`, which never raises: every
failure becomes a string the model can read and recover from.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

logger = logging.getLogger(__name__)

_registry: dict[str, BaseTool] = {}


def register(tool: BaseTool) -> BaseTool:
    """Add a BaseTool to the registry by its ``.name``.

    Can be used as a decorator (applied *outside* ``@tool``)::

        @register
        @tool
        def my_tool(query: str) -> str:
            ...
    """
    _registry[tool.name] = tool
    return tool


def resolve_tools(names: list[str]) -> list[BaseTool]:
    """Look up tool names and return the corresponding ``BaseTool`` objects.

    Raises ``ValueError`` if any name is not registered.
    """
    missing = [n for n in names if n not in _registry]
    if missing:
        raise ValueError(
            f"Unknown tool(s): {missing}. Available: {list(_registry.keys())}"
        )
    return [_registry[n] for n in names]


def list_tools() -> list[str]:
    """Return all registered tool names."""
    return list(_registry.keys())


def execute_tool(name: str, args: Any) -> str:
    """Run tool *name* with *args* and return its text result.

    Unknown names, non-mapping arguments, schema violations and errors
    raised inside the tool all come back as descriptive strings.
    """
    tool = _registry.get(name)
    if tool is None:
        logger.warning(f"Model requested unknown tool '{name}'")
        return f"Unknown tool: {name}"

    if not isinstance(args, Mapping):
        return (
            f"Invalid arguments for tool '{name}': expected an object, "
            f"got {type(args).__name__}"
        )

    try:
        logger.debug(f"Executing tool '{name}' with args={dict(args)}")
        return str(tool.invoke(dict(args)))
    except Exception as e:
        logger.warning(f"Tool '{name}' failed: {e}", exc_info=True)
        return f"Error: tool '{name}' failed: {e}"


# Auto-import tool modules so the registry is populated on first access.
import studio.tools.reference as _reference  # noqa: E402, F401
import studio.tools.validation as _validation  # noqa: E402, F401
