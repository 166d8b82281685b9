"""Text-generation capability — the only place that talks to the model.

The loop depends on the :class:`GenerationCapability` protocol, not on
Anthropic: it needs a stop reason, the model's message, and nothing else.
:class:`AnthropicCapability` is the production implementation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

from studio.progress import ErrorReason

if TYPE_CHECKING:
    from langchain_core.messages import ToolCall
    from langchain_core.tools import BaseTool

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Why the model stopped. Unrecognised values collapse to ``OTHER``."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> StopReason:
        return cls.OTHER


def extract_text(content) -> str:
    """Normalize message content — Anthropic can return a list of blocks or a string.

    Only text blocks are kept; tool_use blocks carry no user-facing text.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(block.get("text", ""))
        return "\n".join(part for part in parts if part)
    return str(content)


@dataclass(frozen=True)
class ModelTurn:
    """One model response, classified."""

    stop_reason: StopReason
    message: AIMessage
    raw_stop_reason: str | None = None

    @property
    def text(self) -> str:
        return extract_text(self.message.content)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return list(self.message.tool_calls or [])


class GenerationCapability(Protocol):
    async def generate(
        self,
        system: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
    ) -> ModelTurn: ...

    def stream_text(
        self, system: str, messages: Sequence[BaseMessage]
    ) -> AsyncIterator[str]: ...


class AnthropicCapability:
    """Claude via LangChain, with the loop's tools bound per call."""

    def __init__(self, model: str, max_tokens: int, api_key: str) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._api_key = api_key

    def _get_llm(self, tools: Sequence[BaseTool] | None = None):
        llm = ChatAnthropic(model=self.model, max_tokens=self.max_tokens, api_key=self._api_key)
        if tools:
            return llm.bind_tools(list(tools))
        return llm

    async def generate(
        self,
        system: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
    ) -> ModelTurn:
        response = await self._get_llm(tools).ainvoke(
            [SystemMessage(content=system), *messages]
        )
        raw = response.response_metadata.get("stop_reason")
        return ModelTurn(stop_reason=StopReason(raw), message=response, raw_stop_reason=raw)

    async def stream_text(
        self, system: str, messages: Sequence[BaseMessage]
    ) -> AsyncIterator[str]:
        async for chunk in self._get_llm().astream([SystemMessage(content=system), *messages]):
            text = extract_text(chunk.content)
            if text:
                yield text


# ---------------------------------------------------------------------------
# Upstream error classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UpstreamFailure:
    reason: ErrorReason
    message: str


def classify_upstream_error(exc: Exception) -> UpstreamFailure:
    """Map a failed model call to a user-facing reason and message."""
    status = getattr(exc, "status_code", None)

    if isinstance(exc, anthropic.RateLimitError) or status == 429:
        return UpstreamFailure(
            ErrorReason.RATE_LIMITED, "Rate limit exceeded. Please wait and try again."
        )
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)) or status in (401, 403):
        return UpstreamFailure(
            ErrorReason.AUTHENTICATION, "Invalid API key. Please check your ANTHROPIC_API_KEY."
        )
    if isinstance(exc, anthropic.APIError):
        return UpstreamFailure(ErrorReason.UPSTREAM, f"Anthropic API error: {exc.message}")
    return UpstreamFailure(ErrorReason.UPSTREAM, f"Generation failed: {exc}")
