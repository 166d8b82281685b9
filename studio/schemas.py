"""Request models — the contract between the studio API and its clients."""

from typing import Literal

from pydantic import BaseModel, Field


class ChatTurn(BaseModel):
    """One prior conversation turn. Alternation is not enforced."""

    role: Literal["user", "assistant"]
    content: str


class GenerateRequest(BaseModel):
    """Incoming request body for /generate, /generate/stream and /chat."""

    messages: list[ChatTurn] = Field(min_length=1)
