"""Progress events — the typed stream a client sees while a run is in flight.

Five event kinds, one pydantic model each, joined in the ``LoopEvent``
discriminated union. A run's stream is:

    started → (progress | tools)* → complete | error

:class:`ProgressChannel` enforces that shape: the first event must be
``started`` and nothing can be emitted after a terminal event.

Wire format (SSE)::

    event: <kind>
    data: {json}

"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ErrorReason(str, Enum):
    """Why a run ended without content. Lets clients pick their messaging."""

    BUDGET_EXCEEDED = "budget_exceeded"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION = "authentication"
    UPSTREAM = "upstream"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    terminal: ClassVar[bool] = False

    def to_sse(self) -> str:
        """Serialize as one SSE frame named after the event kind."""
        return f"event: {self.kind}\ndata: {self.model_dump_json(by_alias=True)}\n\n"


class StartedEvent(_Event):
    kind: Literal["started"] = "started"
    profile: str
    message: str = "Starting generation..."


class ProgressEvent(_Event):
    kind: Literal["progress"] = "progress"
    status: str
    iteration: int


class ToolsEvent(_Event):
    kind: Literal["tools"] = "tools"
    tools: list[str]
    status: str


class CompleteEvent(_Event):
    terminal: ClassVar[bool] = True

    kind: Literal["complete"] = "complete"
    content: str
    code: str | None = None
    iterations: int
    time_ms: int = Field(alias="timeMs")
    valid: bool | None = None


class ErrorEvent(_Event):
    terminal: ClassVar[bool] = True

    kind: Literal["error"] = "error"
    error: str
    reason: ErrorReason
    retryable: bool = False
    iterations: int | None = None
    time_ms: int | None = Field(default=None, alias="timeMs")


LoopEvent = Annotated[
    Union[StartedEvent, ProgressEvent, ToolsEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[LoopEvent] = TypeAdapter(LoopEvent)


def parse_event(data: Mapping[str, object]) -> LoopEvent:
    """Deserialize a wire-format dict back into its event model."""
    return _event_adapter.validate_python(dict(data))


class ChannelClosedError(RuntimeError):
    """Raised when emitting after the terminal event."""


class ProgressChannel:
    """Ordered, append-only event log for one run.

    Emission order is delivery order; the channel closes itself when a
    terminal event (``complete`` or ``error``) goes through.
    """

    def __init__(self) -> None:
        self._events: list[_Event] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> tuple[_Event, ...]:
        return tuple(self._events)

    def emit(self, event: _Event) -> _Event:
        if self._closed:
            raise ChannelClosedError(
                f"Cannot emit '{event.kind}': channel already closed by "
                f"'{self._events[-1].kind}'"
            )
        is_started = isinstance(event, StartedEvent)
        if is_started == bool(self._events):
            raise ValueError("'started' must be the first event and appear exactly once")

        self._events.append(event)
        if event.terminal:
            self._closed = True
        return event
