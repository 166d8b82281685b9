"""Test doubles: a scripted model capability and a controllable clock."""

import itertools

from langchain_core.messages import AIMessage

from studio.agents.capability import ModelTurn, StopReason

VALID_CODE = 'setcps(130/4/60)\nstack(s("bd*4"), s("~ sd ~ sd"))'

_ids = itertools.count(1)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def final(text: str, stop_reason: str | None = "end_turn"):
    """Script step: the model finishes with *text*."""

    def step() -> ModelTurn:
        return ModelTurn(
            stop_reason=StopReason(stop_reason),
            message=AIMessage(content=text),
            raw_stop_reason=stop_reason,
        )

    return step


def tool_use(*calls: tuple[str, dict], text: str = ""):
    """Script step: the model asks for one tool call per (name, args) pair."""

    def step() -> ModelTurn:
        tool_calls = [
            {"name": name, "args": args, "id": f"toolu_{next(_ids)}"} for name, args in calls
        ]
        return ModelTurn(
            stop_reason=StopReason.TOOL_USE,
            message=AIMessage(content=text, tool_calls=tool_calls),
            raw_stop_reason="tool_use",
        )

    return step


def reply_with_code(code: str, description: str = "A driving techno groove.") -> str:
    return f"{description}\n\n```javascript\n{code}\n```"


class ScriptedCapability:
    """Plays back a fixed list of steps; the last step repeats forever.

    A step is a callable returning a fresh ModelTurn, or an exception to raise.
    """

    def __init__(self, *steps, clock: FakeClock | None = None, delay: float = 0.0, chunks=()):
        self.steps = list(steps)
        self.clock = clock
        self.delay = delay
        self.chunks = list(chunks)
        self.calls: list[list] = []
        self.systems: list[str] = []
        self.tool_names: list[list[str]] = []

    async def generate(self, system, messages, tools):
        self.calls.append(list(messages))
        self.systems.append(system)
        self.tool_names.append([t.name for t in tools])
        if self.clock is not None:
            self.clock.advance(self.delay)

        step = self.steps[min(len(self.calls), len(self.steps)) - 1]
        if isinstance(step, Exception):
            raise step
        return step()

    async def stream_text(self, system, messages):
        self.systems.append(system)
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


class StatusError(Exception):
    """Stand-in for an HTTP-level upstream error carrying a status code."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code

