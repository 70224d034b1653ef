"""
Explicit call-flow state machine values.

Sub-flows are pure: given the session and the answer to their last effect
they return the next ``FlowState`` plus exactly one ``Effect`` for the
orchestrator to carry out. Nothing here touches the gateway or storage, so a
conversation can be replayed from a list of answers.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.config import Settings
from celebration_ivr.dialogue.models import CallOutcome, CallSession, CallState
from celebration_ivr.dialogue.steps import StepSpec
from celebration_ivr.identity.resolver import CallerIdentity


@dataclass(frozen=True)
class FlowState:
    """Stage tag plus the data a sub-flow has accumulated so far.

    ``stage`` names what the next incoming value answers.
    """

    stage: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def to(self, stage: str, **updates: Any) -> "FlowState":
        return FlowState(stage=stage, data={**self.data, **updates})

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class Effect:
    """Marker base for side effects requested by a sub-flow."""

    __slots__ = ()


@dataclass(frozen=True)
class Ask(Effect):
    """Collect one answer through the prompt engine."""

    step: StepSpec


@dataclass(frozen=True)
class Query(Effect):
    """Run a named storage operation; its result is the next input."""

    operation: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Say(Effect):
    """Announce and continue.

    With ``then`` the follow-up effect runs directly; otherwise the flow is
    advanced with ``None``.
    """

    prompts: tuple[Prompt, ...]
    then: Effect | None = None


@dataclass(frozen=True)
class Handoff(Effect):
    """Leave this sub-flow and start another."""

    target: CallState
    params: Mapping[str, Any] = field(default_factory=dict)
    identity: CallerIdentity | None = None


@dataclass(frozen=True)
class Finish(Effect):
    """Announce and terminate the call."""

    prompts: tuple[Prompt, ...]
    outcome: CallOutcome = CallOutcome.COMPLETED


@dataclass(frozen=True)
class Transition:
    """Result of one pure transition."""

    state: FlowState
    effect: Effect


def say(*prompts: Prompt, then: Effect | None = None) -> Say:
    return Say(prompts=tuple(prompts), then=then)


def finish(*prompts: Prompt, outcome: CallOutcome = CallOutcome.COMPLETED) -> Finish:
    return Finish(prompts=tuple(prompts), outcome=outcome)


def max_attempts() -> Finish:
    return finish(Prompt("GENERAL.MAX_ATTEMPTS_REACHED"), outcome=CallOutcome.MAX_ATTEMPTS)


def retry_or_give_up(
    state: FlowState,
    counter: str,
    limit: int,
    retry: Effect,
    stage: str,
) -> Transition:
    """Bounded re-entry loop for caller-rejected confirmations.

    Counts against the same attempt budget as invalid input.
    """
    attempts = state.get(counter, 0) + 1
    if attempts >= limit:
        return Transition(state.to(stage, **{counter: attempts}), max_attempts())
    return Transition(state.to(stage, **{counter: attempts}), retry)


class CallFlow(ABC):
    """A sub-flow: an independent state machine composed by the orchestrator."""

    state: ClassVar[CallState]

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    def start(self, session: CallSession, params: Mapping[str, Any]) -> Transition:
        """First transition when the orchestrator enters this flow."""
        ...

    @abstractmethod
    def advance(self, session: CallSession, state: FlowState, value: Any) -> Transition:
        """Consume the answer to the last effect and return the next one."""
        ...
