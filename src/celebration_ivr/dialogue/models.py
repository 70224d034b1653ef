"""
In-memory call session state.

A ``CallSession`` lives exactly as long as one phone call. It is owned by the
call's task, mutated only by the orchestrator, and never persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from celebration_ivr.identity.resolver import CallerIdentity


class CallState(str, Enum):
    """Top-level conversation state."""

    IDENTIFYING = "identifying"
    MAIN_MENU = "main_menu"
    REPORT_EVENT = "report_event"
    TRACK_SELECTION = "track_selection"
    VOUCHERS = "vouchers"
    LOTTERY = "lottery"
    FULFILLMENT = "fulfillment"
    PROXY_MENU = "proxy_menu"
    CONFIRMING = "confirming"
    DONE = "done"


class FlowKind(str, Enum):
    """Sub-flow the caller picked from the main menu."""

    REPORT_EVENT = "report_event"
    PROXY_REPORT = "proxy_report"
    LOTTERY = "lottery"
    FULFILLMENT = "fulfillment"
    TRACK_SELECTION = "track_selection"
    VOUCHERS = "vouchers"


FLOW_FOR_STATE: dict[CallState, FlowKind] = {
    CallState.REPORT_EVENT: FlowKind.REPORT_EVENT,
    CallState.TRACK_SELECTION: FlowKind.TRACK_SELECTION,
    CallState.VOUCHERS: FlowKind.VOUCHERS,
    CallState.LOTTERY: FlowKind.LOTTERY,
    CallState.FULFILLMENT: FlowKind.FULFILLMENT,
    CallState.PROXY_MENU: FlowKind.PROXY_REPORT,
}


class CallOutcome(str, Enum):
    """How a call ended."""

    COMPLETED = "completed"
    HANGUP = "hangup"
    IDENTIFICATION_FAILED = "identification_failed"
    MAX_ATTEMPTS = "max_attempts"
    NO_DATA = "no_data"
    ERROR = "error"


@dataclass
class CallSession:
    """Per-call conversational state."""

    call_id: str
    phone: str | None = None
    today: date = field(default_factory=date.today)
    state: CallState = CallState.IDENTIFYING
    flow: FlowKind | None = None
    step_index: int = 0
    identity: CallerIdentity | None = None
    answers: dict[str, Any] = field(default_factory=dict)
    retries: dict[str, int] = field(default_factory=dict)
    terminal: bool = False
    outcome: CallOutcome | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def enter(self, state: CallState) -> None:
        self.state = state
        if state in FLOW_FOR_STATE:
            self.flow = FLOW_FOR_STATE[state]

    def record_answer(self, step_name: str, value: Any) -> None:
        self.answers[step_name] = value
        self.step_index += 1

    def finish(self, outcome: CallOutcome) -> None:
        self.state = CallState.DONE
        self.terminal = True
        self.outcome = outcome

    @property
    def user_id(self) -> int | None:
        return self.identity.user_id if self.identity is not None else None
