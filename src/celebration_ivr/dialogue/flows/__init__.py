"""Call sub-flows, one state machine per top-level call state."""

from celebration_ivr.config import Settings
from celebration_ivr.dialogue.effects import CallFlow
from celebration_ivr.dialogue.flows.fulfillment import FulfillmentFlow
from celebration_ivr.dialogue.flows.identify import IdentifyFlow
from celebration_ivr.dialogue.flows.lottery import LotteryFlow
from celebration_ivr.dialogue.flows.main_menu import MainMenuFlow, menu_options
from celebration_ivr.dialogue.flows.proxy_report import ProxyReportFlow
from celebration_ivr.dialogue.flows.report_event import ReportEventFlow
from celebration_ivr.dialogue.flows.track_selection import TrackSelectionFlow
from celebration_ivr.dialogue.flows.vouchers import VouchersFlow
from celebration_ivr.dialogue.models import CallState

FLOW_CLASSES: tuple[type[CallFlow], ...] = (
    IdentifyFlow,
    MainMenuFlow,
    ReportEventFlow,
    TrackSelectionFlow,
    VouchersFlow,
    LotteryFlow,
    FulfillmentFlow,
    ProxyReportFlow,
)


def build_flows(settings: Settings) -> dict[CallState, CallFlow]:
    """Instantiate every registered sub-flow keyed by the state it serves."""
    return {cls.state: cls(settings) for cls in FLOW_CLASSES}


__all__ = [
    "FLOW_CLASSES",
    "FulfillmentFlow",
    "IdentifyFlow",
    "LotteryFlow",
    "MainMenuFlow",
    "ProxyReportFlow",
    "ReportEventFlow",
    "TrackSelectionFlow",
    "VouchersFlow",
    "build_flows",
    "menu_options",
]
