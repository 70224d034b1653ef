"""
Localized caller-facing text catalog.

Every string the caller hears is looked up by a symbolic name and formatted
with ``{placeholder}`` substitution. Operators override any entry through the
``texts`` table; an override with a ``filepath`` is played as a recording.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from celebration_ivr.catalog.models import Text
from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.interface import PromptSegment

logger = get_logger(__name__)


DEFAULT_TEXTS: dict[str, str] = {
    # General
    "GENERAL.WELCOME": "Welcome to the celebrations line.",
    "GENERAL.INVALID_INPUT": "Invalid input, please try again.",
    "GENERAL.MAX_ATTEMPTS_REACHED": "Too many invalid attempts. Please call again later. Goodbye.",
    "GENERAL.ERROR": "We are sorry, an error occurred. Please call again later.",
    "GENERAL.NO_DATA": "The system is not configured yet. Please contact the office. Goodbye.",
    "GENERAL.GOODBYE": "Thank you and goodbye.",
    "GENERAL.YOU_ENTERED": "You entered {value}.",
    "GENERAL.YOU_CHOSE": "You chose {value}.",
    "GENERAL.CONFIRM_OPTIONS": "To confirm press 1, to change press 2.",
    "GENERAL.YES": "yes",
    "GENERAL.NO": "no",
    "GENERAL.RECORDING_RECEIVED": "Your recording was received.",
    # Identification
    "STUDENT.ENTER_ID": "Please enter your 9 digit ID number.",
    "STUDENT.NOT_FOUND": "The ID number you entered is not registered. Goodbye.",
    "STUDENT.GREETING": "Hello {name}.",
    # Main menu
    "MENU.MAIN": "Main menu.",
    "MENU.OPTION": "For {label} press {key}.",
    "MENU.REPORT_EVENT": "reporting a new celebration",
    "MENU.TRACK_SELECTION": "choosing a track",
    "MENU.VOUCHERS": "choosing vouchers",
    "MENU.FULFILLMENT": "the post-celebration follow-up",
    "MENU.LOTTERY": "entering the lottery",
    "MENU.PROXY": "reporting as class representative",
    # Event report
    "EVENT.NO_EVENT_TYPES": "No celebration types are configured. Please contact the office. Goodbye.",
    "EVENT.SELECT_TYPE": "Select the celebration type.",
    "EVENT.ENTER_DATE": (
        "Enter the celebration date as four digits, day and then month. "
        "For the fifteenth of June, press 1 5 0 6."
    ),
    "EVENT.ENTER_HEBREW_DAY": "Enter the day of the Hebrew month, a number from 1 to 30.",
    "EVENT.SELECT_HEBREW_MONTH": "Select the Hebrew month.",
    "EVENT.INVALID_HEBREW_DATE": "That month has no such day. Please enter the date again.",
    "EVENT.CONFIRM_DATE": "The celebration date is {date}.",
    "EVENT.CREATE_NEW": "A new {event_type} on {date} will be registered.",
    "EVENT.EDIT_EXISTING": "A {event_type} on {date} is already registered. Your answers will update it.",
    "EVENT.SELECT_LEVEL": "Select the track.",
    "EVENT.GIFT_SELECTION": "Select a gift.",
    "EVENT.ADDITIONAL_GIFT_SELECTION": "Select an additional gift.",
    "EVENT.SELECT_ANOTHER_GIFT": "To choose another gift press 1, to finish press 2.",
    "EVENT.CONFIRM_GIFTS": "You selected {gifts}.",
    "EVENT.SAVE_SUCCESS": "Your {event_type} on {date} was saved. Mazal tov! Goodbye.",
    "EVENT.NO_ELIGIBLE_EVENTS": "No celebrations are available for this option. Goodbye.",
    "EVENT.SELECT_EVENT": "Select the celebration.",
    "EVENT.SELECTED_EVENT": "the {event_type} on {date}",
    # Track selection / vouchers
    "TRACK.CONFIRM": "You chose the {level_type} track.",
    "TRACK.SAVED": "The {level_type} track was saved for the {event_type}.",
    "TRACK.CONTINUE_TO_VOUCHERS": "To choose vouchers now press 1, to finish press 2.",
    "VOUCHERS.FINAL_WARNING": "Vouchers cannot be changed after they are confirmed.",
    "VOUCHERS.SAVED": "Your vouchers were saved. Goodbye.",
    # Lottery
    "LOTTERY.WELCOME": "Welcome to the lottery.",
    "LOTTERY.TRACK_SELECTION": "Select a lottery track from 1 to {count}.",
    "LOTTERY.CONFIRM_TRACK": "You chose lottery track {track}.",
    "LOTTERY.ENTRY_SUCCESS": "You were entered into lottery track {track}. Good luck and goodbye.",
    # Fulfillment
    "FULFILLMENT.START_MESSAGE": (
        "Please answer a few questions about the celebration. "
        "Answer each one with a number from 1 to {max_level}."
    ),
    "FULFILLMENT.RECORD_COMMENT": "After the tone, record a short message about the celebration, then press hash.",
    "FULFILLMENT.DATA_SAVED": "Thank you, your answers were saved. Goodbye.",
    # Class representative
    "TATNIKIT.WELCOME": "Hello class representative of {class_name}.",
    "TATNIKIT.NO_CLASS_FOUND": "No active class was found for you this year. Goodbye.",
    "TATNIKIT.MENU": "To report your own celebration press 1, to report for a classmate press 2.",
    "TATNIKIT.ENTER_STUDENT_TZ": "Enter the 9 digit ID number of your classmate.",
    "TATNIKIT.STUDENT_NOT_IN_CLASS": "This student is not in your class.",
    "TATNIKIT.EVENT_EXISTS": "{student} already has a {event_type} on {date}.",
    "TATNIKIT.EXISTS_OPTIONS": "To confirm it press 1, to report a different celebration press 2.",
    "TATNIKIT.EVENT_CONFIRMED": "The celebration was confirmed.",
    "TATNIKIT.EVENT_SAVED": "The {event_type} of {student} on {date} was saved.",
    "TATNIKIT.ANOTHER_STUDENT": "To report another celebration press 1, to finish press 2.",
    "TATNIKIT.GOODBYE": "Thank you for reporting. Goodbye.",
}

DEFAULT_TEXTS.update(
    {f"FULFILLMENT.QUESTION_{n}": f"Question {n}." for n in range(1, 21)}
)


@dataclass(frozen=True)
class Prompt:
    """Reference to a catalog entry plus its placeholder values.

    Parameter values may themselves be ``Prompt`` instances; they are
    rendered to text before substitution.
    """

    key: str
    params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, key: str, /, **params: Any) -> "Prompt":
        return cls(key=key, params=params)


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@dataclass(frozen=True)
class TextEntry:
    value: str
    filepath: str | None = None


class TextCatalog:
    """Resolves symbolic text keys into prompt segments."""

    def __init__(self, overrides: Mapping[str, TextEntry] | None = None) -> None:
        self._entries: dict[str, TextEntry] = {
            name: TextEntry(value) for name, value in DEFAULT_TEXTS.items()
        }
        self._entries.update(overrides or {})

    @classmethod
    def from_rows(cls, rows: Iterable[Text]) -> "TextCatalog":
        return cls({row.name: TextEntry(row.value, row.filepath) for row in rows})

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def format(self, key: str, /, **params: Any) -> str:
        """Render one entry to text.

        Raises:
            KeyError: Unknown text key.
        """
        try:
            entry = self._entries[key]
        except KeyError:
            logger.error("Unknown text key", extra={"text_key": key})
            raise
        values = _KeepMissing(
            {name: self.format(v.key, **v.params) if isinstance(v, Prompt) else v for name, v in params.items()}
        )
        return entry.value.format_map(values)

    def segment(self, prompt: Prompt) -> PromptSegment:
        entry = self._entries.get(prompt.key)
        # Recordings cannot carry placeholders; fall back to TTS when they would
        if entry is not None and entry.filepath and not prompt.params:
            return PromptSegment.file(entry.filepath)
        return PromptSegment.text(self.format(prompt.key, **prompt.params))

    def render(self, prompts: Iterable[Prompt]) -> list[PromptSegment]:
        return [self.segment(p) for p in prompts]
