"""
Input step declarations for the prompt engine.

A ``StepSpec`` says what to play, which grammar the answer must match and how
to echo it back. Steps are plain values so flows can build them without
touching the gateway.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from celebration_ivr.catalog.texts import Prompt
from celebration_ivr.telephony.interface import InputMode, ReadConstraints


class InputGrammar(str, Enum):
    """Shape of an acceptable answer."""

    FIXED_DIGITS = "fixed_digits"
    BOUNDED_DIGITS = "bounded_digits"
    RECORDING = "recording"


@dataclass(frozen=True)
class StepSpec:
    """One prompt-and-collect step."""

    name: str
    prompts: tuple[Prompt, ...]
    grammar: InputGrammar = InputGrammar.BOUNDED_DIGITS
    min_digits: int = 1
    max_digits: int = 1
    allowed: tuple[str, ...] | None = None
    validator: Callable[[str], bool] | None = None
    echo: Prompt | None = Prompt("GENERAL.YOU_ENTERED")
    labels: Mapping[str, Any] = field(default_factory=dict)
    formatter: Callable[[str], Any] | None = None
    max_record_seconds: int = 60

    @property
    def mode(self) -> InputMode:
        return InputMode.RECORD if self.grammar is InputGrammar.RECORDING else InputMode.TAP

    def constraints(self, timeout_seconds: int) -> ReadConstraints:
        return ReadConstraints(
            min_digits=self.min_digits,
            max_digits=self.max_digits,
            digits_allowed=self.allowed,
            timeout_seconds=timeout_seconds,
            max_record_seconds=self.max_record_seconds,
        )

    def accepts(self, raw: str) -> bool:
        """Validate a raw gateway answer against grammar, allow-list and validator."""
        if not raw:
            return False
        if self.grammar is InputGrammar.RECORDING:
            return True
        if not raw.isdigit():
            return False
        if not self.min_digits <= len(raw) <= self.max_digits:
            return False
        if self.allowed is not None and raw not in self.allowed:
            return False
        if self.validator is not None and not self.validator(raw):
            return False
        return True

    def describe(self, raw: str) -> Any:
        """Human-facing rendering of an accepted answer, for the echo line."""
        if raw in self.labels:
            return self.labels[raw]
        if self.formatter is not None:
            return self.formatter(raw)
        return raw

    def echo_prompt(self, raw: str) -> Prompt | None:
        if self.echo is None:
            return None
        return Prompt(self.echo.key, {**self.echo.params, "value": self.describe(raw)})


def digits_step(
    name: str,
    prompts: Sequence[Prompt],
    length: int,
    validator: Callable[[str], bool] | None = None,
    formatter: Callable[[str], Any] | None = None,
) -> StepSpec:
    """Fixed-length digit entry (IDs, dates)."""
    return StepSpec(
        name=name,
        prompts=tuple(prompts),
        grammar=InputGrammar.FIXED_DIGITS,
        min_digits=length,
        max_digits=length,
        validator=validator,
        formatter=formatter,
    )


def choice_step(
    name: str,
    intro: Sequence[Prompt],
    options: Sequence[tuple[str, Any]],
    line_key: str = "MENU.OPTION",
) -> StepSpec:
    """Menu of keyed options; one prompt line per option, echo the chosen label."""
    keys = tuple(key for key, _ in options)
    lines = [Prompt.of(line_key, label=label, key=key) for key, label in options]
    return StepSpec(
        name=name,
        prompts=(*intro, *lines),
        grammar=InputGrammar.BOUNDED_DIGITS,
        min_digits=min(len(k) for k in keys),
        max_digits=max(len(k) for k in keys),
        allowed=keys,
        echo=Prompt("GENERAL.YOU_CHOSE"),
        labels=dict(options),
    )


def yes_no_step(name: str, prompts: Sequence[Prompt]) -> StepSpec:
    """1 = yes, 2 = no. The prompts must spell out the two keys."""
    return StepSpec(
        name=name,
        prompts=tuple(prompts),
        allowed=("1", "2"),
        echo=Prompt("GENERAL.YOU_CHOSE"),
        labels={"1": Prompt("GENERAL.YES"), "2": Prompt("GENERAL.NO")},
    )


def recording_step(name: str, prompts: Sequence[Prompt], max_seconds: int = 60) -> StepSpec:
    """Free recording; the gateway returns a reference to the stored clip."""
    return StepSpec(
        name=name,
        prompts=tuple(prompts),
        grammar=InputGrammar.RECORDING,
        min_digits=0,
        max_digits=0,
        max_record_seconds=max_seconds,
        echo=Prompt("GENERAL.RECORDING_RECEIVED"),
    )
