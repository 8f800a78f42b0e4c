"""Interactive prompts for the terminal."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

import click


class AnswerKind(Enum):
    VALUE = 'value'
    EMPTY = 'empty'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class Answer:
    """Result of a prompt: a value, an explicit empty answer, or cancellation.

    Example:
        answer = prompter.text('Enter SSH host')
        if answer.is_cancelled:
            return
        host = answer.text
    """

    kind: AnswerKind
    value: Any = None

    @classmethod
    def of(cls, value: Any) -> 'Answer':
        return cls(AnswerKind.VALUE, value)

    @classmethod
    def empty(cls) -> 'Answer':
        return cls(AnswerKind.EMPTY, '')

    @classmethod
    def cancelled(cls) -> 'Answer':
        return cls(AnswerKind.CANCELLED)

    @property
    def is_cancelled(self) -> bool:
        return self.kind is AnswerKind.CANCELLED

    @property
    def is_empty(self) -> bool:
        return self.kind is AnswerKind.EMPTY

    @property
    def text(self) -> str:
        """The answer as a string ('' unless a value was given)."""
        return self.value if self.kind is AnswerKind.VALUE else ''


def choose(options: Sequence[str], prompt: str = 'Your choice') -> Answer:
    """Show numbered options and return the chosen index."""
    for i, option in enumerate(options, 1):
        click.echo(f"  [{i}] {option}")
    try:
        choice = click.prompt(prompt, type=click.IntRange(1, len(options)))
    except click.Abort:
        return Answer.cancelled()
    return Answer.of(choice - 1)


class Prompter:
    """Collects answers from the user.

    Ctrl-C or end of input cancels a prompt; pressing enter on a text prompt
    gives an explicit empty answer.
    """

    def select(self, title: str, options: Sequence[str]) -> Answer:
        """Single choice from a list. The answer value is the option index."""
        click.echo(title)
        return choose(options)

    def text(self, message: str, masked: bool = False, confirm: bool = False) -> Answer:
        """Free-text input, optionally hidden and entered twice."""
        try:
            value = click.prompt(
                message,
                default='',
                show_default=False,
                hide_input=masked,
                confirmation_prompt=confirm,
            )
        except click.Abort:
            return Answer.cancelled()
        return Answer.of(value) if value else Answer.empty()

    def confirm(self, message: str, default: bool = False) -> Answer:
        """Yes/no question. The answer value is a bool."""
        try:
            return Answer.of(click.confirm(message, default=default))
        except click.Abort:
            return Answer.cancelled()
