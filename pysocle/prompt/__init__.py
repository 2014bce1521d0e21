"""Interactive and scripted answers to the questions pysocle asks."""

import logging
from typing import List, Optional, Protocol, Tuple

import click

from ..typing import UserCancelledError

logger = logging.getLogger(__name__)


class PromptInterface(Protocol):
    """What the core needs from whoever answers its questions."""

    def ask_title(self, branch: str, default: str) -> str:
        ...

    def ask_body(self, branch: str, default: str) -> str:
        ...

    def confirm(self, message: str, default: bool = False) -> bool:
        ...

    def choose(self, message: str, options: List[str]) -> str:
        ...


class InteractivePrompt:
    """Prompts on the terminal through click."""

    def __init__(self, use_editor: bool = True):
        self.use_editor = use_editor

    def ask_title(self, branch: str, default: str) -> str:
        try:
            return click.prompt(f"Title for PR ({branch})", default=default or None).strip()
        except (click.Abort, KeyboardInterrupt, EOFError):
            raise UserCancelledError("submit cancelled")

    def ask_body(self, branch: str, default: str) -> str:
        try:
            if not self.use_editor or not click.confirm(
                    f"Edit the PR body for {branch} in your editor?", default=False):
                return default
            edited = click.edit(default, extension=".md")
        except (click.Abort, KeyboardInterrupt, EOFError):
            raise UserCancelledError("submit cancelled")
        if edited is None:
            logger.debug(f"Editor closed without saving; keeping the default body for {branch}")
            return default
        return edited

    def confirm(self, message: str, default: bool = False) -> bool:
        try:
            return click.confirm(message, default=default)
        except (click.Abort, KeyboardInterrupt, EOFError):
            raise UserCancelledError("cancelled")

    def choose(self, message: str, options: List[str]) -> str:
        """Pick one of options by name; the first is the default."""
        click.echo(message)
        for option in options:
            click.echo(f"  {option}")
        try:
            return click.prompt("Branch", type=click.Choice(options), default=options[0])
        except (click.Abort, KeyboardInterrupt, EOFError):
            raise UserCancelledError("navigation cancelled")


class ScriptedPrompt:
    """Fixed answers for tests and non-interactive runs.

    A None title, body or choice means "take the default". Every question asked is
    recorded in `asked` as (kind, branch_or_message).
    """

    def __init__(self, title: Optional[str] = None, body: Optional[str] = None,
                 confirm_answer: bool = False, cancel: bool = False,
                 choice: Optional[str] = None):
        self.title = title
        self.body = body
        self.confirm_answer = confirm_answer
        self.cancel = cancel
        self.choice = choice
        self.asked: List[Tuple[str, str]] = []

    def _record(self, kind: str, subject: str) -> None:
        self.asked.append((kind, subject))
        if self.cancel:
            raise UserCancelledError(f"{kind} cancelled")

    def ask_title(self, branch: str, default: str) -> str:
        self._record("title", branch)
        return default if self.title is None else self.title

    def ask_body(self, branch: str, default: str) -> str:
        self._record("body", branch)
        return default if self.body is None else self.body

    def confirm(self, message: str, default: bool = False) -> bool:
        self._record("confirm", message)
        return self.confirm_answer

    def choose(self, message: str, options: List[str]) -> str:
        self._record("choose", message)
        if self.choice is None:
            return options[0]
        if self.choice not in options:
            raise ValueError(f"'{self.choice}' is not one of {', '.join(options)}")
        return self.choice
