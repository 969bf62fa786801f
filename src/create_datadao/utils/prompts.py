"""Interactive prompts built on rich."""

from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from rich.markup import escape
from rich.prompt import Confirm, Prompt

from .output import output

T = TypeVar("T")

# A validator returns None when the answer is acceptable, otherwise the message to show.
Validator = Callable[[str], Optional[str]]


def required(message: str) -> Validator:
    return lambda value: None if value.strip() else message


def hex_prefixed(message: str) -> Validator:
    return lambda value: None if value.strip().startswith("0x") else message


def positive_int(message: str = "Please enter a valid number") -> Validator:
    def check(value: str) -> Optional[str]:
        value = value.strip()
        return None if value.isdigit() and int(value) > 0 else message
    return check


def url_with_suffix(suffix: str, message: str, hosts: Sequence[str] = ()) -> Validator:
    """Accept URLs ending in ``suffix`` and, if given, hosted on one of ``hosts``."""
    def check(value: str) -> Optional[str]:
        value = value.strip()
        if not value.endswith(suffix):
            return message
        if hosts and not any(host in value for host in hosts):
            return message
        return None
    return check


def ask_text(
    message: str,
    default: Optional[str] = None,
    validate: Optional[Validator] = None,
    password: bool = False,
) -> str:
    """Ask for a line of text, re-asking until ``validate`` accepts it."""
    while True:
        answer = Prompt.ask(
            escape(message),
            default=default,
            password=password,
            console=output.console,
        )
        answer = (answer or "").strip()
        problem = validate(answer) if validate else None
        if problem is None:
            return answer
        output.error(problem)


def ask_secret(message: str, validate: Optional[Validator] = None) -> str:
    return ask_text(message, validate=validate, password=True)


def confirm(message: str, default: bool = True) -> bool:
    return Confirm.ask(escape(message), default=default, console=output.console)


def select(message: str, choices: Sequence[Tuple[str, T]], default: int = 1) -> T:
    """
    Numbered single-choice menu.

    Args:
        message: Question shown above the options
        choices: ``(label, value)`` pairs
        default: 1-based index of the default option

    Returns:
        The value of the chosen option
    """
    output.console.print(f"[bold]{escape(message)}[/bold]")
    for index, (label, _) in enumerate(choices, 1):
        output.console.print(f"  {index}. {escape(label)}")
    keys: List[str] = [str(i) for i in range(1, len(choices) + 1)]
    answer = Prompt.ask(
        "Choose an option",
        choices=keys,
        default=str(default),
        console=output.console,
    )
    return choices[int(answer) - 1][1]
