from __future__ import annotations

from typing import Sequence

import questionary
import typer
from questionary import Choice, Style

from . import console

# Use questionary for inline, non-fullscreen selections.

_SELECT_STYLE = Style(
    [
        ("pointer", "ansiyellow bold"),
        ("selected", "ansicyan bold"),
        ("highlighted", "ansicyan bold"),
        ("instruction", "ansiblack"),
    ]
)

MODE_LXC = "lxc"
MODE_LOCAL = "local"
_OTHER = "__other__"


def _abort_interactive() -> None:
    console.warn("Installation cancelled.")
    raise typer.Exit(code=0)


def _select(message: str, choices: list[Choice], default=None):
    try:
        result = questionary.select(
            message,
            choices=choices,
            default=default,
            use_shortcuts=False,
            pointer="▶",
            style=_SELECT_STYLE,
        ).ask()
    except KeyboardInterrupt:
        _abort_interactive()
    if result is None:
        _abort_interactive()
    return result


def select_install_mode() -> str:
    choices = [
        Choice(title="Create a new LXC container (recommended)", value=MODE_LXC),
        Choice(title="Install directly on this host", value=MODE_LOCAL),
    ]
    return str(_select("Install mode", choices))


def select_model(message: str, models: Sequence[str], default: str) -> str:
    """Pick from the models Ollama reported, or type another name."""
    choices = [Choice(title=name, value=name) for name in models]
    choices.append(Choice(title="Enter another model name", value=_OTHER))
    result = _select(message, choices, default=default if default in models else None)
    if result == _OTHER:
        return typer.prompt(message, default=default).strip()
    return str(result)
