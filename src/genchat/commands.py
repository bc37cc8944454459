"""Pure parsing helpers for console slash commands."""

from __future__ import annotations

from dataclasses import dataclass
import os
import shlex

COMMANDS: dict[str, str] = {
    "attach": "/attach <path>...   stage reference images",
    "detach": "/detach <index>     remove a staged image (0 is the base image)",
    "set": "/set <param> <value>  change a parameter of the pending action",
    "options": "/options            list editable parameters and legal values",
    "confirm": "/confirm            run the pending action",
    "cancel": "/cancel             dismiss the pending action",
    "retry": "/retry              re-run the last request that failed in transit",
    "clear": "/clear              reset the conversation",
    "credits": "/credits            refresh and show the balance",
    "help": "/help               show this help",
    "quit": "/quit               leave",
}


@dataclass(frozen=True)
class Command:
    """A parsed slash command, or plain text when ``name`` is empty."""

    name: str
    args: tuple[str, ...] = ()
    text: str = ""

    @property
    def is_message(self) -> bool:
        return not self.name


def parse_command(line: str) -> Command:
    """Split one console line into a command and its arguments.

    Lines that do not start with a known ``/command`` are chat messages.
    Attachment paths are expanded with the user's home directory.
    """
    stripped = line.strip()
    if not stripped.startswith("/"):
        return Command(name="", text=stripped)
    head, _, rest = stripped[1:].partition(" ")
    name = head.lower()
    if name not in COMMANDS:
        return Command(name="", text=stripped)
    try:
        args = tuple(shlex.split(rest))
    except ValueError:
        args = tuple(rest.split())
    if name == "attach":
        args = tuple(os.path.expanduser(arg) for arg in args)
    return Command(name=name, args=args, text=rest.strip())


def help_text() -> str:
    return "\n".join(COMMANDS.values())
