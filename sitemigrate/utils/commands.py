"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Command Builder

Commands sent to a shell (local or over SSH) are built from a program name and
an argument list. Quoting happens in exactly one place, render(), so no caller
ever concatenates user-controlled paths into a shell string.

Usage:
    from sitemigrate.utils.commands import command

    exists = command("test", "-d", "/var/opt/example.com")
    move = command("mkdir", "-p", root).then(command("mv", src, dst))
    session.run(move)
"""

import shlex
from dataclasses import dataclass
from typing import List, Tuple, Union


@dataclass(frozen=True)
class Command:
    """A single program invocation."""
    name: str
    args: Tuple[str, ...] = ()

    def argv(self) -> List[str]:
        return [self.name, *self.args]

    def render(self) -> str:
        return " ".join(shlex.quote(part) for part in self.argv())

    def then(self, other: "Runnable") -> "CommandChain":
        """Chain another command that only runs if this one succeeds."""
        return CommandChain((self,)).then(other)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class CommandChain:
    """Commands joined with && so the first failure stops the chain."""
    commands: Tuple[Command, ...]

    def argv(self) -> List[str]:
        return ["sh", "-c", self.render()]

    def render(self) -> str:
        return " && ".join(c.render() for c in self.commands)

    def then(self, other: "Runnable") -> "CommandChain":
        if isinstance(other, CommandChain):
            return CommandChain(self.commands + other.commands)
        return CommandChain(self.commands + (other,))

    def __str__(self) -> str:
        return self.render()


Runnable = Union[Command, CommandChain]


def command(name: str, *args) -> Command:
    """Build a Command, converting every argument to str."""
    return Command(str(name), tuple(str(a) for a in args))
