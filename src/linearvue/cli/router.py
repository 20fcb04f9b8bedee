"""
Command group registry for the LinearVue CLI.

Groups are declared once as ``CommandGroup`` rows and mounted on the root
Typer app in declaration order, which is also the order ``--help`` shows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import typer


@dataclass(frozen=True)
class CommandGroup:
    name: str
    app: typer.Typer
    help_text: str


class CliRouter:
    """Mounts command groups on the root app and rejects duplicate names."""

    def __init__(self, root_app: typer.Typer) -> None:
        self.root_app = root_app
        self._groups: dict[str, CommandGroup] = {}

    def register(self, group: CommandGroup) -> None:
        if group.name in self._groups:
            raise ValueError(f"Command group '{group.name}' is already registered")
        self.root_app.add_typer(group.app, name=group.name, help=group.help_text)
        self._groups[group.name] = group

    def register_all(self, groups: Iterable[CommandGroup]) -> None:
        for group in groups:
            self.register(group)

    def list_registered_groups(self) -> list[str]:
        return list(self._groups)
