from __future__ import annotations

from collections.abc import Iterable, Iterator

import structlog

from Harmony.commanding import Command
from Harmony.metrics import inc_counter

log = structlog.get_logger()


class CommandRegistry:
    """Name -> Command mapping with an alias index.

    Registration is an upsert. Name or alias overlaps are reported and the
    latest registration takes ownership of the contested key.
    """

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._aliases: dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(list(self._commands.values()))

    def collisions(self, command: Command) -> set[str]:
        taken: set[str] = set()
        existing = self._commands.get(command.name)
        if existing is not None and existing is not command:
            taken.add(command.name)
        if command.name in self._aliases and self._aliases[command.name] != command.name:
            taken.add(command.name)
        for alias in command.aliases:
            if alias in self._commands and alias != command.name:
                taken.add(alias)
            owner = self._aliases.get(alias)
            if owner is not None and owner != command.name:
                taken.add(alias)
        return taken

    def register(self, command: Command) -> bool:
        """Upsert ``command``; returns False when it collided with another."""
        taken = self.collisions(command)
        if taken:
            inc_counter("registry.collision")
            log.warning(
                "registry.collision",
                command=command.name,
                aliases=list(command.aliases),
                collides_on=sorted(taken),
            )

        previous = self._commands.get(command.name)
        if previous is not None:
            for alias in previous.aliases:
                if self._aliases.get(alias) == previous.name:
                    del self._aliases[alias]
        self._commands[command.name] = command
        for alias in command.aliases:
            self._aliases[alias] = command.name
        log.debug("registry.registered", command=command.name, aliases=list(command.aliases))
        return not taken

    def register_many(self, commands: Iterable[Command]) -> int:
        count = 0
        for command in commands:
            self.register(command)
            count += 1
        return count

    def get(self, name: str) -> Command | None:
        return self._commands.get(name.lower())

    def find(self, name_or_alias: str) -> Command | None:
        key = name_or_alias.lower()
        command = self._commands.get(key)
        if command is not None:
            return command
        owner = self._aliases.get(key)
        return self._commands.get(owner) if owner is not None else None

    def names(self) -> list[str]:
        return list(self._commands)

    def all_commands(self) -> dict[str, Command]:
        return dict(self._commands)
