"""Exception taxonomy for command dispatch and plugin loading."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class HarmonyError(Exception):
    """Base class for every error raised by Harmony."""


class CommandDefinitionError(HarmonyError, ValueError):
    """A command or option was declared with an invalid shape.

    Raised synchronously at construction time; these are programmer errors.
    """


class UnsupportedSourceError(HarmonyError, TypeError):
    """A raw input was neither an interaction nor a message."""


class InteropPolicyError(HarmonyError):
    """An operation is not available for this execution context."""


class ArgumentReason(StrEnum):
    MISSING_ARGUMENT = "missing_argument"
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    WRONG_KIND = "wrong_kind"
    VALIDATION_FAILED = "validation_failed"


class ArgumentError(HarmonyError):
    """Resolution of a single option failed."""

    def __init__(self, argument_name: str, reason: ArgumentReason, detail: str | None = None):
        self.argument_name = argument_name
        self.reason = ArgumentReason(reason)
        self.detail = detail or self.reason.value.replace("_", " ")
        super().__init__(f'Error with argument "{argument_name}": {self.detail}')


class PluginError(HarmonyError):
    pass


class PluginDependencyCycleError(PluginError):
    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class PluginDependencyError(PluginError):
    def __init__(self, plugin_name: str, missing: list[Any]):
        self.plugin_name = plugin_name
        self.missing = list(missing)
        names = ", ".join(f'"{getattr(dep, "name", dep)}"' for dep in self.missing)
        super().__init__(
            f'Plugin "{plugin_name}" has missing or incompatible dependencies: {names}'
        )
