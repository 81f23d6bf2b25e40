"""Harmony public exports."""  # noqa: N999

from .client import HarmonyClient
from .commanding import Choice, Command, CommandBuilder, CommandOption, OptionType, slash_command
from .cooldowns import CooldownStatus, CooldownTracker
from .errors import (
    ArgumentError,
    ArgumentReason,
    CommandDefinitionError,
    HarmonyError,
    InteropPolicyError,
    PluginDependencyCycleError,
    PluginDependencyError,
    PluginError,
    UnsupportedSourceError,
)
from .events import DispatchEvent, Event, EventBus
from .interop import Interop
from .middleware import ChainState, MiddlewareChain, MiddlewareContext, execute_middleware
from .permissions import Permission
from .plugins import Plugin, PluginDependency, PluginManager, topological_sort
from .registry import CommandRegistry
from .resolver import resolve_arguments

__all__ = [
    "ArgumentError",
    "ArgumentReason",
    "ChainState",
    "Choice",
    "Command",
    "CommandBuilder",
    "CommandDefinitionError",
    "CommandOption",
    "CommandRegistry",
    "CooldownStatus",
    "CooldownTracker",
    "DispatchEvent",
    "Event",
    "EventBus",
    "HarmonyClient",
    "HarmonyError",
    "Interop",
    "InteropPolicyError",
    "MiddlewareChain",
    "MiddlewareContext",
    "OptionType",
    "Permission",
    "Plugin",
    "PluginDependency",
    "PluginDependencyCycleError",
    "PluginDependencyError",
    "PluginError",
    "PluginManager",
    "UnsupportedSourceError",
    "execute_middleware",
    "resolve_arguments",
    "slash_command",
]
