"""Plugin contract and the dependency-ordered plugin loader."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from semantic_version import NpmSpec, Version

from Harmony.awaitables import maybe_await
from Harmony.command_loader import import_module_from_path, module_files
from Harmony.errors import PluginDependencyCycleError, PluginDependencyError
from Harmony.events import DispatchEvent, Event
from Harmony.metrics import inc_counter

if TYPE_CHECKING:
    from Harmony.client import HarmonyClient
    from Harmony.commanding import Command
    from Harmony.middleware import Middleware

log = structlog.get_logger()


@dataclass(frozen=True)
class PluginDependency:
    """A required plugin and the versions accepted.

    ``version`` is an npm-style semver range such as ``"^1.2.0"``, ``"~1.2"``,
    ``"1.x"`` or ``">=1.0.0 <2.0.0"``; ``"*"`` or an empty string accepts any
    version.
    """

    name: str
    version: str = "*"

    def is_satisfied_by(self, version: str | None) -> bool:
        if version is None:
            return False
        wanted = (self.version or "").strip()
        if wanted in ("", "*"):
            return True
        try:
            return NpmSpec(wanted).match(Version(version))
        except ValueError:
            log.warning(
                "plugin.dependency.unparseable",
                dependency=self.name,
                required=self.version,
                found=version,
            )
            return False


class Plugin:
    """Convenience base for plugins.

    Any object with a string ``name``, a string ``version`` and a callable
    ``init`` is accepted as a plugin; the remaining attributes and hooks are
    optional.
    """

    name: str = ""
    version: str = "0.0.0"
    dependencies: Sequence[PluginDependency] = ()
    commands: Sequence[Command] = ()
    pre_middleware: Sequence[Middleware] = ()
    post_middleware: Sequence[Middleware] = ()

    async def init(self, client: HarmonyClient) -> None:
        return None


def is_valid_plugin(candidate: Any) -> bool:
    return (
        candidate is not None
        and isinstance(getattr(candidate, "name", None), str)
        and bool(getattr(candidate, "name", ""))
        and isinstance(getattr(candidate, "version", None), str)
        and callable(getattr(candidate, "init", None))
    )


def plugin_dependencies(plugin: Any) -> list[PluginDependency]:
    out: list[PluginDependency] = []
    for dep in getattr(plugin, "dependencies", None) or ():
        if isinstance(dep, PluginDependency):
            out.append(dep)
        elif isinstance(dep, Mapping):
            out.append(PluginDependency(name=dep["name"], version=dep.get("version", "*")))
        else:
            out.append(PluginDependency(name=str(dep)))
    return out


def topological_sort(graph: Mapping[str, Sequence[str]]) -> list[str]:
    """Order nodes so every node follows its dependencies.

    Nodes referenced only as dependencies are included too. Raises
    ``PluginDependencyCycleError`` naming the cycle in visiting order.
    """
    ordered: list[str] = []
    done: set[str] = set()
    stack: list[str] = []
    on_stack: set[str] = set()

    def visit(node: str) -> None:
        if node in on_stack:
            raise PluginDependencyCycleError(stack[stack.index(node):] + [node])
        if node in done:
            return
        stack.append(node)
        on_stack.add(node)
        for dep in graph.get(node, ()):
            visit(dep)
        stack.pop()
        on_stack.discard(node)
        done.add(node)
        ordered.append(node)

    for node in graph:
        visit(node)
    return ordered


class PluginManager:
    def __init__(self, client: HarmonyClient) -> None:
        self._client = client
        self._versions: dict[str, str] = {}

    @property
    def loaded_versions(self) -> dict[str, str]:
        return dict(self._versions)

    async def load(self, plugins: Iterable[Any] | str | os.PathLike[str]) -> list[str]:
        """Load a batch of plugins; returns the names initialized, in order."""
        if isinstance(plugins, (str, os.PathLike)):
            candidates = await self._discover(Path(plugins))
        else:
            candidates = list(plugins)

        valid: list[Any] = []
        for candidate in candidates:
            if not is_valid_plugin(candidate):
                inc_counter("plugin.invalid")
                log.warning("plugin.invalid_structure", candidate=repr(candidate)[:200])
                continue
            valid.append(candidate)
        return await self._resolve_and_load(valid)

    async def _discover(self, folder: Path) -> list[Any]:
        found: list[Any] = []
        for file in module_files(folder):
            try:
                module = import_module_from_path(file, "harmony_plugins")
            except Exception as exc:
                log.error("plugin.import_failed", file=str(file), exc_info=True)
                await self._client.events.emit(
                    Event(
                        DispatchEvent.PLUGIN_LOAD_ERROR,
                        error=exc,
                        details={"file": str(file)},
                    )
                )
                continue
            found.append(getattr(module, "plugin", module))
        return found

    async def _resolve_and_load(self, plugins: list[Any]) -> list[str]:
        by_name: dict[str, Any] = {}
        for plugin in plugins:
            if plugin.name in by_name:
                log.warning("plugin.duplicate_in_batch", plugin=plugin.name)
            by_name[plugin.name] = plugin

        graph = {name: [d.name for d in plugin_dependencies(p)] for name, p in by_name.items()}
        try:
            order = topological_sort(graph)
        except PluginDependencyCycleError as exc:
            inc_counter("plugin.dependency_cycle")
            log.error("plugin.dependency_cycle", cycle=exc.cycle)
            await self._client.events.emit(
                Event(
                    DispatchEvent.PLUGIN_DEPENDENCY_ERROR,
                    error=exc,
                    details={"cycle": list(exc.cycle)},
                )
            )
            return []

        loaded: list[str] = []
        for name in order:
            plugin = by_name.get(name)
            if plugin is None:
                continue
            missing = [
                dep
                for dep in plugin_dependencies(plugin)
                if not dep.is_satisfied_by(self._versions.get(dep.name))
            ]
            if missing:
                error = PluginDependencyError(plugin.name, missing)
                inc_counter("plugin.dependency_unsatisfied")
                log.error(
                    "plugin.dependency_unsatisfied",
                    plugin=plugin.name,
                    missing=[f"{d.name} {d.version}" for d in missing],
                )
                await self._client.events.emit(
                    Event(
                        DispatchEvent.PLUGIN_DEPENDENCY_ERROR,
                        plugin_name=plugin.name,
                        error=error,
                        details={"dependencies": [(d.name, d.version) for d in missing]},
                    )
                )
                continue
            if await self.load_plugin(plugin):
                loaded.append(plugin.name)
        return loaded

    async def load_plugin(self, plugin: Any) -> bool:
        """Initialize one plugin and register what it contributes."""
        if not is_valid_plugin(plugin):
            log.warning("plugin.invalid_structure", candidate=repr(plugin)[:200])
            return False
        if plugin.name in self._client.plugins:
            log.warning("plugin.already_loaded", plugin=plugin.name)
            return False

        try:
            await maybe_await(plugin.init(self._client))
            self._client.plugins[plugin.name] = plugin

            commands = list(getattr(plugin, "commands", None) or ())
            if commands:
                self._client.load_commands(commands)
                log.info("plugin.commands_loaded", plugin=plugin.name, count=len(commands))

            pre = list(getattr(plugin, "pre_middleware", None) or ())
            for mw in pre:
                self._client.register_pre_execution_middleware(mw)
            post = list(getattr(plugin, "post_middleware", None) or ())
            for mw in post:
                self._client.register_post_execution_middleware(mw)
            if pre or post:
                log.info("plugin.middleware_registered", plugin=plugin.name, pre=len(pre), post=len(post))

            self._versions[plugin.name] = plugin.version
        except Exception as exc:
            self._client.plugins.pop(plugin.name, None)
            inc_counter("plugin.init_failed")
            log.error("plugin.init_failed", plugin=plugin.name, exc_info=True)
            await self._client.events.emit(
                Event(DispatchEvent.PLUGIN_INIT_ERROR, plugin_name=plugin.name, error=exc)
            )
            return False

        inc_counter("plugin.loaded")
        log.info("plugin.loaded", plugin=plugin.name, version=plugin.version)
        return True

    async def unload(self) -> None:
        """Destroy every live plugin; one failure never stops the pass."""
        for plugin in list(self._client.plugins.values()):
            destroy = getattr(plugin, "destroy", None)
            if destroy is None:
                continue
            try:
                await maybe_await(destroy())
                log.info("plugin.unloaded", plugin=plugin.name)
            except Exception as exc:
                log.error("plugin.destroy_failed", plugin=plugin.name, exc_info=True)
                await self._client.events.emit(
                    Event(
                        DispatchEvent.PLUGIN_ERROR,
                        plugin_name=plugin.name,
                        error=exc,
                        details={"hook": "destroy"},
                    )
                )
        self._client.plugins.clear()
        self._versions.clear()
