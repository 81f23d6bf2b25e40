"""Dispatcher: wires raw platform events to command execution."""

from __future__ import annotations

import os
from collections.abc import Iterable
from types import MappingProxyType, ModuleType
from typing import Any

import structlog

from Harmony.awaitables import maybe_await
from Harmony.command_loader import load_commands_from_package, load_commands_from_path
from Harmony.commanding import Command
from Harmony.config import Settings
from Harmony.cooldowns import CooldownTracker
from Harmony.discord_schemas import Interaction, InteractionType, Message
from Harmony.errors import ArgumentError
from Harmony.events import DispatchEvent, Event, EventBus, EventHandler
from Harmony.interop import Interop
from Harmony.logging import dispatch_context
from Harmony.metrics import inc_counter, timed
from Harmony.middleware import ChainState, Middleware, MiddlewareContext, Next, execute_middleware
from Harmony.permissions import has_permissions
from Harmony.platform import PlatformAPI
from Harmony.plugins import PluginManager
from Harmony.registry import CommandRegistry
from Harmony.resolver import resolve_arguments

log = structlog.get_logger()


class HarmonyClient:
    """Owns every registry a bot needs and dispatches incoming events.

    Nothing raised while handling one interaction or message escapes
    ``handle_interaction`` / ``handle_message``; failures are logged and
    emitted on ``events`` instead.
    """

    def __init__(
        self,
        platform: PlatformAPI,
        *,
        settings: Settings | None = None,
        prefix: str | None = None,
        allow_text_commands: bool | None = None,
        cooldowns: CooldownTracker | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.platform = platform
        self.allow_text_commands = (
            self.settings.allow_text_commands if allow_text_commands is None else allow_text_commands
        )
        self.prefix = prefix if prefix is not None else self.settings.command_prefix
        if self.allow_text_commands and not self.prefix:
            raise ValueError("A command prefix is required when text commands are enabled.")

        self.commands = CommandRegistry()
        self.cooldowns = cooldowns if cooldowns is not None else CooldownTracker()
        self.events = events if events is not None else EventBus()
        self.plugins: dict[str, Any] = {}
        self.pre_execution_middleware: list[Middleware] = []
        self.post_execution_middleware: list[Middleware] = []
        self.plugin_manager = PluginManager(self)

    # --- Registration -----------------------------------------------------

    def on(self, name: DispatchEvent | str, handler: EventHandler | None = None):
        return self.events.on(name, handler)

    def load_commands(self, commands: Iterable[Command]) -> int:
        return self.commands.register_many(commands)

    def load_commands_folder(self, path: str | os.PathLike[str]) -> int:
        return self.load_commands(load_commands_from_path(path))

    def load_commands_package(self, package: str | ModuleType) -> int:
        return self.load_commands(load_commands_from_package(package))

    def register_pre_execution_middleware(self, middleware: Middleware) -> None:
        self.pre_execution_middleware.append(middleware)

    def register_post_execution_middleware(self, middleware: Middleware) -> None:
        self.post_execution_middleware.append(middleware)

    def register_plugin(self, plugin: Any) -> bool:
        """Track a plugin without running its ``init``."""
        if plugin.name in self.plugins:
            log.warning("plugin.already_registered", plugin=plugin.name)
            return False
        self.plugins[plugin.name] = plugin
        log.info("plugin.registered", plugin=plugin.name, version=plugin.version)
        return True

    def unregister_plugin(self, name: str) -> bool:
        if name not in self.plugins:
            log.warning("plugin.not_found", plugin=name)
            return False
        del self.plugins[name]
        log.info("plugin.unregistered", plugin=name)
        return True

    def get_plugin(self, name: str) -> Any | None:
        return self.plugins.get(name)

    async def load_plugins(self, plugins: Iterable[Any] | str | os.PathLike[str]) -> list[str]:
        return await self.plugin_manager.load(plugins)

    async def unload_plugins(self) -> None:
        await self.plugin_manager.unload()

    async def reload_commands(self) -> int:
        """Publish every registered command to the platform."""
        app_id = self.settings.discord_app_id
        if not app_id:
            log.warning("commands.reload_skipped", reason="missing_app_id")
            return 0
        payload = [c.to_application_command() for c in self.commands]
        published = await self.platform.bulk_overwrite_commands(app_id, payload)
        log.info("commands.reloaded", count=len(published))
        return len(published)

    async def start(self) -> None:
        if self.settings.commands_path:
            self.load_commands_folder(self.settings.commands_path)
        if self.settings.plugins_path:
            await self.load_plugins(self.settings.plugins_path)
        if self.settings.reload_commands_on_startup:
            await self.reload_commands()

    async def close(self) -> None:
        await self.unload_plugins()
        self.cooldowns.clear()

    # --- Dispatch ---------------------------------------------------------

    async def handle_interaction(self, interaction: Interaction, *, acknowledged: bool = False) -> None:
        """Dispatch a structured interaction.

        ``acknowledged`` is set when the transport already answered the
        platform with a deferral, so no second deferral is sent.
        """
        try:
            await self._handle_interaction(interaction, acknowledged)
        except Exception as exc:
            await self._dispatch_failed(exc, command_name=interaction.command_name)

    async def handle_message(self, message: Message) -> None:
        try:
            await self._handle_message(message)
        except Exception as exc:
            await self._dispatch_failed(exc, user_id=message.author.id)

    async def _handle_interaction(self, interaction: Interaction, acknowledged: bool) -> None:
        await self._run_interaction_hooks(interaction)
        if not interaction.is_command:
            return

        name = interaction.command_name or ""
        command = self.commands.get(name)
        if command is None:
            user = interaction.user or (interaction.member.user if interaction.member else None)
            log.warning(
                "dispatch.command_not_found",
                command=name,
                user_id=user.id if user else None,
                guild_id=interaction.guild_id,
            )
            await self.events.emit(
                Event(
                    DispatchEvent.COMMAND_NOT_FOUND,
                    command_name=name,
                    user_id=user.id if user else None,
                    guild_id=interaction.guild_id,
                    details={"source": "interaction"},
                )
            )
            return

        if not acknowledged:
            await self.platform.defer_interaction(interaction, ephemeral=command.is_private)

        interop = Interop(interaction, self.platform, command.is_private)
        if not await self._check_context(command, interop):
            return
        args = await self._resolve(command, interaction, interop)
        if args is None:
            return
        await self._execute(command, interop, args)

    async def _handle_message(self, message: Message) -> None:
        await self._run_plugin_hooks("on_message", message)
        if not self.allow_text_commands or not self.prefix or message.author.bot:
            return
        content = message.content.strip()
        if not content.startswith(self.prefix):
            return

        tokens = content[len(self.prefix):].split()
        if not tokens:
            return
        name = tokens.pop(0).lower()

        command = self.commands.find(name)
        if command is None:
            log.info("dispatch.command_not_found", command=name, user_id=message.author.id)
            await self.events.emit(
                Event(
                    DispatchEvent.COMMAND_NOT_FOUND,
                    command_name=name,
                    user_id=message.author.id,
                    guild_id=message.guild_id,
                    details={"source": "message"},
                )
            )
            return

        if command.is_private and message.guild_id:
            # Keep private invocations out of the guild channel
            try:
                await self.platform.delete_message(message)
            except Exception as exc:
                log.warning(
                    "dispatch.private_delete_failed",
                    command=command.name,
                    message_id=message.id,
                    error=str(exc),
                )

        interop = Interop(message, self.platform, command.is_private)
        if not await self._check_context(command, interop):
            return
        args = await self._resolve(command, message, interop, tokens)
        if args is None:
            return
        await self._execute(command, interop, args)

    async def _check_context(self, command: Command, interop: Interop) -> bool:
        if interop.guild_id is None and not command.allowed_in_dm:
            log.warning("dispatch.invalid_context", command=command.name, user_id=interop.user.id)
            await self.events.emit(
                self._event(
                    DispatchEvent.INVALID_CONTEXT,
                    command,
                    interop,
                    details={"reason": "guild_only"},
                )
            )
            return False
        return True

    async def _resolve(
        self,
        command: Command,
        source: Interaction | Message,
        interop: Interop,
        tokens: list[str] | None = None,
    ) -> tuple[Any, ...] | None:
        try:
            return await resolve_arguments(command.options, source, interop, tokens or ())
        except ArgumentError as exc:
            log.info(
                "dispatch.invalid_arguments",
                command=command.name,
                user_id=interop.user.id,
                argument=exc.argument_name,
                reason=str(exc.reason),
            )
            await self.events.emit(
                self._event(
                    DispatchEvent.INVALID_ARGUMENTS,
                    command,
                    interop,
                    error=exc,
                    details={"argument": exc.argument_name, "reason": str(exc.reason)},
                )
            )
            return None

    async def _execute(self, command: Command, interop: Interop, args: tuple[Any, ...]) -> None:
        with dispatch_context(command=command.name, user_id=interop.user.id, guild_id=interop.guild_id):
            await self._gate_and_run(command, interop, args)

    async def _gate_and_run(self, command: Command, interop: Interop, args: tuple[Any, ...]) -> None:
        """Permission and cooldown gates, then the middleware chain."""
        if command.permissions:
            granted = interop.member.permission_bits if interop.member is not None else None
            if granted is None or not has_permissions(granted, command.permissions):
                log.warning(
                    "dispatch.permission_denied",
                    command=command.name,
                    user_id=interop.user.id,
                    guild_id=interop.guild_id,
                )
                await self.events.emit(self._event(DispatchEvent.PERMISSION_DENIED, command, interop))
                return

        status = self.cooldowns.check(command.name, interop.user.id, command.cooldown)
        if status.on_cooldown:
            log.info(
                "dispatch.cooldown_active",
                command=command.name,
                user_id=interop.user.id,
                remaining_seconds=status.remaining_seconds,
            )
            await self.events.emit(
                self._event(
                    DispatchEvent.COOLDOWN_ACTIVE,
                    command,
                    interop,
                    details={"remaining_seconds": status.remaining_seconds},
                )
            )
            return

        plugin_args = await self._collect_plugin_arguments(interop, command)
        context = MiddlewareContext(
            command=command,
            args=args,
            interop=interop,
            client=self,
            plugin_args=MappingProxyType(plugin_args),
        )

        try:
            with timed("dispatch.duration_ms"):
                state = await execute_middleware([*self.pre_execution_middleware, self._run_command], context)
        except Exception as exc:
            log.error("dispatch.middleware_error", command=command.name, stage="pre", exc_info=True)
            await self.events.emit(
                self._event(DispatchEvent.MIDDLEWARE_ERROR, command, interop, error=exc, details={"stage": "pre"})
            )
            return

        if state is ChainState.HALTED:
            inc_counter("dispatch.halted")
            log.info("dispatch.halted", command=command.name, user_id=interop.user.id)
        else:
            inc_counter("dispatch.completed")

    async def _run_command(self, context: MiddlewareContext, next: Next) -> None:
        """Terminal pre-execution step: command body, then the post chain."""
        command, interop = context.command, context.interop
        await self._run_plugin_hooks("on_command_call", interop)

        try:
            await maybe_await(command.execute(self, interop, context.args, context.plugin_args))
        except Exception as exc:
            log.error(
                "dispatch.command_error",
                command=command.name,
                user_id=interop.user.id,
                guild_id=interop.guild_id,
                exc_info=True,
            )
            await self.events.emit(self._event(DispatchEvent.COMMAND_EXECUTION_ERROR, command, interop, error=exc))
        else:
            await self.events.emit(self._event(DispatchEvent.COMMAND_COMPLETED, command, interop))

        try:
            await execute_middleware(self.post_execution_middleware, context)
        except Exception as exc:
            log.error("dispatch.middleware_error", command=command.name, stage="post", exc_info=True)
            await self.events.emit(
                self._event(DispatchEvent.MIDDLEWARE_ERROR, command, interop, error=exc, details={"stage": "post"})
            )

        await next()

    async def _collect_plugin_arguments(self, interop: Interop, command: Command) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for plugin in list(self.plugins.values()):
            provide = getattr(plugin, "provide_command_arguments", None)
            if provide is None:
                continue
            try:
                extra = await maybe_await(provide(interop, command))
            except Exception as exc:
                await self._plugin_hook_failed(plugin, "provide_command_arguments", exc)
                continue
            if extra:
                out[plugin.name] = extra
        return out

    async def _run_plugin_hooks(self, hook: str, *args: Any) -> None:
        for plugin in list(self.plugins.values()):
            fn = getattr(plugin, hook, None)
            if fn is None:
                continue
            try:
                await maybe_await(fn(*args))
            except Exception as exc:
                await self._plugin_hook_failed(plugin, hook, exc)

    async def _run_interaction_hooks(self, interaction: Interaction) -> None:
        if interaction.type == InteractionType.APPLICATION_COMMAND:
            typed = "on_command_interaction"
        elif interaction.is_select_menu:
            typed = "on_menu_interaction"
        elif interaction.is_button:
            typed = "on_button_interaction"
        else:
            typed = None

        for plugin in list(self.plugins.values()):
            hook = typed
            try:
                fn = getattr(plugin, typed, None) if typed else None
                if fn is not None:
                    await maybe_await(fn(interaction))
                hook = "on_interaction"
                fn = getattr(plugin, hook, None)
                if fn is not None:
                    await maybe_await(fn(interaction))
            except Exception as exc:
                await self._plugin_hook_failed(plugin, hook, exc)

    async def _plugin_hook_failed(self, plugin: Any, hook: str, exc: Exception) -> None:
        log.error("plugin.hook_failed", plugin=plugin.name, hook=hook, exc_info=True)
        await self.events.emit(
            Event(DispatchEvent.PLUGIN_ERROR, plugin_name=plugin.name, error=exc, details={"hook": hook})
        )

    async def _dispatch_failed(self, exc: Exception, **fields: Any) -> None:
        log.error("dispatch.unexpected_error", exc_info=True, **fields)
        await self.events.emit(Event(DispatchEvent.DISPATCH_ERROR, error=exc, **fields))

    @staticmethod
    def _event(
        name: DispatchEvent,
        command: Command,
        interop: Interop,
        *,
        error: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> Event:
        return Event(
            name,
            command_name=command.name,
            user_id=interop.user.id,
            guild_id=interop.guild_id,
            command=command,
            interop=interop,
            error=error,
            details=details or {},
        )
