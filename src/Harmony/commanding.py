# src/Harmony/commanding.py
from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from Harmony.discord_schemas import ChannelType
from Harmony.errors import CommandDefinitionError
from Harmony.permissions import Permission, combine, permission_names

if TYPE_CHECKING:
    from Harmony.client import HarmonyClient
    from Harmony.interop import Interop


class OptionType(StrEnum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    USER = "USER"
    TEXT_CHANNEL = "TEXT_CHANNEL"
    VOICE_CHANNEL = "VOICE_CHANNEL"


CHOICE_TYPES = frozenset({OptionType.STRING, OptionType.NUMBER, OptionType.INTEGER})
CHANNEL_TYPES = frozenset({OptionType.TEXT_CHANNEL, OptionType.VOICE_CHANNEL})

# Application command option type codes
_API_OPTION_TYPES: dict[OptionType, int] = {
    OptionType.STRING: 3,
    OptionType.INTEGER: 4,
    OptionType.BOOLEAN: 5,
    OptionType.USER: 6,
    OptionType.TEXT_CHANNEL: 7,
    OptionType.VOICE_CHANNEL: 7,
    OptionType.NUMBER: 10,
}

# Interaction context types: guild, bot DM, private channel
_CONTEXT_GUILD = 0
_CONTEXT_BOT_DM = 1
_CONTEXT_PRIVATE_CHANNEL = 2

HELP_EMBED_COLOR = 0x7289DA

Validator = Callable[[Any, "Interop"], "bool | Awaitable[bool]"]
CommandExecutor = Callable[
    ["HarmonyClient", "Interop", tuple[Any, ...], Mapping[str, Any]], "Awaitable[None] | None"
]


@dataclass(frozen=True)
class Choice:
    name: str
    value: str | int | float


@dataclass(frozen=True)
class CommandOption:
    """One expected argument of a command.

    ``default`` is either a static value or a callable taking the execution
    context; it is evaluated lazily, only when the option is not supplied.
    Required options never carry a default.
    """

    name: str
    type: OptionType
    description: str = ""
    required: bool = False
    default: Any = None
    choices: tuple[Choice, ...] = ()
    collect: bool = False
    validate: Validator | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise CommandDefinitionError("Option name must be at least one character long.")
        object.__setattr__(self, "name", self.name.lower())
        try:
            object.__setattr__(self, "type", OptionType(self.type))
        except ValueError as exc:
            raise CommandDefinitionError(
                f"Invalid option type {self.type!r} for option: {self.name}"
            ) from exc
        if self.required and self.default is not None:
            raise CommandDefinitionError(
                f"Required option {self.name} cannot declare a default value."
            )
        choices = tuple(
            c if isinstance(c, Choice) else Choice(name=c["name"], value=c["value"])
            for c in self.choices or ()
        )
        if choices and self.type not in CHOICE_TYPES:
            raise CommandDefinitionError(
                f"Choices are only valid for STRING, INTEGER, or NUMBER types. Option: {self.name}"
            )
        object.__setattr__(self, "choices", choices)
        if self.collect and self.type is not OptionType.STRING:
            raise CommandDefinitionError(f"Only STRING options can collect. Option: {self.name}")
        if self.validate is not None and not callable(self.validate):
            raise CommandDefinitionError(f"Validator for option {self.name} is not callable.")

    def resolve_default(self, interop: Interop) -> Any:
        if callable(self.default):
            return self.default(interop)
        return self.default

    def to_application_option(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": _API_OPTION_TYPES[self.type],
            "name": self.name,
            "description": self.description or self.name,
            "required": self.required,
        }
        if self.type is OptionType.TEXT_CHANNEL:
            out["channel_types"] = [int(ChannelType.GUILD_TEXT)]
        elif self.type is OptionType.VOICE_CHANNEL:
            out["channel_types"] = [int(ChannelType.GUILD_VOICE)]
        if self.choices:
            out["choices"] = [{"name": c.name, "value": c.value} for c in self.choices]
        return out


def _as_option(value: CommandOption | Mapping[str, Any]) -> CommandOption:
    if isinstance(value, CommandOption):
        return value
    if isinstance(value, Mapping):
        data = dict(value)
        if "defaultValue" in data:
            data["default"] = data.pop("defaultValue")
        return CommandOption(**data)
    raise CommandDefinitionError(f"Invalid option declaration: {value!r}")


@dataclass(frozen=True, eq=False)
class Command:
    """An immutable command definition.

    All validation happens here, at construction; a built command is never
    re-checked during dispatch.
    """

    name: str
    execute: CommandExecutor
    description: str = ""
    options: tuple[CommandOption, ...] = ()
    aliases: tuple[str, ...] = ()
    category: str = "Miscellaneous"
    cooldown: float = 0
    permissions: Permission = Permission.NONE
    is_private: bool = False
    allowed_in_dm: bool = False
    usage: str | None = None

    def __post_init__(self) -> None:
        name = (self.name or "").strip().lower()
        if len(name) < 1:
            raise CommandDefinitionError(
                "Command name must be at least one character long."
            )
        object.__setattr__(self, "name", name)
        if not callable(self.execute):
            raise CommandDefinitionError(f"Command {name} has no callable executor.")
        if self.cooldown is None or self.cooldown < 0:
            raise CommandDefinitionError(f"Cooldown must be a non-negative number. Command: {name}")

        aliases = tuple(dict.fromkeys(a.strip().lower() for a in self.aliases or () if a.strip()))
        object.__setattr__(self, "aliases", tuple(a for a in aliases if a != name))

        try:
            object.__setattr__(self, "permissions", combine(self.permissions))
        except (TypeError, ValueError) as exc:
            raise CommandDefinitionError(f"Invalid permissions for command: {name}") from exc

        options = tuple(_as_option(o) for o in self.options or ())
        seen: set[str] = set()
        for index, option in enumerate(options):
            if option.name in seen:
                raise CommandDefinitionError(
                    f"Duplicate option name {option.name} in command: {name}"
                )
            seen.add(option.name)
            if option.collect and index != len(options) - 1:
                raise CommandDefinitionError(
                    f"Collecting option {option.name} must be the last option. Command: {name}"
                )
            if option.type in CHANNEL_TYPES and self.allowed_in_dm:
                raise CommandDefinitionError(
                    f"Channel options are guild-only. Command: {name}, Option: {option.name}"
                )
        object.__setattr__(self, "options", options)

    @property
    def all_names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def usage_string(self) -> str:
        if self.usage:
            return self.usage
        parts = [f"/{self.name}"]
        for option in self.options:
            if option.required:
                kind = " | ".join(str(c.value) for c in option.choices) or option.type.value
                parts.append(f"{{{option.name}: {kind}}}")
            else:
                parts.append(f"[{option.name}: {option.type.value}]")
        return " ".join(parts)

    def get_help(self, embed: bool = False) -> str | dict[str, Any]:
        """Describe the command as markdown, or as an embed dict when ``embed`` is set."""
        cooldown = f"{self.cooldown:g} seconds" if self.cooldown else "None"
        if embed:
            required = ", ".join(f"`{p}`" for p in permission_names(self.permissions))
            return {
                "title": f"Help: /{self.name}",
                "description": self.description or "No description available",
                "fields": [
                    {"name": "Usage", "value": self.usage_string(), "inline": True},
                    {"name": "Aliases", "value": ", ".join(self.aliases) or "None", "inline": True},
                    {"name": "Cooldown", "value": cooldown, "inline": True},
                    {"name": "Required Permissions", "value": required or "None", "inline": False},
                ],
                "color": HELP_EMBED_COLOR,
            }

        perms = ", ".join(permission_names(self.permissions)) or "None"
        lines = [
            f"**/{self.name}** - {self.description or 'No description available'}",
            f"**Usage:** {self.usage_string()}",
            f"**Aliases:** {', '.join(self.aliases) or 'None'}",
            f"**Cooldown:** {cooldown}",
            f"**Permissions:** {perms}",
        ]
        return "\n".join(lines)

    def to_application_command(self) -> dict[str, Any]:
        contexts = [_CONTEXT_GUILD]
        if self.allowed_in_dm:
            contexts += [_CONTEXT_BOT_DM, _CONTEXT_PRIVATE_CHANNEL]
        return {
            "type": 1,
            "name": self.name,
            "description": self.description or self.name,
            "options": [o.to_application_option() for o in self.options],
            "default_member_permissions": str(int(self.permissions)) if self.permissions else None,
            "contexts": contexts,
        }


class CommandBuilder:
    """Fluent alternative to constructing ``Command`` directly."""

    def __init__(self) -> None:
        self._name: str | None = None
        self._description: str | None = None
        self._category: str = "Miscellaneous"
        self._aliases: list[str] = []
        self._cooldown: float = 0
        self._private = False
        self._permissions: list[Permission] = []
        self._in_dm = False
        self._options: list[CommandOption] = []
        self._execute: CommandExecutor | None = None
        self._usage: str | None = None

    def set_name(self, name: str) -> CommandBuilder:
        if not name:
            raise CommandDefinitionError("Command name must be at least one character long.")
        self._name = name.lower()
        return self

    def set_description(self, description: str) -> CommandBuilder:
        if not description:
            raise CommandDefinitionError(
                "Command description must be at least one character long."
            )
        self._description = description
        return self

    def set_category(self, category: str) -> CommandBuilder:
        self._category = category
        return self

    def set_usage(self, usage: str) -> CommandBuilder:
        self._usage = usage
        return self

    def set_aliases(self, aliases: Iterable[str]) -> CommandBuilder:
        self._aliases = list(aliases)
        return self

    def add_alias(self, alias: str) -> CommandBuilder:
        self._aliases.append(alias)
        return self

    def set_cooldown(self, cooldown: float) -> CommandBuilder:
        if cooldown < 0:
            raise CommandDefinitionError("Cooldown must be a non-negative number.")
        self._cooldown = cooldown
        return self

    def set_private(self, is_private: bool) -> CommandBuilder:
        self._private = is_private
        return self

    def set_permissions(self, permissions: Iterable[Permission]) -> CommandBuilder:
        self._permissions = list(permissions)
        return self

    def add_permission(self, permission: Permission) -> CommandBuilder:
        if not permission:
            raise CommandDefinitionError("Invalid permission.")
        if permission not in self._permissions:
            self._permissions.append(permission)
        return self

    def set_in_dm(self, in_dm: bool) -> CommandBuilder:
        self._in_dm = in_dm
        return self

    def add_option(self, option: CommandOption | Mapping[str, Any]) -> CommandBuilder:
        self._options.append(_as_option(option))
        return self

    def set_executor(self, executor: CommandExecutor) -> CommandBuilder:
        self._execute = executor
        return self

    def build(self) -> Command:
        if not self._name or not self._description or self._execute is None:
            raise CommandDefinitionError(
                "Missing required properties: name, description, or execute function."
            )
        return Command(
            name=self._name,
            description=self._description,
            execute=self._execute,
            options=tuple(self._options),
            aliases=tuple(self._aliases),
            category=self._category,
            cooldown=self._cooldown,
            permissions=combine(self._permissions),
            is_private=self._private,
            allowed_in_dm=self._in_dm,
            usage=self._usage,
        )


def slash_command(
    name: str,
    description: str,
    options: Iterable[CommandOption | Mapping[str, Any]] = (),
    **kwargs: Any,
) -> Callable[[CommandExecutor], Command]:
    """Declare a command from its handler function.

    The decorated name is bound to the resulting ``Command``, which is what
    the command loader picks up from a module.
    """

    def wrap(func: CommandExecutor) -> Command:
        return Command(
            name=name,
            description=description,
            execute=func,
            options=tuple(options),
            **kwargs,
        )

    return wrap
