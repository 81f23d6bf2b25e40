# discord_schemas.py

from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

from Harmony.permissions import Permission, parse_bitfield

DISCORD_EPOCH_MS = 1420070400000


def snowflake_time(snowflake: str | int) -> datetime:
    """Creation time encoded in the upper bits of a platform id."""
    ms = (int(snowflake) >> 22) + DISCORD_EPOCH_MS
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class ChannelType(IntEnum):
    GUILD_TEXT = 0
    DM = 1
    GUILD_VOICE = 2
    GROUP_DM = 3
    GUILD_CATEGORY = 4
    GUILD_ANNOUNCEMENT = 5
    GUILD_STAGE_VOICE = 13


TEXT_CHANNEL_TYPES = frozenset({ChannelType.GUILD_TEXT, ChannelType.GUILD_ANNOUNCEMENT})
VOICE_CHANNEL_TYPES = frozenset({ChannelType.GUILD_VOICE, ChannelType.GUILD_STAGE_VOICE})


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    APPLICATION_COMMAND_AUTOCOMPLETE = 4
    MODAL_SUBMIT = 5


class ComponentType(IntEnum):
    ACTION_ROW = 1
    BUTTON = 2
    STRING_SELECT = 3
    TEXT_INPUT = 4
    USER_SELECT = 5
    ROLE_SELECT = 6
    MENTIONABLE_SELECT = 7
    CHANNEL_SELECT = 8


SELECT_MENU_TYPES = frozenset(
    {
        ComponentType.STRING_SELECT,
        ComponentType.USER_SELECT,
        ComponentType.ROLE_SELECT,
        ComponentType.MENTIONABLE_SELECT,
        ComponentType.CHANNEL_SELECT,
    }
)


class User(BaseModel):
    id: str
    username: str | None = None
    discriminator: str | None = None
    avatar: str | None = None
    global_name: str | None = None
    bot: bool = False


class Member(BaseModel):
    user: User | None = None
    nick: str | None = None
    roles: list[str] = Field(default_factory=list)
    joined_at: str | None = None
    # Computed permission bitfield as a decimal string
    permissions: str | None = None

    @property
    def id(self) -> str | None:
        return self.user.id if self.user else None

    @property
    def permission_bits(self) -> Permission:
        return parse_bitfield(self.permissions)


class Channel(BaseModel):
    id: str
    guild_id: str | None = None
    name: str | None = None
    type: int = ChannelType.GUILD_TEXT

    @property
    def is_text(self) -> bool:
        return self.type in TEXT_CHANNEL_TYPES

    @property
    def is_voice(self) -> bool:
        return self.type in VOICE_CHANNEL_TYPES


class Guild(BaseModel):
    id: str
    name: str | None = None
    locale: str | None = None
    features: list[str] = Field(default_factory=list)
    # Cached entities delivered by the gateway
    members: list[Member] = Field(default_factory=list)
    channels: list[Channel] = Field(default_factory=list)

    def get_member(self, user_id: str) -> Member | None:
        for member in self.members:
            if member.user is not None and member.user.id == user_id:
                return member
        return None

    def get_channel(self, channel_id: str) -> Channel | None:
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        return None


class ResolvedData(BaseModel):
    users: dict[str, User] = Field(default_factory=dict)
    members: dict[str, Member] = Field(default_factory=dict)
    channels: dict[str, Channel] = Field(default_factory=dict)

    def member(self, user_id: str) -> Member | None:
        member = self.members.get(user_id)
        if member is None:
            return None
        if member.user is None and user_id in self.users:
            # Resolved members omit the user object; stitch it back on
            return member.model_copy(update={"user": self.users[user_id]})
        return member


class InteractionDataOption(BaseModel):
    name: str
    type: int
    value: Any = None
    options: list[InteractionDataOption] | None = None
    focused: bool | None = None


class InteractionData(BaseModel):
    id: str | None = None
    name: str | None = None
    type: int | None = None
    options: list[InteractionDataOption] | None = None
    resolved: ResolvedData | None = None
    custom_id: str | None = None
    component_type: int | None = None
    values: list[str] | None = None


class Interaction(BaseModel):
    id: str
    type: int
    token: str
    application_id: str
    data: InteractionData | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    member: Member | None = None
    user: User | None = None
    guild: Guild | None = None
    channel: Channel | None = None

    @property
    def author(self) -> User:
        if self.user is not None:
            return self.user
        if self.member is not None and self.member.user is not None:
            return self.member.user
        raise ValueError(f"interaction {self.id} carries no user")

    @property
    def created_at(self) -> datetime:
        return snowflake_time(self.id)

    @property
    def is_command(self) -> bool:
        return (
            self.type == InteractionType.APPLICATION_COMMAND
            and self.data is not None
            and bool(self.data.name)
        )

    @property
    def is_button(self) -> bool:
        return self._component_type() == ComponentType.BUTTON

    @property
    def is_select_menu(self) -> bool:
        return self._component_type() in SELECT_MENU_TYPES

    def _component_type(self) -> int | None:
        if self.type != InteractionType.MESSAGE_COMPONENT or self.data is None:
            return None
        return self.data.component_type

    @property
    def command_name(self) -> str | None:
        if self.data is None or self.data.name is None:
            return None
        return self.data.name.lower()

    def get_option(self, name: str) -> InteractionDataOption | None:
        opts = (self.data.options if self.data else None) or []
        # Flatten a single subcommand level
        if opts and opts[0].type == 1:
            opts = opts[0].options or []
        for opt in opts:
            if opt.name.lower() == name:
                return opt
        return None


class Message(BaseModel):
    id: str
    channel_id: str
    author: User
    content: str = ""
    guild_id: str | None = None
    member: Member | None = None
    guild: Guild | None = None
    channel: Channel | None = None
    timestamp: datetime | None = None

    @property
    def created_at(self) -> datetime:
        return self.timestamp or snowflake_time(self.id)


class MessagePayload(BaseModel):
    content: str | None = None
    embeds: list[dict[str, Any]] = Field(default_factory=list)
    components: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def coerce(cls, value: MessagePayload | str | dict[str, Any]) -> MessagePayload:
        if isinstance(value, MessagePayload):
            return value
        if isinstance(value, str):
            return cls(content=value)
        return cls.model_validate(value)

    def to_json(self, *, ephemeral: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = self.model_dump(exclude_none=True)
        if not out.get("embeds"):
            out.pop("embeds", None)
        if not out.get("components"):
            out.pop("components", None)
        if ephemeral:
            out["flags"] = 64
        return out


class DeferResponse(BaseModel):
    type: int = 5  # DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE
    data: dict[str, Any] | None = None


class PongResponse(BaseModel):
    type: int = 1  # PONG for pings (type 1)
