"""Uniform execution context over the two raw input shapes."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from Harmony.discord_schemas import (
    Channel,
    Guild,
    Interaction,
    Member,
    Message,
    MessagePayload,
    User,
)
from Harmony.errors import InteropPolicyError, UnsupportedSourceError
from Harmony.platform import PlatformAPI

log = structlog.get_logger()


class Interop:
    """Wraps exactly one ``Interaction`` or ``Message``.

    Identity fields are derived once at construction. ``is_private`` is fixed
    for the lifetime of the context and removes the ability to delete the
    response; check ``can_delete`` before calling ``delete``.
    """

    __slots__ = (
        "_source",
        "_platform",
        "is_private",
        "user",
        "member",
        "guild",
        "channel",
        "created_at",
    )

    def __init__(
        self,
        source: Interaction | Message,
        platform: PlatformAPI,
        is_private: bool = False,
    ) -> None:
        match source:
            case Interaction():
                user: User = source.author
            case Message():
                user = source.author
            case _:
                raise UnsupportedSourceError(
                    "Interop expects an Interaction or a Message as its source."
                )

        self._source = source
        self._platform = platform
        self.is_private: bool = bool(is_private)
        self.user: User = user
        self.guild: Guild | None = source.guild
        self.channel: Channel | None = source.channel
        member = self.guild.get_member(user.id) if self.guild is not None else None
        # Transports that carry no member cache attach the invoking member directly
        self.member: Member | None = member or source.member
        # Assigned last: once set, the context is frozen
        self.created_at: datetime = source.created_at

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "created_at"):
            raise AttributeError(f"Interop is read-only; cannot set {name}")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        kind = "interaction" if self.is_interaction else "message"
        return f"Interop({kind}={self._source.id}, user={self.user.id}, private={self.is_private})"

    @property
    def source(self) -> Interaction | Message:
        return self._source

    @property
    def platform(self) -> PlatformAPI:
        return self._platform

    @property
    def is_interaction(self) -> bool:
        return isinstance(self._source, Interaction)

    @property
    def guild_id(self) -> str | None:
        if self._source.guild_id:
            return self._source.guild_id
        return self.guild.id if self.guild is not None else None

    @property
    def channel_id(self) -> str | None:
        if self._source.channel_id:
            return self._source.channel_id
        return self.channel.id if self.channel is not None else None

    @property
    def can_delete(self) -> bool:
        return not self.is_private

    async def follow_up(self, payload: MessagePayload | str | dict[str, Any]) -> Interop:
        """Send a response and return a context wrapping the sent message."""
        body = MessagePayload.coerce(payload)
        match self._source:
            case Interaction() as interaction:
                sent = await self._platform.followup(interaction, body, ephemeral=self.is_private)
            case Message() if self.is_private:
                sent = await self._platform.send_dm(self.user, body)
            case Message() as message:
                sent = await self._platform.reply(message, body)
        log.debug("interop.follow_up", source_id=self._source.id, sent_id=sent.id)
        return Interop(sent, self._platform, self.is_private)

    async def delete(self) -> None:
        if self.is_private:
            raise InteropPolicyError("Delete is not available for private responses.")
        match self._source:
            case Interaction() as interaction:
                await self._platform.delete_original_response(interaction)
            case Message() as message:
                await self._platform.delete_message(message)
