"""Outbound operations the dispatcher needs from the chat platform."""

from __future__ import annotations

from typing import Any, Protocol

from Harmony.discord_schemas import Interaction, Member, Message, MessagePayload, User


class PlatformAPI(Protocol):
    async def defer_interaction(self, interaction: Interaction, *, ephemeral: bool = False) -> None: ...

    async def followup(
        self, interaction: Interaction, payload: MessagePayload, *, ephemeral: bool = False
    ) -> Message: ...

    async def delete_original_response(self, interaction: Interaction) -> None: ...

    async def reply(self, message: Message, payload: MessagePayload) -> Message: ...

    async def send_dm(self, user: User, payload: MessagePayload) -> Message: ...

    async def delete_message(self, message: Message) -> None: ...

    async def fetch_member(self, guild_id: str, user_id: str) -> Member | None: ...

    async def bulk_overwrite_commands(
        self, application_id: str, commands: list[dict[str, Any]]
    ) -> list[dict[str, Any]]: ...
