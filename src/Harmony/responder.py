from __future__ import annotations

from typing import Any

import httpx
import orjson
import structlog
from fastapi import Response

from Harmony.config import Settings
from Harmony.discord_schemas import Interaction, Member, Message, MessagePayload, User

__all__ = [
    "RestPlatformAPI",
    "orjson_response",
    "respond_pong",
    "respond_deferred",
    "respond_deferred_update",
]

log = structlog.get_logger()

EPHEMERAL_FLAG = 64


def orjson_response(data: dict) -> Response:
    return Response(content=orjson.dumps(data), media_type="application/json")


def respond_pong() -> Response:
    return orjson_response({"type": 1})


def respond_deferred(ephemeral: bool = False) -> Response:
    body: dict[str, Any] = {"type": 5}
    if ephemeral:
        body["data"] = {"flags": EPHEMERAL_FLAG}
    return orjson_response(body)


def respond_deferred_update() -> Response:
    return orjson_response({"type": 6})


class RestPlatformAPI:
    """PlatformAPI over the platform's REST endpoints.

    A caller-supplied ``httpx.AsyncClient`` is used as-is (tests pass one with a
    mock transport); otherwise a client is created lazily and closed by
    ``aclose()``.
    """

    def __init__(self, settings: Settings, *, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            token = self._settings.discord_bot_token
            if token is not None:
                headers["Authorization"] = f"Bot {token.get_secret_value()}"
            self._client = httpx.AsyncClient(
                base_url=self._settings.discord_api_base_url.rstrip("/"),
                headers=headers,
                timeout=self._settings.discord_request_timeout_seconds,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, body: Any = None) -> httpx.Response:
        content = orjson.dumps(body) if body is not None else None
        try:
            r = await self._http().request(
                method, url, content=content, headers={"Content-Type": "application/json"}
            )
            r.raise_for_status()
        except httpx.RequestError as e:
            log.error("platform.network_error", method=method, url=url, error=str(e))
            raise
        except httpx.HTTPStatusError as e:
            log.error(
                "platform.http_error",
                method=method,
                url=url,
                http_status_code=e.response.status_code,
                text_preview=(e.response.text or "")[:200],
            )
            raise
        log.debug("platform.request", method=method, url=url, http_status_code=r.status_code)
        return r

    async def defer_interaction(self, interaction: Interaction, *, ephemeral: bool = False) -> None:
        body: dict[str, Any] = {"type": 5}
        if ephemeral:
            body["data"] = {"flags": EPHEMERAL_FLAG}
        await self._request(
            "POST", f"/interactions/{interaction.id}/{interaction.token}/callback", body
        )

    async def followup(
        self, interaction: Interaction, payload: MessagePayload, *, ephemeral: bool = False
    ) -> Message:
        url = f"/webhooks/{interaction.application_id}/{interaction.token}?wait=true"
        log.info(
            "discord.followup.send",
            ephemeral=ephemeral,
            content_len=len(payload.content or ""),
        )
        r = await self._request("POST", url, payload.to_json(ephemeral=ephemeral))
        return self._message(r, guild_id=interaction.guild_id)

    async def delete_original_response(self, interaction: Interaction) -> None:
        await self._request(
            "DELETE",
            f"/webhooks/{interaction.application_id}/{interaction.token}/messages/@original",
        )

    async def reply(self, message: Message, payload: MessagePayload) -> Message:
        body = payload.to_json()
        body["message_reference"] = {"message_id": message.id}
        r = await self._request("POST", f"/channels/{message.channel_id}/messages", body)
        return self._message(r, guild_id=message.guild_id)

    async def send_dm(self, user: User, payload: MessagePayload) -> Message:
        r = await self._request("POST", "/users/@me/channels", {"recipient_id": user.id})
        channel_id = r.json()["id"]
        r = await self._request("POST", f"/channels/{channel_id}/messages", payload.to_json())
        return self._message(r)

    async def delete_message(self, message: Message) -> None:
        await self._request("DELETE", f"/channels/{message.channel_id}/messages/{message.id}")

    async def fetch_member(self, guild_id: str, user_id: str) -> Member | None:
        try:
            r = await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return Member.model_validate(r.json())

    async def bulk_overwrite_commands(
        self, application_id: str, commands: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        r = await self._request("PUT", f"/applications/{application_id}/commands", commands)
        return list(r.json())

    @staticmethod
    def _message(r: httpx.Response, *, guild_id: str | None = None) -> Message:
        data = r.json()
        if guild_id and not data.get("guild_id"):
            data["guild_id"] = guild_id
        return Message.model_validate(data)
