# tests/conftest.py

import itertools
from typing import Any

import pytest

from Harmony.client import HarmonyClient
from Harmony.config import Settings
from Harmony.cooldowns import CooldownTracker
from Harmony.discord_schemas import (
    Channel,
    ChannelType,
    Guild,
    Interaction,
    InteractionData,
    Member,
    Message,
    MessagePayload,
    ResolvedData,
    User,
)
from Harmony.metrics import reset_counters

GUILD_ID = "500"
TEXT_CHANNEL_ID = "600"
VOICE_CHANNEL_ID = "601"
AUTHOR_ID = "1000"
TARGET_ID = "123456789"

_ids = itertools.count(70_000)


def next_id() -> str:
    return str(next(_ids))


class FakePlatform:
    """Records every outbound call; returns synthetic messages."""

    def __init__(self, members: dict[str, Member] | None = None) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.members = dict(members or {})
        self.fetch_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.bulk_payload: list[dict] | None = None
        self.payloads: list[MessagePayload] = []

    def _sent(self, channel_id: str | None, content: str | None, guild_id: str | None) -> Message:
        return Message(
            id=next_id(),
            channel_id=channel_id or "dm",
            author=User(id="1", username="harmony", bot=True),
            content=content or "",
            guild_id=guild_id,
        )

    def sent_contents(self) -> list[str | None]:
        return [c[1] for c in self.calls if c[0] in ("followup", "reply", "send_dm")]

    async def defer_interaction(self, interaction, *, ephemeral=False):
        self.calls.append(("defer", interaction.id, ephemeral))

    async def followup(self, interaction, payload, *, ephemeral=False):
        self.calls.append(("followup", payload.content, ephemeral))
        self.payloads.append(payload)
        return self._sent(interaction.channel_id, payload.content, interaction.guild_id)

    async def delete_original_response(self, interaction):
        self.calls.append(("delete_original", interaction.id))

    async def reply(self, message, payload):
        self.calls.append(("reply", payload.content, message.id))
        self.payloads.append(payload)
        return self._sent(message.channel_id, payload.content, message.guild_id)

    async def send_dm(self, user, payload):
        self.calls.append(("send_dm", payload.content, user.id))
        self.payloads.append(payload)
        return self._sent(None, payload.content, None)

    async def delete_message(self, message):
        self.calls.append(("delete_message", message.id))
        if self.delete_error is not None:
            raise self.delete_error

    async def fetch_member(self, guild_id, user_id):
        self.calls.append(("fetch_member", guild_id, user_id))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.members.get(user_id)

    async def bulk_overwrite_commands(self, application_id, commands):
        self.bulk_payload = list(commands)
        return [dict(c, id=next_id()) for c in commands]


class ManualScheduler:
    """Stand-in for the event loop timer: fires callbacks when time advances."""

    def __init__(self) -> None:
        self.now_ms = 0.0
        self.pending: list[tuple[float, Any]] = []

    def clock(self) -> float:
        return self.now_ms

    def schedule(self, delay: float, callback):
        self.pending.append((self.now_ms + delay * 1000, callback))
        return None

    def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000
        due = sorted((p for p in self.pending if p[0] <= self.now_ms), key=lambda p: p[0])
        self.pending = [p for p in self.pending if p[0] > self.now_ms]
        for _, callback in due:
            callback()


def make_user(user_id: str = AUTHOR_ID, *, bot: bool = False) -> User:
    return User(id=user_id, username=f"user{user_id}", bot=bot)


def make_member(user_id: str = AUTHOR_ID, *, permissions: str = "0") -> Member:
    return Member(user=make_user(user_id), permissions=permissions)


def make_guild(*members: Member) -> Guild:
    return Guild(
        id=GUILD_ID,
        name="Test Guild",
        members=list(members),
        channels=[
            Channel(id=TEXT_CHANNEL_ID, guild_id=GUILD_ID, name="general", type=ChannelType.GUILD_TEXT),
            Channel(id=VOICE_CHANNEL_ID, guild_id=GUILD_ID, name="lounge", type=ChannelType.GUILD_VOICE),
        ],
    )


def make_interaction(
    name: str,
    options: list[dict] | None = None,
    *,
    guild: Guild | None = None,
    member: Member | None = None,
    user: User | None = None,
    resolved: ResolvedData | None = None,
) -> Interaction:
    if guild is None:
        user, member = user or make_user(), None
    else:
        user, member = None, member or make_member()
    return Interaction(
        id=next_id(),
        type=2,
        token="tok",
        application_id="42",
        data=InteractionData(name=name, type=1, options=options, resolved=resolved),
        guild_id=guild.id if guild is not None else None,
        channel_id=TEXT_CHANNEL_ID if guild is not None else "dm",
        member=member,
        user=user,
        guild=guild,
    )


def make_message(
    content: str,
    *,
    guild: Guild | None = None,
    author: User | None = None,
    member: Member | None = None,
) -> Message:
    return Message(
        id=next_id(),
        channel_id=TEXT_CHANNEL_ID if guild is not None else "dm",
        author=author or make_user(),
        content=content,
        guild_id=guild.id if guild is not None else None,
        member=member,
        guild=guild,
    )


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield
    reset_counters()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def settings() -> Settings:
    return Settings(command_prefix="!", allow_text_commands=True, discord_app_id="42")


@pytest.fixture
def client(platform, settings, scheduler) -> HarmonyClient:
    cooldowns = CooldownTracker(clock=scheduler.clock, scheduler=scheduler.schedule)
    return HarmonyClient(platform, settings=settings, cooldowns=cooldowns)


@pytest.fixture
def record_events(client):
    """Subscribe to every dispatch event; returns the list they land in."""
    from Harmony.events import DispatchEvent

    seen = []
    for name in DispatchEvent:
        client.on(name, seen.append)
    return seen
