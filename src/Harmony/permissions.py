"""Platform permission bits and membership checks."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntFlag


class Permission(IntFlag):
    NONE = 0
    CREATE_INSTANT_INVITE = 1 << 0
    KICK_MEMBERS = 1 << 1
    BAN_MEMBERS = 1 << 2
    ADMINISTRATOR = 1 << 3
    MANAGE_CHANNELS = 1 << 4
    MANAGE_GUILD = 1 << 5
    ADD_REACTIONS = 1 << 6
    VIEW_AUDIT_LOG = 1 << 7
    PRIORITY_SPEAKER = 1 << 8
    STREAM = 1 << 9
    VIEW_CHANNEL = 1 << 10
    SEND_MESSAGES = 1 << 11
    SEND_TTS_MESSAGES = 1 << 12
    MANAGE_MESSAGES = 1 << 13
    EMBED_LINKS = 1 << 14
    ATTACH_FILES = 1 << 15
    READ_MESSAGE_HISTORY = 1 << 16
    MENTION_EVERYONE = 1 << 17
    USE_EXTERNAL_EMOJIS = 1 << 18
    VIEW_GUILD_INSIGHTS = 1 << 19
    CONNECT = 1 << 20
    SPEAK = 1 << 21
    MUTE_MEMBERS = 1 << 22
    DEAFEN_MEMBERS = 1 << 23
    MOVE_MEMBERS = 1 << 24
    USE_VAD = 1 << 25
    CHANGE_NICKNAME = 1 << 26
    MANAGE_NICKNAMES = 1 << 27
    MANAGE_ROLES = 1 << 28
    MANAGE_WEBHOOKS = 1 << 29
    MANAGE_GUILD_EXPRESSIONS = 1 << 30
    USE_APPLICATION_COMMANDS = 1 << 31
    MODERATE_MEMBERS = 1 << 40


def combine(permissions: Permission | Iterable[Permission | int] | None) -> Permission:
    if permissions is None:
        return Permission.NONE
    if isinstance(permissions, int):
        return Permission(permissions)
    out = Permission.NONE
    for perm in permissions:
        out |= Permission(perm)
    return out


def parse_bitfield(value: str | int | None) -> Permission:
    """Read the platform's bitfield (sent as a decimal string) into flags."""
    if value is None or value == "":
        return Permission.NONE
    try:
        return Permission(int(value))
    except (TypeError, ValueError):
        return Permission.NONE


def has_permissions(granted: Permission, required: Permission) -> bool:
    if not required:
        return True
    if granted & Permission.ADMINISTRATOR:
        return True
    return (granted & required) == required


def permission_names(permissions: Permission) -> list[str]:
    return [p.name for p in Permission if p and p.name and p in permissions]
