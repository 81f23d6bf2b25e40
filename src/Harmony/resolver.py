"""Argument resolution for both input channels.

Structured interactions arrive with values the platform has already typed;
free-text messages arrive as whitespace-split tokens bound positionally to
the declared options. Both paths produce one tuple with an entry per option,
or raise a single ``ArgumentError`` for the first option that fails.
"""

from __future__ import annotations

import math
import re
from collections import deque
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from Harmony.awaitables import maybe_await
from Harmony.commanding import CommandOption, OptionType
from Harmony.discord_schemas import Channel, Interaction, Member, Message
from Harmony.errors import ArgumentError, ArgumentReason, UnsupportedSourceError
from Harmony.interop import Interop

log = structlog.get_logger()

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_NON_DIGITS = re.compile(r"\D")
# Largest integer the platform round-trips exactly
MAX_SAFE_INTEGER = 2**53


async def resolve_arguments(
    options: Sequence[CommandOption],
    source: Interaction | Message,
    interop: Interop,
    tokens: Iterable[str] = (),
) -> tuple[Any, ...]:
    if not options:
        return ()
    match source:
        case Interaction():
            return await _resolve_interaction(options, source, interop)
        case Message():
            return await _resolve_text(options, interop, deque(tokens))
        case _:
            raise UnsupportedSourceError("Unsupported source type for argument parsing.")


async def _resolve_interaction(
    options: Sequence[CommandOption], interaction: Interaction, interop: Interop
) -> tuple[Any, ...]:
    values: list[Any] = []
    for option in options:
        provided = interaction.get_option(option.name)
        raw = provided.value if provided is not None else None
        if raw is None:
            if option.required:
                raise ArgumentError(option.name, ArgumentReason.MISSING_ARGUMENT)
            values.append(option.resolve_default(interop))
            continue

        match option.type:
            case OptionType.STRING | OptionType.NUMBER | OptionType.INTEGER | OptionType.BOOLEAN:
                value = raw
            case OptionType.USER:
                value = await _lookup_member(option, str(raw), interop, interaction)
            case OptionType.TEXT_CHANNEL | OptionType.VOICE_CHANNEL:
                value = _lookup_channel(option, str(raw), interop, interaction)

        await _check_constraints(option, value, interop)
        values.append(value)
    return tuple(values)


async def _resolve_text(
    options: Sequence[CommandOption], interop: Interop, tokens: deque[str]
) -> tuple[Any, ...]:
    values: list[Any] = []
    for option in options:
        if not tokens:
            if option.required:
                raise ArgumentError(option.name, ArgumentReason.MISSING_ARGUMENT)
            values.append(option.resolve_default(interop))
            continue

        if option.collect:
            value: Any = " ".join(tokens)
            await _check_constraints(option, value, interop)
            tokens.clear()
            values.append(value)
            break

        value = await _parse_token(option, tokens[0], interop)
        await _check_constraints(option, value, interop)
        tokens.popleft()
        values.append(value)
    return tuple(values)


async def _parse_token(option: CommandOption, token: str, interop: Interop) -> Any:
    match option.type:
        case OptionType.STRING:
            return token
        case OptionType.NUMBER:
            if not _NUMBER_RE.match(token):
                raise ArgumentError(
                    option.name, ArgumentReason.INVALID_FORMAT, f"Invalid number: {token}"
                )
            number = float(token)
            if not math.isfinite(number):
                raise ArgumentError(
                    option.name, ArgumentReason.INVALID_FORMAT, f"Number out of range: {token}"
                )
            return number
        case OptionType.INTEGER:
            if not _INTEGER_RE.match(token):
                raise ArgumentError(
                    option.name, ArgumentReason.INVALID_FORMAT, f"Invalid integer: {token}"
                )
            integer = int(token)
            if abs(integer) > MAX_SAFE_INTEGER:
                raise ArgumentError(
                    option.name, ArgumentReason.INVALID_FORMAT, f"Integer out of range: {token}"
                )
            return integer
        case OptionType.BOOLEAN:
            lowered = token.lower()
            if lowered not in ("true", "false"):
                raise ArgumentError(
                    option.name, ArgumentReason.INVALID_FORMAT, f"Invalid boolean: {token}"
                )
            return lowered == "true"
        case OptionType.USER:
            return await _lookup_member(option, _NON_DIGITS.sub("", token), interop)
        case OptionType.TEXT_CHANNEL | OptionType.VOICE_CHANNEL:
            return _lookup_channel(option, _NON_DIGITS.sub("", token), interop)
    raise ArgumentError(option.name, ArgumentReason.INVALID_FORMAT, "Unsupported argument type")


async def _lookup_member(
    option: CommandOption,
    user_id: str,
    interop: Interop,
    interaction: Interaction | None = None,
) -> Member:
    if not user_id:
        raise ArgumentError(option.name, ArgumentReason.NOT_FOUND, "User not found")
    member = interop.guild.get_member(user_id) if interop.guild is not None else None
    if member is None and interaction is not None and interaction.data is not None:
        resolved = interaction.data.resolved
        member = resolved.member(user_id) if resolved is not None else None
    guild_id = interop.guild_id
    if member is None and guild_id is not None:
        try:
            member = await interop.platform.fetch_member(guild_id, user_id)
        except Exception as exc:
            log.warning(
                "resolver.member_fetch_failed",
                option=option.name,
                guild_id=guild_id,
                user_id=user_id,
                error=str(exc),
            )
            raise ArgumentError(option.name, ArgumentReason.NOT_FOUND, "User not found") from exc
    if member is None:
        raise ArgumentError(option.name, ArgumentReason.NOT_FOUND, "User not found")
    return member


def _lookup_channel(
    option: CommandOption,
    channel_id: str,
    interop: Interop,
    interaction: Interaction | None = None,
) -> Channel:
    channel = None
    if channel_id and interop.guild is not None:
        channel = interop.guild.get_channel(channel_id)
    if channel is None and channel_id and interaction is not None and interaction.data is not None:
        resolved = interaction.data.resolved
        channel = resolved.channels.get(channel_id) if resolved is not None else None
    if channel is None:
        raise ArgumentError(option.name, ArgumentReason.NOT_FOUND, "Channel not found")
    if option.type is OptionType.TEXT_CHANNEL and not channel.is_text:
        raise ArgumentError(option.name, ArgumentReason.WRONG_KIND, "Expected a text channel")
    if option.type is OptionType.VOICE_CHANNEL and not channel.is_voice:
        raise ArgumentError(option.name, ArgumentReason.WRONG_KIND, "Expected a voice channel")
    return channel


async def _check_constraints(option: CommandOption, value: Any, interop: Interop) -> None:
    if option.choices and not any(choice.value == value for choice in option.choices):
        raise ArgumentError(
            option.name,
            ArgumentReason.VALIDATION_FAILED,
            f"Value {value!r} is not one of the allowed choices",
        )
    if option.validate is not None:
        ok = await maybe_await(option.validate(value, interop))
        if not ok:
            raise ArgumentError(option.name, ArgumentReason.VALIDATION_FAILED, "Validation failed")
