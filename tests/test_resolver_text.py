import pytest

from Harmony.commanding import Choice, CommandOption, OptionType
from Harmony.errors import ArgumentError, ArgumentReason
from Harmony.interop import Interop
from Harmony.resolver import resolve_arguments
from tests.conftest import (
    TARGET_ID,
    TEXT_CHANNEL_ID,
    VOICE_CHANNEL_ID,
    FakePlatform,
    make_guild,
    make_member,
    make_message,
)

BAN_OPTIONS = (
    CommandOption(name="user", type=OptionType.USER, required=True),
    CommandOption(name="reason", type=OptionType.STRING, collect=True),
)


def _ctx(content: str = "", platform: FakePlatform | None = None, *, guild=True):
    g = make_guild(make_member(), make_member(TARGET_ID)) if guild else None
    message = make_message(content, guild=g)
    return message, Interop(message, platform or FakePlatform())


async def _resolve(options, tokens, platform=None, *, guild=True):
    message, interop = _ctx(" ".join(tokens), platform, guild=guild)
    return await resolve_arguments(options, message, interop, tokens)


@pytest.mark.asyncio
async def test_user_and_collected_reason():
    member, reason = await _resolve(BAN_OPTIONS, "123456789 being rude to people".split())
    assert member.id == TARGET_ID
    assert reason == "being rude to people"


@pytest.mark.asyncio
async def test_user_mention_is_stripped_to_digits():
    member, reason = await _resolve(BAN_OPTIONS, [f"<@!{TARGET_ID}>"])
    assert member.id == TARGET_ID
    assert reason is None


@pytest.mark.asyncio
async def test_missing_required_user():
    with pytest.raises(ArgumentError) as err:
        await _resolve(BAN_OPTIONS, [])
    assert err.value.argument_name == "user"
    assert err.value.reason is ArgumentReason.MISSING_ARGUMENT


@pytest.mark.asyncio
async def test_unknown_user_falls_back_to_platform_fetch():
    platform = FakePlatform(members={"777": make_member("777")})
    (member,) = await _resolve(
        (CommandOption(name="user", type=OptionType.USER, required=True),), ["777"], platform
    )
    assert member.id == "777"
    assert ("fetch_member", "500", "777") in platform.calls


@pytest.mark.asyncio
async def test_fetch_failure_is_not_found():
    platform = FakePlatform()
    platform.fetch_error = RuntimeError("boom")
    with pytest.raises(ArgumentError) as err:
        await _resolve(BAN_OPTIONS, ["888"], platform)
    assert err.value.reason is ArgumentReason.NOT_FOUND


@pytest.mark.asyncio
async def test_user_outside_guild_is_not_found():
    with pytest.raises(ArgumentError) as err:
        await _resolve(BAN_OPTIONS, ["888"], guild=False)
    assert err.value.reason is ArgumentReason.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token, expected",
    [("42", 42), ("-7", -7), ("+3", 3), (str(2**53), 2**53)],
)
async def test_integer_tokens(token, expected):
    (value,) = await _resolve((CommandOption(name="n", type=OptionType.INTEGER),), [token])
    assert value == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["4.5", "abc", "1e3", str(2**53 + 1), ""])
async def test_invalid_integer_tokens(token):
    with pytest.raises(ArgumentError) as err:
        await _resolve((CommandOption(name="n", type=OptionType.INTEGER),), [token])
    assert err.value.reason is ArgumentReason.INVALID_FORMAT


@pytest.mark.asyncio
@pytest.mark.parametrize("token, expected", [("2.5", 2.5), ("-1", -1.0), ("1e3", 1000.0), (".5", 0.5)])
async def test_number_tokens(token, expected):
    (value,) = await _resolve((CommandOption(name="x", type=OptionType.NUMBER),), [token])
    assert value == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["nan", "inf", "1e999", "1,5", "0x10"])
async def test_invalid_number_tokens(token):
    with pytest.raises(ArgumentError) as err:
        await _resolve((CommandOption(name="x", type=OptionType.NUMBER),), [token])
    assert err.value.reason is ArgumentReason.INVALID_FORMAT


@pytest.mark.asyncio
async def test_boolean_tokens():
    opts = (
        CommandOption(name="a", type=OptionType.BOOLEAN),
        CommandOption(name="b", type=OptionType.BOOLEAN),
    )
    assert await _resolve(opts, ["TRUE", "false"]) == (True, False)
    with pytest.raises(ArgumentError) as err:
        await _resolve(opts, ["yes"])
    assert err.value.reason is ArgumentReason.INVALID_FORMAT


@pytest.mark.asyncio
async def test_channels_by_mention_and_kind():
    text = CommandOption(name="where", type=OptionType.TEXT_CHANNEL, required=True)
    voice = CommandOption(name="to", type=OptionType.VOICE_CHANNEL, required=True)

    (channel,) = await _resolve((text,), [f"<#{TEXT_CHANNEL_ID}>"])
    assert channel.id == TEXT_CHANNEL_ID

    with pytest.raises(ArgumentError) as err:
        await _resolve((voice,), [TEXT_CHANNEL_ID])
    assert err.value.reason is ArgumentReason.WRONG_KIND

    with pytest.raises(ArgumentError) as err:
        await _resolve((text,), [VOICE_CHANNEL_ID])
    assert err.value.reason is ArgumentReason.WRONG_KIND

    with pytest.raises(ArgumentError) as err:
        await _resolve((text,), ["999"])
    assert err.value.reason is ArgumentReason.NOT_FOUND


@pytest.mark.asyncio
async def test_optional_defaults_fill_missing_tokens():
    opts = (
        CommandOption(name="a", type=OptionType.STRING, required=True),
        CommandOption(name="b", type=OptionType.INTEGER, default=10),
        CommandOption(name="c", type=OptionType.STRING, default=lambda interop: interop.user.id),
    )
    assert await _resolve(opts, ["hello"]) == ("hello", 10, "1000")


@pytest.mark.asyncio
async def test_choice_mismatch_fails_validation():
    opt = CommandOption(
        name="mode",
        type=OptionType.STRING,
        choices=(Choice("Fast", "fast"), Choice("Slow", "slow")),
    )
    assert await _resolve((opt,), ["slow"]) == ("slow",)
    with pytest.raises(ArgumentError) as err:
        await _resolve((opt,), ["medium"])
    assert err.value.reason is ArgumentReason.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_async_validator_runs_on_collected_text():
    async def short(value, interop):
        return len(value) <= 10

    opt = CommandOption(name="text", type=OptionType.STRING, collect=True, validate=short)
    assert await _resolve((opt,), ["a", "b"]) == ("a b",)
    with pytest.raises(ArgumentError) as err:
        await _resolve((opt,), ["far", "too", "long", "here"])
    assert err.value.reason is ArgumentReason.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_no_options_returns_empty_tuple():
    assert await _resolve((), ["ignored"]) == ()


@pytest.mark.asyncio
async def test_required_collect_with_no_tokens_is_missing():
    opt = CommandOption(name="text", type=OptionType.STRING, required=True, collect=True)
    with pytest.raises(ArgumentError) as err:
        await _resolve((opt,), [])
    assert err.value.reason is ArgumentReason.MISSING_ARGUMENT
