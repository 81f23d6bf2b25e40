import pytest

from Harmony.commanding import Command
from Harmony.interop import Interop
from Harmony.middleware import ChainState, MiddlewareChain, MiddlewareContext, execute_middleware
from tests.conftest import FakePlatform, make_guild, make_message


async def _noop(client, interop, args, plugin_args):
    return None


@pytest.fixture
def context():
    message = make_message("!x", guild=make_guild())
    return MiddlewareContext(
        command=Command(name="x", execute=_noop),
        args=(),
        interop=Interop(message, FakePlatform()),
        client=None,
        plugin_args={},
    )


def _recorder(trace, label, *, proceed=True):
    async def mw(ctx, next):
        trace.append(f"{label}:before")
        if proceed:
            await next()
        trace.append(f"{label}:after")

    return mw


@pytest.mark.asyncio
async def test_runs_in_order_and_unwinds(context):
    trace = []
    state = await execute_middleware([_recorder(trace, "a"), _recorder(trace, "b")], context)
    assert state is ChainState.COMPLETE
    assert trace == ["a:before", "b:before", "b:after", "a:after"]


@pytest.mark.asyncio
async def test_empty_chain_completes(context):
    assert await execute_middleware([], context) is ChainState.COMPLETE


@pytest.mark.asyncio
async def test_not_calling_next_halts(context):
    trace = []
    chain = [_recorder(trace, "a"), _recorder(trace, "gate", proceed=False), _recorder(trace, "c")]
    state = await execute_middleware(chain, context)
    assert state is ChainState.HALTED
    assert "c:before" not in trace


@pytest.mark.asyncio
async def test_exception_propagates(context):
    async def boom(ctx, next):
        raise RuntimeError("nope")

    chain = MiddlewareChain([boom])
    with pytest.raises(RuntimeError):
        await chain.run(context)
    assert chain.state is ChainState.FAILED


@pytest.mark.asyncio
async def test_calling_next_twice_does_not_skip(context):
    trace = []

    async def twice(ctx, next):
        await next()
        await next()

    await execute_middleware([twice, _recorder(trace, "b"), _recorder(trace, "c")], context)
    assert trace.count("b:before") == 1
    assert trace.count("c:before") == 1


@pytest.mark.asyncio
async def test_sync_middleware_is_accepted(context):
    seen = []

    def sync_mw(ctx, next):
        seen.append(ctx.command.name)

    state = await execute_middleware([sync_mw], context)
    assert seen == ["x"]
    assert state is ChainState.HALTED


@pytest.mark.asyncio
async def test_chain_runs_once(context):
    chain = MiddlewareChain([])
    await chain.run(context)
    with pytest.raises(RuntimeError):
        await chain.run(context)


@pytest.mark.asyncio
async def test_terminal_step_alone_runs_once(context):
    runs = []

    async def terminal(ctx, next):
        runs.append(ctx.command.name)
        await next()

    assert await execute_middleware([terminal], context) is ChainState.COMPLETE
    assert runs == ["x"]
