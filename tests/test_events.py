import pytest

from Harmony.events import DispatchEvent, Event, EventBus
from Harmony.metrics import get_counter


@pytest.mark.asyncio
async def test_emit_reaches_sync_and_async_handlers():
    bus = EventBus()
    seen = []

    @bus.on(DispatchEvent.COMMAND_COMPLETED)
    async def async_handler(event):
        seen.append(("async", event.command_name))

    bus.on("command_completed", lambda event: seen.append(("sync", event.command_name)))

    await bus.emit(Event(DispatchEvent.COMMAND_COMPLETED, command_name="ping"))

    assert seen == [("async", "ping"), ("sync", "ping")]
    assert get_counter("events.command_completed") == 1


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.on(DispatchEvent.DISPATCH_ERROR, broken)
    bus.on(DispatchEvent.DISPATCH_ERROR, seen.append)

    await bus.emit(Event(DispatchEvent.DISPATCH_ERROR))

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_off_and_counts():
    bus = EventBus()
    handler = bus.on(DispatchEvent.PLUGIN_ERROR, lambda e: None)
    assert bus.handler_count("plugin_error") == 1
    assert bus.off(DispatchEvent.PLUGIN_ERROR, handler) is True
    assert bus.off(DispatchEvent.PLUGIN_ERROR, handler) is False
    assert bus.handler_count(DispatchEvent.PLUGIN_ERROR) == 0


def test_unknown_event_name_is_rejected():
    with pytest.raises(ValueError):
        EventBus().on("not_an_event", lambda e: None)
