from Harmony.commanding import Command
from Harmony.metrics import get_counter
from Harmony.registry import CommandRegistry


async def _noop(client, interop, args, plugin_args):
    return None


def test_register_and_find_by_alias():
    reg = CommandRegistry()
    ban = Command(name="ban", execute=_noop, aliases=("b",))
    assert reg.register(ban) is True
    assert reg.get("ban") is ban
    assert reg.get("b") is None
    assert reg.find("B") is ban
    assert "b" in reg
    assert len(reg) == 1


def test_reregistering_replaces_command_and_its_aliases():
    reg = CommandRegistry()
    reg.register(Command(name="ban", execute=_noop, aliases=("b", "old")))
    newer = Command(name="ban", execute=_noop, aliases=("b",))
    assert reg.register(newer) is False
    assert reg.find("ban") is newer
    assert reg.find("old") is None
    assert get_counter("registry.collision") == 1


def test_same_command_object_is_idempotent():
    reg = CommandRegistry()
    ban = Command(name="ban", execute=_noop, aliases=("b",))
    reg.register(ban)
    assert reg.register(ban) is True
    assert get_counter("registry.collision") == 0


def test_alias_collision_last_registration_wins():
    reg = CommandRegistry()
    ban = Command(name="ban", execute=_noop, aliases=("b",))
    bonk = Command(name="bonk", execute=_noop, aliases=("b",))
    reg.register(ban)
    assert reg.collisions(bonk) == {"b"}
    assert reg.register(bonk) is False
    assert reg.find("b") is bonk
    assert reg.find("ban") is ban


def test_names_take_precedence_over_aliases():
    reg = CommandRegistry()
    reg.register(Command(name="ban", execute=_noop, aliases=("kick",)))
    kick = Command(name="kick", execute=_noop)
    reg.register(kick)
    assert reg.find("kick") is kick


def test_iteration_and_snapshot():
    reg = CommandRegistry()
    count = reg.register_many(Command(name=n, execute=_noop) for n in ("a", "b", "c"))
    assert count == 3
    assert reg.names() == ["a", "b", "c"]
    assert [c.name for c in reg] == ["a", "b", "c"]
    assert set(reg.all_commands()) == {"a", "b", "c"}
