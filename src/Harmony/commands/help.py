from __future__ import annotations

from collections import defaultdict

from Harmony.commanding import CommandOption, OptionType, slash_command
from Harmony.discord_schemas import MessagePayload
from Harmony.metrics import inc_counter


def build_help_text(commands, topic: str | None = None) -> str:
    """Render one command's help, or every command grouped by category."""
    if topic:
        command = commands.find(topic)
        if command is None:
            return f"Unknown command: {topic}. Use /help to list commands."
        return command.get_help()

    by_category: dict[str, list[str]] = defaultdict(list)
    for command in commands:
        by_category[command.category].append(command.name)

    lines = ["**Commands**"]
    for category in sorted(by_category):
        names = ", ".join(f"/{n}" for n in sorted(by_category[category]))
        lines.append(f"**{category}:** {names}")
    lines.append("")
    lines.append("Use /help with a command name for details.")
    return "\n".join(lines)


def build_help_payload(commands, topic: str | None = None) -> MessagePayload:
    command = commands.find(topic) if topic else None
    if command is None:
        return MessagePayload(content=build_help_text(commands, topic))
    return MessagePayload(embeds=[command.get_help(embed=True)])


@slash_command(
    name="help",
    description="List commands or show details for one command",
    options=[
        CommandOption(
            name="command",
            type=OptionType.STRING,
            description="Command to describe",
            collect=True,
        )
    ],
    aliases=("commands",),
    category="Utility",
    is_private=True,
    allowed_in_dm=True,
)
async def help_command(client, interop, args, plugin_args):
    (topic,) = args
    inc_counter("help.invoked")
    await interop.follow_up(build_help_payload(client.commands, topic))
