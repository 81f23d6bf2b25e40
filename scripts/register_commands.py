#!/usr/bin/env python3
"""
Application command management script.

Compares locally defined commands with those registered on the platform and
bulk-registers or unregisters them.

Usage:
  python scripts/register_commands.py --status [--guild GUILD_ID] [--path DIR]
  python scripts/register_commands.py --register [--guild GUILD_ID] [--path DIR]
  python scripts/register_commands.py --unregister NAME[,NAME...] [--guild GUILD_ID]

Commands come from the built-in ``Harmony.commands`` package plus every
``.py`` file under ``--path`` (defaults to ``commands_path`` from settings).

Environment (read from .env.local or .env when present):
  DISCORD_APP_ID, DISCORD_BOT_TOKEN, DISCORD_GUILD_ID (optional)
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any

import httpx
import orjson
from dotenv import load_dotenv
from prettytable import PrettyTable

from Harmony.command_loader import load_commands_from_package, load_commands_from_path
from Harmony.config import load_settings
from Harmony.registry import CommandRegistry

project_root = Path(__file__).parent.parent
for candidate in (project_root / ".env.local", project_root / ".env"):
    if candidate.exists():
        load_dotenv(dotenv_path=candidate)
        break


def build_commands_payload(path: str | None) -> list[dict[str, Any]]:
    registry = CommandRegistry()
    registry.register_many(load_commands_from_package("Harmony.commands"))
    if path:
        registry.register_many(load_commands_from_path(path))
    return [c.to_application_command() for c in registry]


def _commands_url(base_url: str, app_id: str, guild_id: str | None) -> str:
    url = f"{base_url.rstrip('/')}/applications/{app_id}"
    if guild_id:
        return f"{url}/guilds/{guild_id}/commands"
    return f"{url}/commands"


async def _fetch_commands(client: httpx.AsyncClient, url: str) -> list[dict]:
    response = await client.get(url)
    response.raise_for_status()
    return response.json()


def format_options(options: list[dict], level: int = 0) -> list[str]:
    indent = "  " * level
    out = []
    for opt in options:
        required = "Required" if opt.get("required", False) else "Optional"
        out.append(f"{indent}- {opt['name']} ({required}): {opt.get('description', '')}")
        out.extend(format_options(opt.get("options", []), level + 1))
    return out


def print_status(local_commands: list[dict], registered: list[dict], scope: str) -> None:
    print(f"\nStatus for {scope} commands:")
    table = PrettyTable()
    table.field_names = ["Command Name", "Registered", "Description", "Options"]
    table.hrules = 1
    registered_names = {c["name"] for c in registered}
    for cmd in local_commands:
        table.add_row(
            [
                cmd["name"],
                "Yes" if cmd["name"] in registered_names else "No",
                cmd.get("description", ""),
                "\n".join(format_options(cmd.get("options", []))) or "No options",
            ]
        )
    for name in sorted(registered_names - {c["name"] for c in local_commands}):
        table.add_row([name, "Yes (remote only)", "", ""])
    print(table)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Manage application commands.")
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--status", action="store_true", help="Compare local and registered commands.")
    action.add_argument("--register", action="store_true", help="Bulk-overwrite registered commands.")
    action.add_argument("--unregister", metavar="NAMES", help="Comma-separated commands to remove.")
    parser.add_argument("--guild", nargs="?", const=os.environ.get("DISCORD_GUILD_ID"), help="Guild scope.")
    parser.add_argument("--path", help="Folder of command modules.")
    args = parser.parse_args()

    settings = load_settings()
    if not settings.discord_app_id or settings.discord_bot_token is None:
        print("Error: DISCORD_APP_ID and DISCORD_BOT_TOKEN must be set.")
        return 1

    url = _commands_url(settings.discord_api_base_url, settings.discord_app_id, args.guild)
    scope = f"guild {args.guild}" if args.guild else "global"
    headers = {
        "Authorization": f"Bot {settings.discord_bot_token.get_secret_value()}",
        "Content-Type": "application/json",
    }
    local_commands = build_commands_payload(args.path or settings.commands_path)

    async with httpx.AsyncClient(headers=headers, timeout=settings.discord_request_timeout_seconds) as client:
        try:
            if args.register:
                response = await client.put(url, content=orjson.dumps(local_commands))
                response.raise_for_status()
                print(f"Registered {len(response.json())} commands ({scope}).")
            elif args.unregister:
                registered = await _fetch_commands(client, url)
                for name in (n.strip().lower() for n in args.unregister.split(",") if n.strip()):
                    match = next((c for c in registered if c["name"] == name), None)
                    if match is None:
                        print(f"Command {name} not found ({scope}).")
                        continue
                    response = await client.delete(f"{url}/{match['id']}")
                    response.raise_for_status()
                    print(f"Unregistered: {name} ({scope})")
            print_status(local_commands, await _fetch_commands(client, url), scope)
        except httpx.HTTPStatusError as e:
            print(f"HTTP error {e.response.status_code}: {e.response.text}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
