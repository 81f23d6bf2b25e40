"""Settings loader for Harmony."""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE = "config.toml"

# (section, key) in config.toml -> Settings field
_TOML_FIELDS: dict[tuple[str, str], str] = {
    ("app", "env"): "env",
    ("app", "port"): "app_port",
    ("bot", "prefix"): "command_prefix",
    ("bot", "allow_text_commands"): "allow_text_commands",
    ("bot", "reload_commands_on_startup"): "reload_commands_on_startup",
    ("bot", "plugins_path"): "plugins_path",
    ("bot", "commands_path"): "commands_path",
    ("discord", "app_id"): "discord_app_id",
    ("discord", "api_base_url"): "discord_api_base_url",
    ("discord", "request_timeout_seconds"): "discord_request_timeout_seconds",
    ("logging", "level"): "logging_level",
    ("logging", "file_path"): "logging_file_path",
    ("logging", "max_bytes"): "logging_max_bytes",
    ("logging", "backup_count"): "logging_backup_count",
}


def _handler_level(value: Any, overall: str) -> str | None:
    """Per-handler level: a level name, or a bool (True -> overall level, False -> NONE)."""
    if isinstance(value, bool):
        return overall if value else "NONE"
    if isinstance(value, str):
        return value.upper()
    return None


def _toml_settings_source() -> dict[str, Any]:
    """Values from config.toml; lower priority than env and .env."""
    path = Path(CONFIG_FILE)
    if not path.exists():
        return {}
    with path.open("rb") as f:
        data = tomllib.load(f)

    out: dict[str, Any] = {}
    for (section, key), field in _TOML_FIELDS.items():
        value = (data.get(section) or {}).get(key)
        if value is not None:
            out[field] = value
    if "discord_app_id" in out:
        out["discord_app_id"] = str(out["discord_app_id"])

    log_cfg = data.get("logging") or {}
    overall = str(out.get("logging_level", "INFO")).upper()
    for key, field in (("console", "logging_console"), ("to_file", "logging_file")):
        level = _handler_level(log_cfg.get(key), overall)
        if level is not None:
            out[field] = level
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    app_port: int = 18000

    # --- Bot behavior ---
    command_prefix: str | None = None
    allow_text_commands: bool = False
    reload_commands_on_startup: bool = False
    plugins_path: str | None = None
    commands_path: str | None = None

    # --- Discord ---
    discord_app_id: str | None = None
    discord_public_key: str = ""
    discord_bot_token: SecretStr | None = None
    discord_api_base_url: str = "https://discord.com/api/v10"
    discord_request_timeout_seconds: float = 20

    # --- Logging (handler levels accept NONE) ---
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "NONE"
    logging_file_path: str = "logs/harmony.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Highest first: init kwargs, .env, OS env, config.toml, secrets dir
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
