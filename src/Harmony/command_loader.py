# src/Harmony/command_loader.py
from __future__ import annotations

import importlib
import importlib.util
import pkgutil
import sys
from pathlib import Path
from types import ModuleType

import structlog

from Harmony.commanding import Command

log = structlog.get_logger()


def collect_commands(module: ModuleType) -> list[Command]:
    """Every ``Command`` bound at module level, in definition order."""
    seen: set[int] = set()
    out: list[Command] = []
    for value in vars(module).values():
        if isinstance(value, Command) and id(value) not in seen:
            seen.add(id(value))
            out.append(value)
    return out


def import_module_from_path(path: Path, namespace: str) -> ModuleType:
    name = f"{namespace}.{path.stem}"
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot load module from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


def module_files(path: str | Path) -> list[Path]:
    folder = Path(path)
    return sorted(
        p for p in folder.iterdir() if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    )


def load_commands_from_path(path: str | Path) -> list[Command]:
    commands: list[Command] = []
    for file in module_files(path):
        try:
            module = import_module_from_path(file, "harmony_commands")
        except Exception:
            log.exception("commands.import_failed", file=str(file))
            continue
        commands.extend(collect_commands(module))
    return commands


def load_commands_from_package(package: str | ModuleType) -> list[Command]:
    pkg = importlib.import_module(package) if isinstance(package, str) else package
    commands: list[Command] = []
    for m in pkgutil.iter_modules(pkg.__path__, pkg.__name__ + "."):
        try:
            module = importlib.import_module(m.name)
        except Exception:
            log.exception("commands.import_failed", module=m.name)
            continue
        commands.extend(collect_commands(module))
    return commands
