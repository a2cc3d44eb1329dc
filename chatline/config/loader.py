"""Reads chatline's TOML configuration files."""

import os
import tomllib
from pathlib import Path
from typing import Any


def get_config_dir() -> Path:
    """Directory holding the TOML files.

    ``CHATLINE_CONFIG_DIR`` wins; otherwise ``config/`` under the working
    directory, which may not exist when chatline is used as a library.
    """
    override = os.environ.get("CHATLINE_CONFIG_DIR")
    if not override:
        return Path.cwd() / "config"

    path = Path(override)
    if not path.is_dir():
        raise FileNotFoundError(f"Config directory not found: {override}")
    return path


def get_environment() -> str:
    return os.environ.get("CHATLINE_ENV", "development")


def load_toml(file_path: Path) -> dict[str, Any]:
    """Parse one TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, table by table."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def load_config() -> dict[str, Any]:
    """Merge ``default.toml`` and ``{CHATLINE_ENV}.toml``; both are optional."""
    config_dir = get_config_dir()
    config: dict[str, Any] = {}
    for name in ("default", get_environment()):
        path = config_dir / f"{name}.toml"
        if path.is_file():
            config = deep_merge(config, load_toml(path))
    return config
