from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


DEFAULT_SETTINGS_PATH = Path("config/settings.yaml")


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError("settings.yaml must be a mapping/object")

    return data


def settings_section(settings: dict[str, Any], name: str) -> dict[str, Any]:
    """Return ``settings[name]`` as a mapping; absent or null sections are empty."""
    section = settings.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"settings section '{name}' must be a mapping/object")
    return section
