from __future__ import annotations

import hashlib
import os
import platform
import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from projman.config.paths import lock_path, pm_home, registry_path

DEFAULT_GIT_UPDATE_HOURS = 24
DEFAULT_GIT_TIMEOUT = 10.0
DEFAULT_EDITOR = "vi"

# Persisted user settings (stored inside the registry) and their types.
SETTING_TYPES: dict[str, type] = {
    "show_git_status": bool,
    "recent_projects_limit": int,
    "projects_root_dir": str,
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class RuntimeSettings:
    """
    Process-wide settings, computed once at startup and passed explicitly.
    """

    home: Path
    machine_id: str
    git_update_interval: timedelta = timedelta(hours=DEFAULT_GIT_UPDATE_HOURS)
    git_timeout: float = DEFAULT_GIT_TIMEOUT
    editor: str = DEFAULT_EDITOR

    @property
    def registry_path(self) -> Path:
        return registry_path(self.home)

    @property
    def lock_path(self) -> Path:
        return lock_path(self.home)


def derive_machine_id() -> str:
    raw = f"{platform.node()}-{uuid.getnode():012x}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def _env_number(name: str, default: float) -> float:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _env_editor() -> str:
    for name in ("VISUAL", "EDITOR"):
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return DEFAULT_EDITOR


def load_runtime_settings() -> RuntimeSettings:
    machine_id = os.environ.get("PM_MACHINE_ID", "").strip() or derive_machine_id()
    hours = _env_number("PM_GIT_UPDATE_HOURS", DEFAULT_GIT_UPDATE_HOURS)
    return RuntimeSettings(
        home=pm_home(),
        machine_id=machine_id,
        git_update_interval=timedelta(hours=hours),
        git_timeout=_env_number("PM_GIT_TIMEOUT", DEFAULT_GIT_TIMEOUT),
        editor=_env_editor(),
    )


def coerce_setting(key: str, value: str) -> Any:
    """Convert a command-line string into the stored type for `key`."""
    if key not in SETTING_TYPES:
        known = ", ".join(sorted(SETTING_TYPES))
        raise KeyError(f"Unknown setting '{key}' (known: {known})")

    kind = SETTING_TYPES[key]
    if kind is str:
        text = value.strip()
        # An empty path clears the root; relative adds then resolve against the cwd.
        return str(Path(text).expanduser().resolve()) if text else ""

    text = value.strip().lower()
    if kind is bool:
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Setting '{key}' expects true/false, got {value!r}")

    try:
        number = int(text)
    except ValueError as e:
        raise ValueError(f"Setting '{key}' expects an integer, got {value!r}") from e
    if number < 0:
        raise ValueError(f"Setting '{key}' must be >= 0")
    return number
