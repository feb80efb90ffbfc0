from __future__ import annotations

import os
from pathlib import Path

def pm_home() -> Path:
    base = Path(os.environ.get("PM_HOME", Path.home() / ".pm")).expanduser()
    base.mkdir(parents=True, exist_ok=True)
    return base

def registry_path(home: Path | None = None) -> Path:
    return (home or pm_home()) / "registry.json"

def lock_path(home: Path | None = None) -> Path:
    return (home or pm_home()) / "registry.lock"
