from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from projman.config.config import RuntimeSettings
from projman.core.errors import (
    RevisionConflictError,
    StoreCorruptError,
    StoreNotFoundError,
    StoreWriteError,
)
from projman.projects.registry import Registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_UPDATE_ATTEMPTS = 5


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise StoreNotFoundError(f"Registry not found at {path} (run: pm init)")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise StoreCorruptError(f"Failed reading registry {path}: {e}") from e
    if not isinstance(data, dict):
        raise StoreCorruptError(f"Registry {path} does not contain a JSON object")
    return data


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Temp file in the same directory so os.replace stays atomic.
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", delete=False, dir=str(path.parent), prefix=".registry-", suffix=".tmp"
        ) as tmp:
            tmp.write(json.dumps(payload, indent=2, ensure_ascii=False))
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StoreWriteError(f"Failed writing registry {path}: {e}") from e


@contextmanager
def _store_lock(lock_file: Path) -> Iterator[None]:
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        yield
    finally:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


def _stored_revision(path: Path) -> int:
    try:
        return int(_read_json(path).get("revision", 0))
    except (StoreNotFoundError, StoreCorruptError, TypeError, ValueError):
        return 0


def load_registry(settings: RuntimeSettings) -> Registry:
    data = _read_json(settings.registry_path)
    try:
        return Registry.from_dict(data, machine_id=settings.machine_id)
    except (KeyError, TypeError, ValueError) as e:
        raise StoreCorruptError(f"Malformed registry {settings.registry_path}: {e}") from e


def save_registry(
    registry: Registry,
    settings: RuntimeSettings,
    expected_revision: int | None = None,
) -> None:
    """
    Atomically replace the stored snapshot with `registry`.

    With `expected_revision`, the write only happens if the stored revision still
    matches; otherwise RevisionConflictError is raised and nothing is written.
    Without it the save is last-writer-wins.
    """
    path = settings.registry_path
    with _store_lock(settings.lock_path):
        current = _stored_revision(path)
        if expected_revision is not None and current != expected_revision:
            raise RevisionConflictError(expected_revision, current)

        new_revision = max(current, registry.revision) + 1
        payload = registry.to_dict()
        payload["revision"] = new_revision
        _write_json(path, payload)
        registry.revision = new_revision


def update_registry(
    settings: RuntimeSettings,
    mutate: Callable[[Registry], T],
    attempts: int = DEFAULT_UPDATE_ATTEMPTS,
) -> T:
    """
    Load, apply `mutate`, and save conditionally on the loaded revision.
    The whole cycle is retried when another writer got there first.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        registry = load_registry(settings)
        result = mutate(registry)
        try:
            save_registry(registry, settings, expected_revision=registry.revision)
            return result
        except RevisionConflictError as e:
            if attempt == attempts:
                raise
            logger.debug("Registry update conflict (attempt %d/%d): %s", attempt, attempts, e)
    raise AssertionError("unreachable")


def init_store(settings: RuntimeSettings) -> bool:
    """Create an empty registry file if none exists. Returns True when one was created."""
    if settings.registry_path.exists():
        return False
    try:
        save_registry(Registry(machine_id=settings.machine_id), settings, expected_revision=0)
    except RevisionConflictError:
        # Another process created it between the check and the lock.
        return False
    return True
