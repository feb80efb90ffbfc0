from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from projman.config.config import RuntimeSettings
from projman.core.errors import ProjmanError
from projman.core.git import last_commit_time
from projman.projects.models import Project, now_utc
from projman.projects.registry import Registry
from projman.projects.store import load_registry, update_registry

logger = logging.getLogger(__name__)

GitProbe = Callable[[Path], datetime | None]


class RefreshBatch:
    """Handle on a set of detached refresh threads. Nobody is required to wait on it."""

    def __init__(self, threads: list[threading.Thread]) -> None:
        self.threads = threads

    def __len__(self) -> int:
        return len(self.threads)

    def wait(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        for t in self.threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            t.join(remaining)
        return self.done()

    def done(self) -> bool:
        return not any(t.is_alive() for t in self.threads)


class RefreshCoordinator:
    """
    Keeps each project's cached `git_updated_at` fresh.

    Every refresh unit is independent: it loads the store, probes git if the cached
    value is stale, then loads the store again to write the new value. Units share
    no memory with each other or with the caller; the store is the only channel.

    Two units can still load the same snapshot before either writes. The second
    write is conditional on the revision it loaded, so instead of silently
    discarding the first update it reloads and reapplies its own value. The final
    timestamp is always one of the probed values and no other field is lost.
    """

    def __init__(
        self,
        settings: RuntimeSettings,
        probe: GitProbe | None = None,
        attempts: int = 3,
    ) -> None:
        self.settings = settings
        self.probe = probe or self._default_probe
        self.attempts = attempts

    def _default_probe(self, path: Path) -> datetime | None:
        return last_commit_time(path, timeout=self.settings.git_timeout)

    def is_stale(self, project: Project, now: datetime | None = None) -> bool:
        if project.git_updated_at is None:
            return True
        age = (now or now_utc()) - project.git_updated_at
        return age >= self.settings.git_update_interval

    def refresh_project(self, project_id: str) -> datetime | None:
        """Run one refresh unit. Returns the stored timestamp, or None if nothing changed."""
        try:
            return self._refresh(project_id)
        except (ProjmanError, OSError) as e:
            logger.warning("Git refresh failed for project %s: %s", project_id, e)
            return None

    def _refresh(self, project_id: str) -> datetime | None:
        registry = load_registry(self.settings)
        project = registry.get_project(project_id)
        if project is None or not self.is_stale(project):
            return None

        git_time = self.probe(Path(project.path))
        if git_time is None:
            return None

        def _apply(reg: Registry) -> datetime | None:
            p = reg.get_project(project_id)
            if p is None:
                # Removed while we were probing.
                return None
            p.git_updated_at = git_time
            return git_time

        stored = update_registry(self.settings, _apply, attempts=self.attempts)
        if stored is not None:
            logger.debug("Refreshed git time for %s: %s", project.name, stored)
        return stored

    def dispatch(self, project_ids: Iterable[str]) -> RefreshBatch:
        """Start one detached daemon thread per project id and return immediately."""
        threads: list[threading.Thread] = []
        for pid in project_ids:
            t = threading.Thread(
                target=self.refresh_project,
                args=(pid,),
                name=f"pm-refresh-{pid[:8]}",
                daemon=True,
            )
            t.start()
            threads.append(t)
        return RefreshBatch(threads)
