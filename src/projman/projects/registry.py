from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from projman.core.errors import DuplicateProjectError, GitProbeError, ProjectNotFoundError
from projman.core.git import is_git_repository, last_commit_time
from projman.core.validation import resolve_path, validate_path
from projman.projects.models import (
    AccessRecord,
    MachineMetadata,
    Project,
    RegistrySettings,
    now_utc,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


def _same_path(a: str, b: str) -> bool:
    return resolve_path(a) == resolve_path(b)


def _cwd_relative(path: str) -> bool:
    first = path.replace(os.sep, "/").split("/", 1)[0]
    return first in (".", "..")


def new_project(
    path: str | Path,
    name: str | None = None,
    tags: list[str] | None = None,
    description: str | None = None,
    probe: Callable[[Path], datetime | None] = last_commit_time,
    root: str | Path | None = None,
) -> Project:
    """
    Build a Project for an existing directory. This is the only place projects are
    created, so `is_git_repository` is always derived the same way.

    A bare relative `path` ("api", "work/api") is taken relative to `root` when one
    is given. Absolute paths and paths starting with "." or ".." always resolve
    against the current directory.
    """
    candidate = Path(path).expanduser()
    if root and not candidate.is_absolute() and not _cwd_relative(str(path)):
        candidate = Path(root).expanduser() / candidate
    resolved = validate_path(candidate)
    is_git = is_git_repository(resolved)

    git_updated_at = None
    if is_git:
        try:
            git_updated_at = probe(resolved)
        except GitProbeError as e:
            logger.warning("Could not read git history for %s: %s", resolved, e)

    now = now_utc()
    return Project(
        id=str(uuid.uuid4()),
        name=name or resolved.name or "unnamed-project",
        path=str(resolved),
        tags=list(tags or []),
        description=description,
        created_at=now,
        updated_at=now,
        git_updated_at=git_updated_at,
        is_git_repository=is_git,
    )


class Registry:
    """
    In-memory registry snapshot: projects, per-machine access records and settings.
    Bound to one machine id; access tracking always applies to that machine.
    """

    def __init__(
        self,
        machine_id: str,
        projects: dict[str, Project] | None = None,
        machine_metadata: dict[str, MachineMetadata] | None = None,
        settings: RegistrySettings | None = None,
        version: str = FORMAT_VERSION,
        revision: int = 0,
    ) -> None:
        self.machine_id = machine_id
        self.projects: dict[str, Project] = projects if projects is not None else {}
        self.machine_metadata: dict[str, MachineMetadata] = (
            machine_metadata if machine_metadata is not None else {}
        )
        self.settings = settings or RegistrySettings()
        self.version = version
        self.revision = revision

    def __len__(self) -> int:
        return len(self.projects)

    def __iter__(self) -> Iterator[Project]:
        return iter(self.projects.values())

    def project_names(self) -> list[str]:
        return [p.name for p in self.projects.values()]

    # -----------------------------
    # Projects
    # -----------------------------

    def add_project(self, project: Project) -> None:
        self.projects[project.id] = project

    def register_project(self, project: Project) -> Project:
        """Add `project` after checking that no existing project shares its name or path."""
        for p in self.projects.values():
            if p.name == project.name:
                raise DuplicateProjectError(f"A project named '{project.name}' already exists")
            if _same_path(p.path, project.path):
                raise DuplicateProjectError(
                    f"Path {project.path} is already tracked as '{p.name}'"
                )
        self.add_project(project)
        return project

    def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    def require_project(self, project_id: str) -> Project:
        p = self.projects.get(project_id)
        if p is None:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        return p

    def find_project_by_name(self, name: str) -> Project | None:
        for p in self.projects.values():
            if p.name == name:
                return p
        return None

    def find_project_by_path(self, path: str | Path) -> Project | None:
        wanted = str(path)
        for p in self.projects.values():
            if _same_path(p.path, wanted):
                return p
        return None

    def rename_project(self, project_id: str, name: str) -> Project:
        p = self.require_project(project_id)
        other = self.find_project_by_name(name)
        if other is not None and other.id != project_id:
            raise DuplicateProjectError(f"A project named '{name}' already exists")
        p.name = name
        p.updated_at = now_utc()
        return p

    def remove_project(self, project_id: str) -> Project:
        if project_id not in self.projects:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")

        for meta in self.machine_metadata.values():
            meta.access.pop(project_id, None)
        return self.projects.pop(project_id)

    # -----------------------------
    # Access tracking
    # -----------------------------

    def _machine(self) -> MachineMetadata:
        meta = self.machine_metadata.get(self.machine_id)
        if meta is None:
            meta = MachineMetadata()
            self.machine_metadata[self.machine_id] = meta
        return meta

    def record_project_access(self, project_id: str) -> AccessRecord:
        self.require_project(project_id)
        access = self._machine().access
        rec = access.get(project_id)
        if rec is None:
            rec = AccessRecord()
            access[project_id] = rec
        rec.last_accessed = now_utc()
        rec.access_count += 1
        return rec

    def get_project_access_info(self, project_id: str) -> tuple[datetime | None, int]:
        meta = self.machine_metadata.get(self.machine_id)
        rec = meta.access.get(project_id) if meta else None
        if rec is None:
            return None, 0
        return rec.last_accessed, rec.access_count

    def get_total_access_count(self, project_id: str) -> int:
        total = 0
        for meta in self.machine_metadata.values():
            rec = meta.access.get(project_id)
            if rec:
                total += rec.access_count
        return total

    # -----------------------------
    # Serialization
    # -----------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "revision": self.revision,
            "settings": self.settings.to_dict(),
            "projects": {pid: p.to_dict() for pid, p in self.projects.items()},
            "machine_metadata": {mid: m.to_dict() for mid, m in self.machine_metadata.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], machine_id: str) -> "Registry":
        projects = {}
        for p in (data.get("projects") or {}).values():
            proj = Project.from_dict(p)
            projects[proj.id] = proj
        machines = {
            str(mid): MachineMetadata.from_dict(m)
            for mid, m in (data.get("machine_metadata") or {}).items()
        }
        return cls(
            machine_id=machine_id,
            projects=projects,
            machine_metadata=machines,
            settings=RegistrySettings.from_dict(data.get("settings") or {}),
            version=str(data.get("version", FORMAT_VERSION)),
            revision=int(data.get("revision", 0)),
        )
