from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class Project:
    id: str
    name: str
    path: str
    created_at: datetime
    updated_at: datetime
    tags: list[str] = field(default_factory=list)
    description: str | None = None
    git_updated_at: datetime | None = None
    is_git_repository: bool = False

    @property
    def last_activity(self) -> datetime:
        return self.git_updated_at or self.updated_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "tags": list(self.tags),
            "description": self.description,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "git_updated_at": to_iso(self.git_updated_at),
            "is_git_repository": self.is_git_repository,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            path=str(data["path"]),
            tags=[str(t) for t in data.get("tags") or []],
            description=data.get("description"),
            created_at=parse_iso(data["created_at"]),
            updated_at=parse_iso(data["updated_at"]),
            git_updated_at=parse_iso(data.get("git_updated_at")),
            is_git_repository=bool(data.get("is_git_repository", False)),
        )


@dataclass
class AccessRecord:
    last_accessed: datetime | None = None
    access_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"last_accessed": to_iso(self.last_accessed), "access_count": self.access_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessRecord":
        return cls(
            last_accessed=parse_iso(data.get("last_accessed")),
            access_count=max(0, int(data.get("access_count", 0))),
        )


@dataclass
class MachineMetadata:
    """Access records of one machine, keyed by project id."""

    access: dict[str, AccessRecord] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"access": {pid: rec.to_dict() for pid, rec in self.access.items()}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MachineMetadata":
        access = data.get("access") or {}
        return cls(access={str(pid): AccessRecord.from_dict(rec) for pid, rec in access.items()})


@dataclass
class RegistrySettings:
    show_git_status: bool = False
    recent_projects_limit: int = 0
    projects_root_dir: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "show_git_status": self.show_git_status,
            "recent_projects_limit": self.recent_projects_limit,
            "projects_root_dir": self.projects_root_dir,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegistrySettings":
        return cls(
            show_git_status=bool(data.get("show_git_status", False)),
            recent_projects_limit=max(0, int(data.get("recent_projects_limit", 0))),
            projects_root_dir=str(data.get("projects_root_dir") or ""),
        )
