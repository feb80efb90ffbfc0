from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from projman.config.config import RuntimeSettings
from projman.projects.models import Project
from projman.projects.registry import Registry

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path) -> RuntimeSettings:
    return RuntimeSettings(home=tmp_path / "pm-home", machine_id="machine-a")


@pytest.fixture
def registry() -> Registry:
    return Registry(machine_id="machine-a")


@pytest.fixture
def make_project(tmp_path):
    def _make(
        name: str,
        tags: list[str] | None = None,
        git_updated_at: datetime | None = None,
        updated_at: datetime | None = None,
        created_at: datetime | None = None,
    ) -> Project:
        path = tmp_path / "projects" / name
        path.mkdir(parents=True, exist_ok=True)
        return Project(
            id=str(uuid.uuid4()),
            name=name,
            path=str(path.resolve()),
            tags=list(tags or []),
            created_at=created_at or BASE_TIME,
            updated_at=updated_at or BASE_TIME,
            git_updated_at=git_updated_at,
        )

    return _make
