from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, NamedTuple

from projman.core.validation import parse_time_duration
from projman.projects.models import Project, now_utc
from projman.projects.registry import Registry

logger = logging.getLogger(__name__)

DEFAULT_RECENT_DAYS = 30

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ProjectEntry(NamedTuple):
    project: Project
    last_accessed: datetime | None
    access_count: int


def recent_window(recent: str) -> timedelta:
    """Parse a recency string; invalid input falls back to the default window with a warning."""
    try:
        return parse_time_duration(recent)
    except ValueError:
        logger.warning(
            "Invalid time format: %s. Using default of %d days.", recent, DEFAULT_RECENT_DAYS
        )
        return timedelta(days=DEFAULT_RECENT_DAYS)


def matches_tags(project: Project, tags: Iterable[str] = (), tags_any: Iterable[str] = ()) -> bool:
    tags = list(tags)
    tags_any = list(tags_any)
    if tags and not all(t in project.tags for t in tags):
        return False
    if tags_any and not any(t in project.tags for t in tags_any):
        return False
    return True


def sort_key(project: Project) -> tuple:
    # None sorts below every timestamp once the list is reversed.
    git = project.git_updated_at
    return (git is not None, git or _EPOCH, project.updated_at, project.created_at)


def query_projects(
    registry: Registry,
    tags: Iterable[str] = (),
    tags_any: Iterable[str] = (),
    recent: str | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[ProjectEntry]:
    """
    Filter by AND-tags, OR-tags and recency, decorate with this machine's access
    info, sort newest activity first, then apply `limit`.
    """
    tags = list(tags)
    tags_any = list(tags_any)

    cutoff = None
    if recent:
        try:
            cutoff = (now or now_utc()) - recent_window(recent)
        except OverflowError:
            # Window reaches back past year 1: nothing is excluded.
            cutoff = _EPOCH

    entries: list[ProjectEntry] = []
    for p in registry:
        if not matches_tags(p, tags, tags_any):
            continue
        if cutoff is not None and p.last_activity < cutoff:
            continue
        last_accessed, access_count = registry.get_project_access_info(p.id)
        entries.append(ProjectEntry(p, last_accessed, access_count))

    entries.sort(key=lambda e: sort_key(e.project), reverse=True)

    if limit is not None:
        entries = entries[: max(0, limit)]
    return entries
