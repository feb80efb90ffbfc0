from __future__ import annotations

import logging
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from projman.core.errors import GitProbeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def is_git_repository(path: str | Path) -> bool:
    return (Path(path) / ".git").exists()


def _git(path: str | Path, args: list[str], timeout: float) -> str | None:
    """
    Run `git -C <path> <args>` and return stripped stdout, or None on a non-zero exit.
    Raises GitProbeError only when git itself cannot be run.
    """
    cmd = ["git", "-C", str(path), *args]
    try:
        p = subprocess.run(cmd, text=True, capture_output=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise GitProbeError(f"git timed out after {timeout}s in {path}") from e
    except OSError as e:
        raise GitProbeError(f"Failed to execute git: {e}") from e

    if p.returncode != 0:
        logger.debug("git %s failed in %s: %s", " ".join(args), path, p.stderr.strip())
        return None
    return p.stdout.strip()


def last_commit_time(path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> datetime | None:
    """Author time of the most recent commit, in UTC. None for non-git paths or empty repos."""
    if not is_git_repository(path):
        return None

    out = _git(path, ["log", "-1", "--format=%aI"], timeout)
    if not out:
        return None
    try:
        return datetime.fromisoformat(out.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError as e:
        raise GitProbeError(f"Unexpected git timestamp {out!r}") from e


def remote_url(path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> str | None:
    if not is_git_repository(path):
        return None
    return _git(path, ["remote", "get-url", "origin"], timeout) or None


def current_branch(path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> str | None:
    if not is_git_repository(path):
        return None
    return _git(path, ["branch", "--show-current"], timeout) or None


def working_tree_status(path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> str | None:
    if not is_git_repository(path):
        return None
    out = _git(path, ["status", "--porcelain"], timeout)
    if out is None:
        return None
    if not out:
        return "clean"
    return f"{len(out.splitlines())} changes"
