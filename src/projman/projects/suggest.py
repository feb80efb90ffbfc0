from __future__ import annotations

from typing import Iterable

PREFIX_LEN = 3


def is_similar(candidate: str, target: str) -> bool:
    """
    Cheap name similarity: substring either way, or the same first three characters.
    All comparisons ignore case. Not edit-distance based.
    """
    c = candidate.lower()
    t = target.lower()
    return t in c or c in t or c[:PREFIX_LEN] == t[:PREFIX_LEN]


def suggest_similar_projects(names: Iterable[str], target: str) -> list[str]:
    return sorted(n for n in names if is_similar(n, target))
