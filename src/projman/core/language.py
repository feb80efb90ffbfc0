from __future__ import annotations

from collections import Counter
from pathlib import Path

EXTENSION_LANGUAGES = {
    "rs": "Rust",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "py": "Python",
    "go": "Go",
    "java": "Java",
    "cpp": "C++",
    "cc": "C++",
    "cxx": "C++",
    "c": "C",
    "rb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "kt": "Kotlin",
    "dart": "Dart",
    "scala": "Scala",
    "clj": "Clojure",
    "hs": "Haskell",
    "ml": "OCaml",
    "fs": "F#",
    "elm": "Elm",
    "ex": "Elixir",
    "exs": "Elixir",
    "erl": "Erlang",
    "lua": "Lua",
    "r": "R",
    "jl": "Julia",
    "nim": "Nim",
    "zig": "Zig",
    "cr": "Crystal",
    "v": "V",
    "d": "D",
}


def detect_project_language(path: str | Path) -> str | None:
    """
    Most common language among the top-level files of `path` (not recursive).
    """
    root = Path(path)
    if not root.is_dir():
        return None

    counts: Counter[str] = Counter()
    for p in root.iterdir():
        if not p.is_file():
            continue
        lang = EXTENSION_LANGUAGES.get(p.suffix.lstrip("."))
        if lang:
            counts[lang] += 1

    if not counts:
        return None
    return counts.most_common(1)[0][0]
