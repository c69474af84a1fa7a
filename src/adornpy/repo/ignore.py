from __future__ import annotations

from pathlib import Path
from typing import Iterable

DEFAULT_IGNORES = {
    ".git",
    ".venv",
    "venv",
    "env",
    "__pycache__",
    "site-packages",
    "node_modules",
    "dist",
    "build",
    ".tox",
    ".nox",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
    ".adorn",
}


def should_ignore_dir(dir_path: Path, extra: Iterable[Path] = ()) -> bool:
    if dir_path.name in DEFAULT_IGNORES or dir_path.name.endswith(".egg-info"):
        return True
    resolved = dir_path.resolve()
    return any(resolved == p.resolve() for p in extra)
