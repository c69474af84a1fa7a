from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from adornpy.repo.ignore import should_ignore_dir


def scan_python_files(
    root: Path, max_files: int | None = None, exclude: Iterable[Path] = ()
) -> list[Path]:
    """
    Sorted absolute paths of .py files under root.
    Build output, virtualenvs and dependency trees are pruned, as is every
    directory in ``exclude`` (the artifact output dir, typically).
    """
    extra = tuple(exclude)
    out: list[Path] = []
    for dirpath, dirs, files in os.walk(root):
        here = Path(dirpath)
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(here / d, extra))
        for f in sorted(files):
            if f.endswith(".py"):
                out.append((here / f).resolve())
                if max_files is not None and len(out) >= max_files:
                    return out
    return out
