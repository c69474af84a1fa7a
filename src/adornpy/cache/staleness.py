from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from adornpy.domain.manifest import CacheFile, CacheGenerator, LockfileStamp, ProjectStamp
from adornpy.version import __version__

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
CACHE_FILE = "cache.json"
LOCKFILES = ("uv.lock", "poetry.lock", "pdm.lock", "Pipfile.lock")

_EPSILON_MS = 0.0001


@dataclass(frozen=True)
class StaleResult:
    stale: bool
    reason: str
    detail: Optional[str] = None


def mtime_ms(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime_ns / 1_000_000
    except OSError:
        return None


def collect_config_chain(config_path: Path) -> list[Path]:
    """``pyproject.toml`` followed by every file named by ``[tool.adornpy].extends``.

    Relative ``extends`` values resolve against the file that names them.
    Cycles are cut; unreadable files end the chain.
    """
    out: list[Path] = []
    seen: set[Path] = set()
    current: Optional[Path] = config_path.resolve()
    while current is not None and current not in seen:
        seen.add(current)
        out.append(current)
        try:
            data = tomllib.loads(current.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            break
        ext = data.get("tool", {}).get("adornpy", {}).get("extends") if current.suffix == ".toml" else None
        if not isinstance(ext, str) or not ext:
            break
        nxt = (current.parent / ext).resolve()
        if nxt.is_dir():
            nxt = nxt / "pyproject.toml"
        current = nxt
    return out


def find_lockfile(start_dir: Path, max_depth: int = 20) -> Optional[LockfileStamp]:
    d = start_dir.resolve()
    for _ in range(max_depth):
        for name in LOCKFILES:
            p = d / name
            mt = mtime_ms(p)
            if mt is not None:
                return LockfileStamp(path=str(p), mtime_ms=mt)
        if d.parent == d:
            break
        d = d.parent
    return None


def read_cache(out_dir: Path) -> Optional[CacheFile]:
    try:
        return CacheFile.model_validate_json((out_dir / CACHE_FILE).read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError):
        return None


def _differs(a: Optional[float], b: Optional[float]) -> bool:
    return a is None or b is None or abs(a - b) > _EPSILON_MS


def is_stale(
    out_dir: Path,
    config_path: Optional[Path] = None,
    generator_version: str = __version__,
    settings: Optional[Mapping[str, Any]] = None,
) -> StaleResult:
    """Whether artifacts in ``out_dir`` must be regenerated.

    Checks, in order: manifest, cache, generator version, config path, build
    settings (when given), config chain mtimes, lockfile, inputs. Any read
    failure counts as stale.
    """
    out_dir = out_dir.resolve()
    if not (out_dir / MANIFEST_FILE).exists():
        return StaleResult(True, "missing-manifest")

    cache = read_cache(out_dir)
    if cache is None:
        return StaleResult(True, "missing-cache")

    if cache.generator.version != generator_version:
        return StaleResult(
            True, "generator-version-changed", f"{cache.generator.version} -> {generator_version}"
        )

    config_abs = str(config_path.resolve()) if config_path is not None else None
    cached_config = str(Path(cache.project.config_path).resolve()) if cache.project.config_path else None
    if cached_config != config_abs:
        return StaleResult(True, "config-changed", "different project config path")

    if settings is not None and cache.settings != dict(settings):
        changed = sorted(
            k for k in set(settings) | set(cache.settings or {})
            if (cache.settings or {}).get(k) != settings.get(k)
        )
        return StaleResult(True, "settings-changed", ", ".join(changed))

    if config_path is not None:
        for cfg in collect_config_chain(config_path):
            mt = mtime_ms(cfg)
            if mt is None:
                return StaleResult(True, "config-missing", str(cfg))
            if _differs(cache.project.config_files.get(str(cfg)), mt):
                return StaleResult(True, "config-updated", str(cfg))

    lock = cache.project.lockfile
    if lock is not None and lock.path:
        mt = mtime_ms(Path(lock.path))
        if mt is None:
            return StaleResult(True, "lockfile-missing", lock.path)
        if _differs(lock.mtime_ms, mt):
            return StaleResult(True, "lockfile-updated", lock.path)

    for file, cached in cache.inputs.items():
        mt = mtime_ms(Path(file))
        if mt is None:
            return StaleResult(True, "input-missing", file)
        if _differs(cached, mt):
            return StaleResult(True, "input-updated", file)

    return StaleResult(False, "up-to-date")


def write_cache(
    out_dir: Path,
    inputs: Iterable[Path],
    config_path: Optional[Path] = None,
    root: Optional[Path] = None,
    generator_version: str = __version__,
    settings: Optional[Mapping[str, Any]] = None,
) -> CacheFile:
    out_dir = out_dir.resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    config_files: dict[str, float] = {}
    if config_path is not None:
        for cfg in collect_config_chain(config_path):
            mt = mtime_ms(cfg)
            if mt is not None:
                config_files[str(cfg)] = mt

    lock_start = config_path.resolve().parent if config_path is not None else (root or out_dir.parent)
    stamps: dict[str, float] = {}
    for f in inputs:
        mt = mtime_ms(f)
        if mt is not None:
            stamps[str(f.resolve())] = mt

    cache = CacheFile(
        generator=CacheGenerator(version=generator_version),
        project=ProjectStamp(
            config_path=str(config_path.resolve()) if config_path is not None else None,
            config_files=config_files,
            lockfile=find_lockfile(lock_start),
        ),
        settings=dict(settings) if settings is not None else None,
        inputs=stamps,
    )
    (out_dir / CACHE_FILE).write_text(cache.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.debug("wrote %s (%d inputs)", out_dir / CACHE_FILE, len(stamps))
    return cache
