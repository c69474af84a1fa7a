from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from adornpy.cache.staleness import MANIFEST_FILE, mtime_ms
from adornpy.compiler.validators import DEFAULT_MODULE, META_FILE
from adornpy.domain.manifest import Manifest
from adornpy.errors import ArtifactLoadError
from adornpy.runtime.validation import ValidatorSet, load_validators

logger = logging.getLogger(__name__)

OPENAPI_FILE = "openapi.json"


@dataclass(frozen=True)
class Artifacts:
    """One consistent snapshot of a build's outputs."""

    out_dir: Path
    manifest: Manifest
    openapi: dict[str, Any]
    validators: ValidatorSet
    stamps: tuple[tuple[str, Optional[float]], ...]


def read_manifest(out_dir: Path) -> Manifest:
    path = out_dir / MANIFEST_FILE
    try:
        return Manifest.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ArtifactLoadError(f'Manifest not found at {path}. Run "adornpy build".') from exc
    except ValidationError as exc:
        raise ArtifactLoadError(f"Manifest at {path} is invalid: {exc}") from exc


def read_openapi(out_dir: Path) -> dict[str, Any]:
    path = out_dir / OPENAPI_FILE
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ArtifactLoadError(f"OpenAPI document unreadable at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ArtifactLoadError(f"OpenAPI document at {path} is not an object")
    return data


class ArtifactCache:
    """Loaded build artifacts, keyed by resolved output directory.

    A snapshot is replaced wholesale when any artifact mtime changes; readers
    never see a manifest paired with another build's validators.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Path, Artifacts] = {}

    def _stamps(self, out_dir: Path, manifest: Optional[Manifest] = None) -> tuple[tuple[str, Optional[float]], ...]:
        names = [MANIFEST_FILE, OPENAPI_FILE, META_FILE]
        module = DEFAULT_MODULE
        if manifest is not None and manifest.validation.precompiled_module:
            module = manifest.validation.precompiled_module
        names.append(module)
        return tuple((n, mtime_ms(out_dir / n)) for n in names)

    def get(self, out_dir: Path) -> Artifacts:
        key = out_dir.resolve()
        with self._lock:
            current = self._entries.get(key)
            if current is not None and self._stamps(key, current.manifest) == current.stamps:
                return current
            if current is not None:
                logger.info("artifacts in %s changed; reloading", key)
            loaded = self._load(key)
            self._entries[key] = loaded
            return loaded

    def invalidate(self, out_dir: Optional[Path] = None) -> None:
        with self._lock:
            if out_dir is None:
                self._entries.clear()
            else:
                self._entries.pop(out_dir.resolve(), None)

    def _load(self, out_dir: Path) -> Artifacts:
        manifest = read_manifest(out_dir)
        openapi = read_openapi(out_dir)
        stamps = self._stamps(out_dir, manifest)
        validators = load_validators(out_dir, manifest, openapi)
        return Artifacts(
            out_dir=out_dir, manifest=manifest, openapi=openapi, validators=validators, stamps=stamps
        )
