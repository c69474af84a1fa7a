from __future__ import annotations

import importlib.util
import logging
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from adornpy.compiler.validators import DEFAULT_MODULE, ValidatorEmitter
from adornpy.domain.manifest import Manifest
from adornpy.errors import ArtifactLoadError, Issue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    ok: bool
    issues: tuple[Issue, ...] = ()


_PASS = Outcome(ok=True)


class ValidatorSet:
    """Thin wrapper over a generated validators module (or nothing)."""

    def __init__(self, module: Optional[types.ModuleType] = None, source: str = "none"):
        self.module = module
        self.source = source

    @property
    def enabled(self) -> bool:
        return self.module is not None

    @property
    def code_hash(self) -> Optional[str]:
        return getattr(self.module, "CODE_HASH", None) if self.module else None

    def check_body(self, operation_id: str, data: Any) -> Outcome:
        if self.module is None:
            return _PASS
        return _outcome(self.module.validate_body(operation_id, data))

    def check_response(self, operation_id: str, status: int, content_type: str, data: Any) -> Outcome:
        if self.module is None:
            return _PASS
        return _outcome(self.module.validate_response(operation_id, status, content_type, data))


def _outcome(result: Any) -> Outcome:
    if result.ok:
        return _PASS
    return Outcome(
        ok=False,
        issues=tuple(Issue(path=e.get("path", "/"), message=e.get("message", "")) for e in result.errors or ()),
    )


def load_precompiled(path: Path) -> types.ModuleType:
    if not path.exists():
        raise ArtifactLoadError(f"Precompiled validators not found: {path}. Run \"adornpy build\".")
    spec = importlib.util.spec_from_file_location(f"adornpy_generated_{abs(hash(str(path)))}", path)
    if spec is None or spec.loader is None:
        raise ArtifactLoadError(f"Cannot load validators module: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise ArtifactLoadError(f"Validators module failed to load: {path}: {exc}") from exc
    return module


def compile_in_memory(openapi: dict[str, Any], manifest: Manifest) -> types.ModuleType:
    generated = ValidatorEmitter(openapi, manifest).generate()
    module = types.ModuleType("adornpy_runtime_validators")
    exec(compile(generated.code, "<adornpy validators>", "exec"), module.__dict__)
    return module


def load_validators(
    out_dir: Path,
    manifest: Manifest,
    openapi: Optional[dict[str, Any]] = None,
) -> ValidatorSet:
    """Validators for the mode recorded in the manifest."""
    mode = manifest.validation.mode
    if mode == "none":
        return ValidatorSet()
    if mode == "precompiled":
        rel = manifest.validation.precompiled_module or DEFAULT_MODULE
        return ValidatorSet(load_precompiled(out_dir / rel), source="precompiled")
    if openapi is None:
        raise ArtifactLoadError("Runtime validation needs the OpenAPI document")
    logger.debug("compiling validators in memory for %d operations", sum(1 for _ in manifest.operations()))
    return ValidatorSet(compile_in_memory(openapi, manifest), source="runtime")
