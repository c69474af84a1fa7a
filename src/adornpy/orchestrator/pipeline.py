from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from adornpy.cache.artifacts import OPENAPI_FILE
from adornpy.cache.staleness import MANIFEST_FILE, StaleResult, is_stale, write_cache
from adornpy.compiler.manifest import ManifestBuilder
from adornpy.compiler.openapi import build_openapi
from adornpy.compiler.scanner import scan_controllers
from adornpy.compiler.schema.columns import SQLiteTableIntrospector
from adornpy.compiler.schema.translator import TypeSchemaTranslator
from adornpy.compiler.source import SourceProgram
from adornpy.compiler.validators import DEFAULT_MODULE, ValidatorEmitter
from adornpy.config import AdornSettings
from adornpy.domain.manifest import Manifest, ValidationInfo
from adornpy.repo.scanner import scan_python_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildResult:
    out_dir: Path
    skipped: bool
    stale: StaleResult
    files_scanned: int = 0
    controllers: int = 0
    operations: int = 0
    schemas: int = 0
    validators_written: bool = False
    manifest: Optional[Manifest] = None
    warnings: list[str] = field(default_factory=list)


def run_build(root: Path, settings: AdornSettings, force: bool = False) -> BuildResult:
    """Scan ``root``, then write manifest.json, openapi.json, validators and cache.json.

    Skips all work when the cache says the artifacts are current, unless
    ``force``. Manifest build errors propagate and leave previous artifacts
    untouched.
    """
    root = root.resolve()
    out_dir = settings.out_dir if settings.out_dir.is_absolute() else (root / settings.out_dir)
    out_dir = out_dir.resolve()

    fingerprint = settings.fingerprint()
    stale = is_stale(out_dir, settings.config_path, settings=fingerprint)
    if not force and not stale.stale:
        logger.info("Artifacts in %s are up to date", out_dir)
        return BuildResult(out_dir=out_dir, skipped=True, stale=stale)
    logger.info("Building (%s%s)", stale.reason, f": {stale.detail}" if stale.detail else "")

    py_files = scan_python_files(root, max_files=settings.max_files, exclude=[out_dir])
    logger.debug("%d python files under %s", len(py_files), root)

    program = SourceProgram.from_files(root, py_files, package_name=settings.package_name)
    controllers = scan_controllers(program)

    introspector = SQLiteTableIntrospector(settings.entity_db) if settings.entity_db else None
    translator = TypeSchemaTranslator(
        program, introspector=introspector, entity_tables=settings.entity_tables
    )
    builder = ManifestBuilder(program, translator)

    mode = settings.validation_mode
    manifest = builder.build(
        controllers,
        validation=ValidationInfo(
            mode=mode, precompiled_module=DEFAULT_MODULE if mode == "precompiled" else None
        ),
    )
    openapi = build_openapi(manifest, builder.registry, title=settings.title, version=settings.api_version)

    out_dir.mkdir(parents=True, exist_ok=True)
    written = False
    if mode == "precompiled":
        written = ValidatorEmitter(openapi, manifest).emit(out_dir).written
    (out_dir / OPENAPI_FILE).write_text(json.dumps(openapi, indent=2), encoding="utf-8")
    # manifest last: its presence marks a complete build
    (out_dir / MANIFEST_FILE).write_text(manifest.to_json(), encoding="utf-8")

    # every parsed module is an input, controller files or not
    write_cache(out_dir, py_files, config_path=settings.config_path, root=root, settings=fingerprint)

    ops = sum(len(c.operations) for c in manifest.controllers)
    logger.info(
        "Wrote %d operations from %d controllers to %s", ops, len(manifest.controllers), out_dir
    )
    return BuildResult(
        out_dir=out_dir,
        skipped=False,
        stale=stale,
        files_scanned=len(py_files),
        controllers=len(manifest.controllers),
        operations=ops,
        schemas=len(builder.registry.components()),
        validators_written=written,
        manifest=manifest,
        warnings=list(builder.warnings),
    )
