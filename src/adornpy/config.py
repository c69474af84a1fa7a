from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from adornpy.cache.staleness import collect_config_chain

logger = logging.getLogger(__name__)


class AdornSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ADORNPY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Build
    package_name: str = "adornpy"  # framework package whose decorators mark controllers
    out_dir: Path = Path(".adorn")
    config_path: Optional[Path] = None  # pyproject.toml; discovered when unset
    max_files: Optional[int] = None

    # OpenAPI info
    title: str = "API"
    api_version: str = "1.0.0"

    # Validation
    validation_mode: Literal["none", "runtime", "precompiled"] = "precompiled"
    validate_responses: bool = False

    # Entity introspection (sqlite file + class name -> table)
    entity_db: Optional[Path] = None
    entity_tables: dict[str, str] = Field(default_factory=dict)

    def fingerprint(self) -> dict[str, Any]:
        """Settings that shape the artifacts; a change forces a rebuild."""
        return {
            "packageName": self.package_name,
            "maxFiles": self.max_files,
            "title": self.title,
            "apiVersion": self.api_version,
            "validationMode": self.validation_mode,
            "entityDb": str(self.entity_db) if self.entity_db is not None else None,
            "entityTables": dict(sorted(self.entity_tables.items())),
        }


def find_pyproject(start: Path) -> Optional[Path]:
    d = start.resolve()
    while True:
        candidate = d / "pyproject.toml"
        if candidate.is_file():
            return candidate
        if d.parent == d:
            return None
        d = d.parent


def _tool_table(path: Path) -> dict[str, Any]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return {}
    table = data.get("tool", {}).get("adornpy", {})
    return table if isinstance(table, dict) else {}


def load_settings(root: Path, **overrides: Any) -> AdornSettings:
    """Settings for a project rooted at ``root``.

    Precedence, lowest first: ``[tool.adornpy]`` in pyproject.toml (following
    its ``extends`` chain), ``ADORNPY_*`` environment variables, explicit
    overrides (CLI options). Relative paths resolve against ``root``.
    """
    settings = AdornSettings()
    config_path = overrides.get("config_path") or settings.config_path or find_pyproject(root)

    file_values: dict[str, Any] = {}
    if config_path is not None:
        # the chain runs leaf -> base; base values are overridden by the leaf
        for cfg in reversed(collect_config_chain(Path(config_path))):
            file_values.update({k.replace("-", "_"): v for k, v in _tool_table(cfg).items()})
    file_values.pop("extends", None)

    update = {
        k: v for k, v in file_values.items()
        if k in AdornSettings.model_fields and k not in settings.model_fields_set
    }
    update.update({k: v for k, v in overrides.items() if v is not None})
    update["config_path"] = Path(config_path) if config_path is not None else None

    merged = AdornSettings.model_validate({**settings.model_dump(), **update})
    for name in ("out_dir", "entity_db"):
        value = getattr(merged, name)
        if value is not None and not Path(value).is_absolute():
            merged = merged.model_copy(update={name: (root / value).resolve()})
    return merged
