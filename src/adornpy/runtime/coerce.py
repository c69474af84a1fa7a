from __future__ import annotations

import re
from typing import Any, Mapping, Optional

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}
_INT = re.compile(r"^[+-]?\d+$")
_DEEP_KEY = re.compile(r"\[([^\]]*)\]")


class CoercionError(ValueError):
    pass


def coerce_scalar(raw: Any, schema_type: Optional[str]) -> Any:
    """Turn a raw string from the path/query/header into its declared JSON type."""
    if raw is None or not isinstance(raw, str):
        return raw
    if schema_type == "integer":
        if not _INT.match(raw.strip()):
            raise CoercionError(f"expected integer, got {raw!r}")
        return int(raw)
    if schema_type == "number":
        try:
            return float(raw) if any(c in raw for c in ".eE") else int(raw)
        except ValueError:
            raise CoercionError(f"expected number, got {raw!r}") from None
    if schema_type == "boolean":
        v = raw.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
        raise CoercionError(f"expected boolean, got {raw!r}")
    return raw


def coerce_value(raw: Any, schema: Optional[Mapping[str, Any]], schema_type: Optional[str]) -> Any:
    """Like ``coerce_scalar`` but arrays coerce each item (repeated keys or ``a,b,c``)."""
    if schema_type == "array":
        items = raw if isinstance(raw, list) else ([] if raw in (None, "") else str(raw).split(","))
        item_schema = (schema or {}).get("items") or {}
        item_type = item_schema.get("type") if isinstance(item_schema.get("type"), str) else None
        return [coerce_scalar(i, item_type) for i in items]
    if isinstance(raw, list):
        raw = raw[-1] if raw else None
    return coerce_scalar(raw, schema_type)


def deep_object(query: Mapping[str, Any], name: str) -> Optional[dict[str, Any]]:
    """Collect ``name[a][b]=v`` query keys into ``{"a": {"b": v}}``."""
    prefix = f"{name}["
    out: dict[str, Any] = {}
    found = False
    for key, value in query.items():
        if not key.startswith(prefix):
            continue
        parts = _DEEP_KEY.findall(key[len(name):])
        if not parts:
            continue
        found = True
        node = out
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value[-1] if isinstance(value, list) and value else value
    return out if found else None


def header_lookup(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for k, v in headers.items():
        if k.lower() == lowered:
            return v
    return None
