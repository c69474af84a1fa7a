from __future__ import annotations

import re

_PARAM_ANGLE = re.compile(r"<(?:[A-Za-z_][A-Za-z0-9_]*:)?([A-Za-z_][A-Za-z0-9_]*)>")
_PARAM_COLON = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")
_PARAM_BRACE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    p = (path or "").strip()
    if not p.startswith("/"):
        p = "/" + p

    # normalize common param styles into "{param}"
    p = _PARAM_ANGLE.sub(r"{\1}", p)     # <id>, <int:id> -> {id}
    p = _PARAM_COLON.sub(r"{\1}", p)     # :id  -> {id}

    p = _MULTI_SLASH.sub("/", p)

    # keep "/" as-is, otherwise strip trailing slash for stability
    if p != "/" and p.endswith("/"):
        p = p[:-1]
    return p


def join_paths(base: str, path: str) -> str:
    return normalize_path(f"{base or ''}/{path or ''}")


def path_tokens(path: str) -> list[str]:
    """``/a/{id}/b/{id2}`` -> ``["id", "id2"]`` (``:id`` style accepted)."""
    return _PARAM_BRACE.findall(normalize_path(path))


def default_operation_id(controller: str, method_name: str) -> str:
    return f"{controller}_{method_name}"

