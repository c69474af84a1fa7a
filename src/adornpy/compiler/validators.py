from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from adornpy.compiler.schema.provider import REF_PREFIX
from adornpy.domain.manifest import Manifest

logger = logging.getLogger(__name__)

META_FILE = "validators.meta.json"
DEFAULT_MODULE = "validators.py"

_HEADER = '''\
# Generated by adornpy. Do not edit.
from __future__ import annotations

import re
from typing import Any, NamedTuple, Optional


class ValidationResult(NamedTuple):
    ok: bool
    errors: Optional[list[dict[str, str]]]


_FORMATS = {
    "uuid": re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"),
    "date": re.compile(r"^\\d{4}-\\d{2}-\\d{2}$"),
    "date-time": re.compile(r"^\\d{4}-\\d{2}-\\d{2}[Tt ]\\d{2}:\\d{2}:\\d{2}(\\.\\d+)?([Zz]|[+-]\\d{2}:?\\d{2})?$"),
    "email": re.compile(r"^[^@\\s]+@[^@\\s]+\\.[^@\\s]+$"),
}


def _err(errors, path, message):
    errors.append({"path": path or "/", "message": message})


def _passes(fn, value, path):
    found = []
    fn(value, path, found)
    return not found


def _same(value, expected):
    # 1 == True in Python, not in JSON
    return value == expected and isinstance(value, bool) == isinstance(expected, bool)

'''

_FOOTER = '''

def _run(fn, data):
    if fn is None:
        return ValidationResult(True, None)
    errors = []
    fn(data, "", errors)
    return ValidationResult(not errors, errors or None)


def validate_body(operation_id: str, data: Any) -> ValidationResult:
    entry = validators.get(operation_id) or {}
    return _run(entry.get("body"), data)


def validate_response(operation_id: str, status: int, content_type: str, data: Any) -> ValidationResult:
    entry = validators.get(operation_id) or {}
    return _run((entry.get("response") or {}).get(f"{status}|{content_type}"), data)
'''

_TYPE_CHECKS = {
    "string": "isinstance(v, str)",
    "integer": "(isinstance(v, int) and not isinstance(v, bool))",
    "number": "(isinstance(v, (int, float)) and not isinstance(v, bool))",
    "boolean": "isinstance(v, bool)",
    "array": "isinstance(v, list)",
    "object": "isinstance(v, dict)",
    "null": "v is None",
}


class ValidatorCompileError(Exception):
    pass


@dataclass
class GeneratedValidators:
    code: str
    code_hash: str
    operations: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EmitResult:
    path: Path
    code_hash: str
    written: bool


def code_hash(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


class _CodeGen:
    """Compile JSON Schema dicts into flat checker functions ``_sN(v, p, errors)``."""

    def __init__(self, components: dict[str, Any]):
        self.components = components
        self.chunks: list[str] = []
        self.ref_funcs: dict[str, str] = {}
        self.counter = 0

    def snapshot(self) -> tuple[int, dict[str, str]]:
        return len(self.chunks), dict(self.ref_funcs)

    def restore(self, snap: tuple[int, dict[str, str]]) -> None:
        del self.chunks[snap[0]:]
        self.ref_funcs = snap[1]

    def _name(self) -> str:
        self.counter += 1
        return f"_s{self.counter}"

    def ref(self, ref: str) -> str:
        if not ref.startswith(REF_PREFIX):
            raise ValidatorCompileError(f"unsupported $ref {ref!r}")
        comp = ref[len(REF_PREFIX):]
        if comp in self.ref_funcs:
            return self.ref_funcs[comp]
        if comp not in self.components:
            raise ValidatorCompileError(f"unknown component {comp!r}")
        fn = self._name()
        # reserved before compiling so recursive schemas terminate
        self.ref_funcs[comp] = fn
        self._define(fn, self.components[comp], comment=comp)
        return fn

    def compile(self, schema: Any) -> str:
        if isinstance(schema, dict) and set(schema) == {"$ref"}:
            return self.ref(schema["$ref"])
        fn = self._name()
        self._define(fn, schema)
        return fn

    def _define(self, fn: str, schema: Any, comment: Optional[str] = None) -> None:
        if not isinstance(schema, dict):
            raise ValidatorCompileError(f"schema must be an object, got {type(schema).__name__}")
        body = self._body(schema)
        head = f"def {fn}(v, p, errors):" + (f"  # {comment}" if comment else "")
        self.chunks.append("\n".join([head] + [f"    {line}" for line in (body or ["pass"])]) + "\n")

    def _body(self, s: dict[str, Any]) -> list[str]:
        out: list[str] = []

        if "$ref" in s:
            out.append(f"{self.ref(s['$ref'])}(v, p, errors)")

        if "anyOf" in s:
            members = [self.compile(m) for m in s["anyOf"]]
            out.append(f"if not any(_passes(f, v, p) for f in ({', '.join(members)},)):")
            out.append('    _err(errors, p, "does not match any allowed schema")')
            out.append("    return")

        t = s.get("type")
        types = [t] if isinstance(t, str) else list(t or [])
        for name in types:
            if name not in _TYPE_CHECKS:
                raise ValidatorCompileError(f"unsupported type {name!r}")
        if "null" in types and len(types) > 1:
            out.append("if v is None:")
            out.append("    return")
            types = [x for x in types if x != "null"]
        if types:
            cond = " or ".join(_TYPE_CHECKS[x] for x in types)
            out.append(f"if not ({cond}):")
            out.append(f"    _err(errors, p, {('expected ' + ' or '.join(types))!r})")
            out.append("    return")

        if "const" in s:
            out.append(f"if not _same(v, {s['const']!r}):")
            out.append(f"    _err(errors, p, {('must equal ' + json.dumps(s['const']))!r})")
        if "enum" in s:
            values = tuple(s["enum"])
            out.append(f"if not any(_same(v, x) for x in {values!r}):")
            out.append(f"    _err(errors, p, {('must be one of ' + json.dumps(list(values)))!r})")

        out.extend(self._string(s))
        out.extend(self._number(s))

        if "items" in s:
            item_fn = self.compile(s["items"])
            out.append("if isinstance(v, list):")
            out.append("    for i, item in enumerate(v):")
            out.append(f'        {item_fn}(item, f"{{p}}/{{i}}", errors)')

        if "properties" in s or "required" in s or "additionalProperties" in s:
            out.extend(self._object(s))
        return out

    def _string(self, s: dict[str, Any]) -> list[str]:
        out: list[str] = []
        guard = "isinstance(v, str) and "
        if "minLength" in s:
            n = int(s["minLength"])
            out.append(f"if {guard}len(v) < {n}:")
            out.append(f'    _err(errors, p, "must have at least {n} characters")')
        if "maxLength" in s:
            n = int(s["maxLength"])
            out.append(f"if {guard}len(v) > {n}:")
            out.append(f'    _err(errors, p, "must have at most {n} characters")')
        if "pattern" in s:
            try:
                re.compile(s["pattern"])
            except re.error as exc:
                raise ValidatorCompileError(f"invalid pattern {s['pattern']!r}: {exc}") from exc
            out.append(f"if {guard}re.search({s['pattern']!r}, v) is None:")
            out.append(f"    _err(errors, p, {('must match pattern ' + s['pattern'])!r})")
        if "format" in s:
            fmt = str(s["format"])
            out.append(f"if {guard}{fmt!r} in _FORMATS and _FORMATS[{fmt!r}].match(v) is None:")
            out.append(f"    _err(errors, p, {('must be a valid ' + fmt)!r})")
        return out

    def _number(self, s: dict[str, Any]) -> list[str]:
        out: list[str] = []
        guard = "isinstance(v, (int, float)) and not isinstance(v, bool) and "
        if "minimum" in s:
            out.append(f"if {guard}v < {s['minimum']!r}:")
            out.append(f"    _err(errors, p, {('must be >= ' + str(s['minimum']))!r})")
        if "maximum" in s:
            out.append(f"if {guard}v > {s['maximum']!r}:")
            out.append(f"    _err(errors, p, {('must be <= ' + str(s['maximum']))!r})")
        return out

    def _object(self, s: dict[str, Any]) -> list[str]:
        out = ["if isinstance(v, dict):"]
        props: dict[str, Any] = s.get("properties") or {}
        for key in s.get("required") or []:
            out.append(f"    if {key!r} not in v:")
            out.append(f'        _err(errors, p + {("/" + key)!r}, "is required")')
        for key, sub in props.items():
            fn = self.compile(sub)
            out.append(f"    if {key!r} in v:")
            out.append(f"        {fn}(v[{key!r}], p + {('/' + key)!r}, errors)")
        additional = s.get("additionalProperties", True)
        known = tuple(props)
        if additional is False:
            out.append("    for k in v:")
            out.append(f"        if k not in {known!r}:")
            out.append('            _err(errors, f"{p}/{k}", "is not allowed")')
        elif isinstance(additional, dict):
            fn = self.compile(additional)
            out.append("    for k, item in v.items():")
            out.append(f"        if k not in {known!r}:")
            out.append(f'            {fn}(item, f"{{p}}/{{k}}", errors)')
        if len(out) == 1:
            out.append("    pass")
        return out


class ValidatorEmitter:
    """Compile request/response schemas into a standalone Python module.

    One checker per component, one entry per operation body and per
    ``status|contentType`` response. An operation whose schemas fail to
    compile is left without validators and a warning is logged.
    """

    def __init__(self, openapi: dict[str, Any], manifest: Manifest):
        self.openapi = openapi
        self.manifest = manifest

    def generate(self) -> GeneratedValidators:
        components = (self.openapi.get("components") or {}).get("schemas") or {}
        gen = _CodeGen(components)
        table: list[str] = []
        done: list[str] = []
        skipped: list[str] = []

        for op in self.manifest.operations():
            snap = gen.snapshot()
            try:
                parts: list[str] = []
                if op.args.body is not None:
                    parts.append(f'"body": {gen.ref(op.args.body.schema_ref)}')
                responses: list[str] = []
                for r in op.responses:
                    if r.schema_ref is None:
                        continue
                    schema: dict[str, Any] = {"$ref": r.schema_ref}
                    if r.is_array:
                        schema = {"type": "array", "items": schema}
                    responses.append(f'"{r.status}|{r.content_type}": {gen.compile(schema)}')
                if responses:
                    parts.append('"response": {' + ", ".join(responses) + "}")
            except ValidatorCompileError as exc:
                gen.restore(snap)
                skipped.append(op.operation_id)
                logger.warning("No validators for %s: %s", op.operation_id, exc)
                continue
            table.append(f"    {op.operation_id!r}: {{{', '.join(parts)}}},")
            done.append(op.operation_id)

        body = (
            _HEADER
            + "\n"
            + "\n\n".join(gen.chunks)
            + "\n\nvalidators = {\n"
            + "\n".join(table)
            + "\n}\n"
            + _FOOTER
        )
        h = code_hash(body)
        code = body + f'\nCODE_HASH = "{h}"\n'
        return GeneratedValidators(code=code, code_hash=h, operations=done, skipped=skipped)

    def emit(self, out_dir: Path, module_file: str = DEFAULT_MODULE) -> EmitResult:
        out_dir.mkdir(parents=True, exist_ok=True)
        generated = self.generate()
        target = out_dir / module_file
        meta_path = out_dir / META_FILE

        previous = read_meta(out_dir)
        if target.exists() and previous.get("codeHash") == generated.code_hash:
            logger.debug("validators unchanged (%s)", generated.code_hash[:12])
            return EmitResult(path=target, code_hash=generated.code_hash, written=False)

        target.write_text(generated.code, encoding="utf-8")
        meta_path.write_text(
            json.dumps(
                {
                    "codeHash": generated.code_hash,
                    "module": module_file,
                    "operations": generated.operations,
                    "skipped": generated.skipped,
                },
                indent=2,
            ),
            encoding="utf-8",
        )
        return EmitResult(path=target, code_hash=generated.code_hash, written=True)


def read_meta(out_dir: Path) -> dict[str, Any]:
    try:
        data = json.loads((out_dir / META_FILE).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
