from __future__ import annotations

import ast
import builtins
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Literal, Optional

from adornpy.compiler.types import TypeExpr, dotted_name, parse_annotation

logger = logging.getLogger(__name__)

BindingKind = Literal["import_module", "import_from", "class", "function", "alias", "typevar", "assign"]
ResolvedKind = Literal["external", "class", "alias", "local", "unknown"]

_BUILTIN_NAMES = set(dir(builtins))
_CANONICAL_MODULES = {
    "typing_extensions": "typing",
    "collections.abc": "typing",
}


@dataclass(frozen=True)
class Binding:
    kind: BindingKind
    target: str = ""
    attr: str = ""
    node: Optional[ast.AST] = field(default=None, compare=False)


@dataclass(frozen=True)
class FieldDecl:
    name: str
    annotation: Optional[TypeExpr]
    has_default: bool
    line: int


@dataclass(frozen=True, eq=False)
class ClassDecl:
    module: str
    name: str
    node: ast.ClassDef
    bases: tuple[TypeExpr, ...]
    fields: tuple[FieldDecl, ...]
    type_params: tuple[str, ...] = ()
    enum_values: tuple[Any, ...] = ()
    total: bool = True

    @property
    def qualname(self) -> str:
        return f"{self.module}.{self.name}"


@dataclass(frozen=True)
class Resolved:
    kind: ResolvedKind
    qualname: str = ""
    cls: Optional[ClassDecl] = None
    alias: Optional[TypeExpr] = None

    @property
    def last_name(self) -> str:
        return self.qualname.rsplit(".", 1)[-1]


@dataclass
class ModuleInfo:
    name: str
    path: Path
    tree: ast.Module
    package: str
    bindings: dict[str, Binding] = field(default_factory=dict)
    classes: dict[str, ClassDecl] = field(default_factory=dict)


UNKNOWN = Resolved(kind="unknown")


def module_name_for(root: Path, path: Path) -> str:
    rel = Path(os.path.relpath(str(path.resolve()), str(root.resolve())))
    parts = list(rel.with_suffix("").parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts) or "__main__"


class SourceProgram:
    """Parsed modules of a project plus module-level name resolution.

    Nothing is imported or executed; resolution follows ``import`` statements
    between scanned modules and stops at anything outside the project.
    """

    def __init__(self, root: Path, package_name: str = "adornpy"):
        self.root = root.resolve()
        self.package_name = package_name
        self.modules: dict[str, ModuleInfo] = {}

    @classmethod
    def from_files(
        cls, root: Path, files: Iterable[str | Path], package_name: str = "adornpy"
    ) -> "SourceProgram":
        program = cls(root, package_name=package_name)
        for f in files:
            program.add_file(Path(f))
        return program

    @classmethod
    def from_source(
        cls, source: str, module: str = "app", package_name: str = "adornpy"
    ) -> "SourceProgram":
        program = cls(Path("."), package_name=package_name)
        program.add_source(source, module=module, path=Path(f"{module.replace('.', '/')}.py"))
        return program

    def add_file(self, path: Path) -> Optional[ModuleInfo]:
        try:
            source = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return None
        return self.add_source(source, module=module_name_for(self.root, path), path=path)

    def add_source(self, source: str, module: str, path: Path) -> Optional[ModuleInfo]:
        try:
            tree = ast.parse(source, filename=str(path))
        except SyntaxError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            return None

        is_package = path.name == "__init__.py"
        package = module if is_package else module.rpartition(".")[0]
        info = ModuleInfo(name=module, path=path, tree=tree, package=package)
        self._collect_bindings(info, tree.body)
        self.modules[module] = info
        return info

    # ----------------------------
    # Bindings
    # ----------------------------

    def _collect_bindings(self, info: ModuleInfo, body: list[ast.stmt]) -> None:
        for stmt in body:
            if isinstance(stmt, ast.Import):
                for alias in stmt.names:
                    if alias.asname:
                        info.bindings[alias.asname] = Binding("import_module", target=alias.name)
                    else:
                        head = alias.name.split(".")[0]
                        info.bindings[head] = Binding("import_module", target=head)
            elif isinstance(stmt, ast.ImportFrom):
                target = self._absolute_module(info, stmt.module, stmt.level)
                for alias in stmt.names:
                    if alias.name == "*":
                        continue
                    info.bindings[alias.asname or alias.name] = Binding(
                        "import_from", target=target, attr=alias.name
                    )
            elif isinstance(stmt, ast.ClassDef):
                info.bindings[stmt.name] = Binding("class", target=info.name, node=stmt)
                info.classes[stmt.name] = self._class_decl(info, stmt)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                info.bindings[stmt.name] = Binding("function", target=info.name, node=stmt)
            elif isinstance(stmt, ast.Assign):
                kind = _assign_kind(stmt.value)
                for t in stmt.targets:
                    if isinstance(t, ast.Name):
                        info.bindings[t.id] = Binding(kind, target=info.name, node=stmt.value)
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                ann = dotted_name(stmt.annotation) or ""
                if ann.rsplit(".", 1)[-1] == "TypeAlias" and stmt.value is not None:
                    info.bindings[stmt.target.id] = Binding("alias", target=info.name, node=stmt.value)
                else:
                    info.bindings[stmt.target.id] = Binding("assign", target=info.name, node=stmt.value)
            elif hasattr(ast, "TypeAlias") and isinstance(stmt, ast.TypeAlias):
                if isinstance(stmt.name, ast.Name):
                    info.bindings[stmt.name.id] = Binding("alias", target=info.name, node=stmt.value)
            elif isinstance(stmt, ast.If):
                # `if TYPE_CHECKING:` imports count
                self._collect_bindings(info, stmt.body)
            elif isinstance(stmt, ast.Try):
                self._collect_bindings(info, stmt.body)

    def _absolute_module(self, info: ModuleInfo, module: Optional[str], level: int) -> str:
        if not level:
            return module or ""
        base = info.package.split(".") if info.package else []
        if level > 1:
            base = base[: len(base) - (level - 1)]
        if module:
            base = base + module.split(".")
        return ".".join(base)

    def _class_decl(self, info: ModuleInfo, node: ast.ClassDef) -> ClassDecl:
        bases = tuple(
            t for t in (parse_annotation(b, info.name) for b in node.bases) if t is not None
        )

        type_params: list[str] = []
        for b in bases:
            if b.kind == "subscript" and b.last_name == "Generic":
                type_params.extend(a.name for a in b.args if a.kind == "name")
        for tp in getattr(node, "type_params", None) or []:
            name = getattr(tp, "name", None)
            if isinstance(name, str):
                type_params.append(name)

        total = True
        for kw in node.keywords:
            if kw.arg == "total" and isinstance(kw.value, ast.Constant):
                total = bool(kw.value.value)

        fields: list[FieldDecl] = []
        enum_values: list[Any] = []
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                name = stmt.target.id
                if name.startswith("_") or name == "model_config":
                    continue
                ann = parse_annotation(stmt.annotation, info.name)
                if ann is not None and ann.last_name == "ClassVar":
                    continue
                fields.append(
                    FieldDecl(
                        name=name,
                        annotation=ann,
                        has_default=_has_default(stmt.value),
                        line=stmt.lineno,
                    )
                )
            elif isinstance(stmt, ast.Assign):
                for t in stmt.targets:
                    if isinstance(t, ast.Name) and not t.id.startswith("_"):
                        if isinstance(stmt.value, ast.Constant):
                            enum_values.append(stmt.value.value)

        return ClassDecl(
            module=info.name,
            name=node.name,
            node=node,
            bases=bases,
            fields=tuple(fields),
            type_params=tuple(dict.fromkeys(type_params)),
            enum_values=tuple(enum_values),
            total=total,
        )

    # ----------------------------
    # Resolution
    # ----------------------------

    def is_framework_module(self, module: str) -> bool:
        return module == self.package_name or module.startswith(self.package_name + ".")

    def resolve(self, module: str, dotted: str, _depth: int = 0) -> Resolved:
        if _depth > 16 or not dotted:
            return UNKNOWN

        head, _, rest = dotted.partition(".")
        info = self.modules.get(module)
        binding = info.bindings.get(head) if info else None

        if binding is None:
            if head in _BUILTIN_NAMES and not rest:
                return Resolved(kind="external", qualname=f"builtins.{head}")
            return UNKNOWN

        if binding.kind == "import_module":
            return self._resolve_in_module(binding.target, rest, _depth)

        if binding.kind == "import_from":
            submodule = f"{binding.target}.{binding.attr}"
            if submodule in self.modules and not self.is_framework_module(submodule):
                return self._resolve_in_module(submodule, rest, _depth)
            return self._resolve_in_module(
                binding.target, f"{binding.attr}.{rest}" if rest else binding.attr, _depth
            )

        if binding.kind == "class":
            if rest:
                return UNKNOWN
            decl = self.modules[binding.target].classes.get(head)
            return Resolved(kind="class", qualname=f"{binding.target}.{head}", cls=decl)

        if binding.kind == "alias" and not rest:
            return Resolved(
                kind="alias",
                qualname=f"{binding.target}.{head}",
                alias=parse_annotation(binding.node, binding.target),
            )

        return Resolved(kind="local", qualname=f"{binding.target}.{head}")

    def _resolve_in_module(self, module: str, rest: str, depth: int) -> Resolved:
        if module in self.modules and not self.is_framework_module(module):
            if not rest:
                return Resolved(kind="external", qualname=module)
            return self.resolve(module, rest, depth + 1)
        qualname = f"{module}.{rest}" if rest else module
        return Resolved(kind="external", qualname=_canonical(qualname))

    def resolve_type(self, expr: TypeExpr) -> Resolved:
        if expr.kind not in ("name", "subscript", "call"):
            return UNKNOWN
        return self.resolve(expr.module, expr.name)

    def framework_symbol(self, module: str, dotted: str) -> Optional[str]:
        """Name of the framework object ``dotted`` refers to, if it is one."""
        r = self.resolve(module, dotted)
        if r.kind != "external":
            return None
        mod, _, name = r.qualname.rpartition(".")
        if mod and self.is_framework_module(mod):
            return name
        return None


def _canonical(qualname: str) -> str:
    for prefix, repl in _CANONICAL_MODULES.items():
        if qualname.startswith(prefix + "."):
            return repl + qualname[len(prefix):]
    return qualname


def _assign_kind(value: ast.AST) -> BindingKind:
    if isinstance(value, ast.Call):
        fn = dotted_name(value.func) or ""
        if fn.rsplit(".", 1)[-1] == "TypeVar":
            return "typevar"
        return "assign"
    if isinstance(value, (ast.Subscript, ast.Name, ast.Attribute)):
        return "alias"
    if isinstance(value, ast.BinOp) and isinstance(value.op, ast.BitOr):
        return "alias"
    return "assign"


def _has_default(value: Optional[ast.AST]) -> bool:
    if value is None:
        return False
    if isinstance(value, ast.Call):
        fn = (dotted_name(value.func) or "").rsplit(".", 1)[-1]
        if fn in ("field", "Field"):
            if any(kw.arg in ("default", "default_factory") for kw in value.keywords):
                return True
            if value.args:
                first = value.args[0]
                return not (isinstance(first, ast.Constant) and first.value is Ellipsis)
            return False
    return True
