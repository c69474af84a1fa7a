from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Protocol

from adornpy.compiler.schema.nodes import (
    BooleanNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    RefNode,
    SchemaNode,
    StringNode,
)
from adornpy.compiler.schema.registry import SchemaRegistry

EntityMode = Literal["read", "create", "update"]

_LENGTH = re.compile(r"\((\d+)\)")


@dataclass(frozen=True)
class ColumnDef:
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    generated: bool = False
    has_default: bool = False


class EntityIntrospector(Protocol):
    def columns(self, table: str) -> list[ColumnDef]: ...


class SQLiteTableIntrospector:
    """Column definitions straight from ``PRAGMA table_info``."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self.db_path))
        con.row_factory = sqlite3.Row
        return con

    def columns(self, table: str) -> list[ColumnDef]:
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", table):
            raise ValueError(f"Invalid table name: {table!r}")
        with self._connect() as con:
            rows = con.execute(f"PRAGMA table_info({table});").fetchall()
        out: list[ColumnDef] = []
        for r in rows:
            is_pk = bool(r["pk"])
            col_type = str(r["type"] or "")
            out.append(
                ColumnDef(
                    name=r["name"],
                    type=col_type,
                    nullable=not r["notnull"] and not is_pk,
                    primary_key=is_pk,
                    # INTEGER PRIMARY KEY is the rowid alias, assigned by sqlite
                    generated=is_pk and col_type.upper() == "INTEGER",
                    has_default=r["dflt_value"] is not None,
                )
            )
        return out


def column_node(col: ColumnDef) -> SchemaNode:
    t = col.type.upper()
    node: SchemaNode
    if "INT" in t:
        node = NumberNode(integer=True)
    elif "BOOL" in t:
        node = BooleanNode()
    elif any(k in t for k in ("REAL", "FLOA", "DOUB", "NUMERIC", "DECIMAL")):
        node = NumberNode()
    elif "UUID" in t:
        node = StringNode(format="uuid")
    elif "TIMESTAMP" in t or "DATETIME" in t:
        node = StringNode(format="date-time")
    elif "DATE" in t:
        node = StringNode(format="date")
    elif "BLOB" in t:
        node = StringNode(format="byte")
    else:
        m = _LENGTH.search(t)
        node = StringNode(max_length=int(m.group(1))) if m else StringNode()
    if col.nullable:
        node = NullableNode(node)
    return node


def entity_object(columns: list[ColumnDef], mode: EntityMode = "read") -> ObjectNode:
    """Object schema for a table row.

    ``read``: every column, required. ``create``: generated columns dropped,
    nullable/defaulted columns optional. ``update``: generated columns
    dropped, everything optional.
    """
    properties: list[tuple[str, SchemaNode]] = []
    required: list[str] = []
    for col in columns:
        if mode != "read" and col.generated:
            continue
        node = column_node(col)
        optional = mode == "update" or (mode == "create" and (col.nullable or col.has_default))
        if optional:
            node = OptionalNode(node)
        else:
            required.append(col.name)
        properties.append((col.name, node))
    return ObjectNode(properties=tuple(properties), required=tuple(required), strict=True)


def hoist_entity(
    registry: SchemaRegistry,
    introspector: EntityIntrospector,
    table: str,
    mode: EntityMode = "read",
    name: Optional[str] = None,
) -> RefNode:
    key = ("entity", table, mode)
    existing = registry.lookup(key)
    if existing is not None:
        return RefNode(existing)
    preferred = name or (table.title().replace("_", "") + ("" if mode == "read" else mode.title()))
    hoisted = registry.reserve(key, preferred)
    registry.define(hoisted, entity_object(introspector.columns(table), mode))
    return RefNode(hoisted)
