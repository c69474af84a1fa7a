import ast
import sqlite3
from pathlib import Path

from adornpy.compiler.schema.columns import (
    ColumnDef,
    SQLiteTableIntrospector,
    column_node,
    entity_object,
    hoist_entity,
)
from adornpy.compiler.schema.nodes import (
    NullableNode,
    NumberNode,
    OptionalNode,
    RefNode,
    StringNode,
)
from adornpy.compiler.schema.registry import SchemaRegistry
from adornpy.compiler.schema.translator import TypeSchemaTranslator
from adornpy.compiler.source import SourceProgram
from adornpy.compiler.types import parse_annotation


def _db(tmp_path: Path) -> Path:
    db = tmp_path / "app.db"
    con = sqlite3.connect(str(db))
    con.execute(
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            email VARCHAR(120) NOT NULL,
            nickname TEXT,
            active BOOLEAN NOT NULL DEFAULT 1,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    con.commit()
    con.close()
    return db


def test_sqlite_columns(tmp_path: Path):
    cols = SQLiteTableIntrospector(_db(tmp_path)).columns("users")
    by_name = {c.name: c for c in cols}
    assert list(by_name) == ["id", "email", "nickname", "active", "created_at"]
    assert by_name["id"].primary_key and by_name["id"].generated
    assert by_name["id"].nullable is False
    assert by_name["email"].nullable is False
    assert by_name["nickname"].nullable is True
    assert by_name["active"].has_default is True


def test_column_types_map_to_nodes():
    assert column_node(ColumnDef("n", "INTEGER", nullable=False)) == NumberNode(integer=True)
    assert column_node(ColumnDef("n", "VARCHAR(12)", nullable=False)) == StringNode(max_length=12)
    assert column_node(ColumnDef("n", "TIMESTAMP", nullable=False)) == StringNode(format="date-time")
    assert column_node(ColumnDef("n", "REAL")) == NullableNode(NumberNode())


def test_entity_modes(tmp_path: Path):
    cols = SQLiteTableIntrospector(_db(tmp_path)).columns("users")

    read = entity_object(cols, "read")
    assert read.required == ("id", "email", "nickname", "active", "created_at")

    create = entity_object(cols, "create")
    assert "id" not in create.property_map()
    assert create.required == ("email",)
    assert create.property_map()["nickname"] == OptionalNode(NullableNode(StringNode()))

    update = entity_object(cols, "update")
    assert update.required == ()
    assert list(update.property_map()) == ["email", "nickname", "active", "created_at"]


def test_hoist_entity_once_per_mode(tmp_path: Path):
    intro = SQLiteTableIntrospector(_db(tmp_path))
    registry = SchemaRegistry()
    assert hoist_entity(registry, intro, "users") == RefNode("Users")
    assert hoist_entity(registry, intro, "users") == RefNode("Users")
    assert hoist_entity(registry, intro, "users", mode="create") == RefNode("UsersCreate")
    assert sorted(registry.components()) == ["Users", "UsersCreate"]


def test_mapped_class_reads_columns(tmp_path: Path):
    src = """
class UserRow:
    id: int
"""
    program = SourceProgram.from_source(src, module="app")
    translator = TypeSchemaTranslator(
        program,
        introspector=SQLiteTableIntrospector(_db(tmp_path)),
        entity_tables={"UserRow": "users"},
    )
    node = translator.translate(parse_annotation(ast.parse("UserRow", mode="eval").body, "app"), context="t")
    assert node == RefNode("UserRow")
    assert "created_at" in translator.registry.get("UserRow").property_map()
