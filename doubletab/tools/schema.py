"""Schema tools: list_tables, generate_schema, store_schema (application database)."""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from doubletab.llm import ChatClient
from doubletab.orchestrator import runAgent
from doubletab.prompts import GENERATE_SCHEMA_PROMPT
from doubletab.tools.code import trimNonCode
from doubletab.tools.registry import Tool

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Column(BaseModel):
    name: str
    type: str
    constraints: str = ""


class TableSchema(BaseModel):
    table_name: str
    columns: list[Column]


def createTableSql(schema: TableSchema) -> str:
    """Render a CREATE TABLE statement. Raises ValueError on unsafe identifiers."""
    if not schema.columns:
        raise ValueError(f"Table {schema.table_name} has no columns")
    for ident in [schema.table_name, *(c.name for c in schema.columns)]:
        if not _IDENTIFIER.match(ident):
            raise ValueError(f"Invalid identifier: {ident!r}")
    cols = ", ".join(" ".join(filter(None, [c.name, c.type, c.constraints])) for c in schema.columns)
    return f"CREATE TABLE {schema.table_name} ({cols})"


def _connectProject(path: str) -> sqlite3.Connection:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(p))


class ListTablesTool(Tool):
    name = "list_tables"
    description = "List existing DB tables."

    def __init__(self, project_db_path: str):
        self.project_db_path = project_db_path

    async def invoke(self, args: BaseModel) -> str:
        db = _connectProject(self.project_db_path)
        try:
            rows = db.execute(
                """SELECT name FROM sqlite_master
                   WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"""
            ).fetchall()
        except sqlite3.Error as e:
            return f"Failed to list tables: {e}"
        finally:
            db.close()
        if not rows:
            return "No tables found."
        return ", ".join(r[0] for r in rows)


class GenerateSchemaArgs(BaseModel):
    openapi_spec: str = Field(description="OpenAPI 3.0 spec in YAML format.")


class GenerateSchemaTool(Tool):
    name = "generate_schema"
    description = "Generates a database schema in JSON format based on OpenAPI 3.0 specification."
    Arguments = GenerateSchemaArgs

    def __init__(self, chat: ChatClient, model: str | None = None):
        self.chat = chat
        self.model = model

    async def invoke(self, args: GenerateSchemaArgs) -> str:
        return await runAgent(self.chat, GENERATE_SCHEMA_PROMPT, args.openapi_spec, model=self.model)


class StoreSchemaArgs(BaseModel):
    json_schema: str = Field(description="Schema in JSON format as returned by generate_schema.")


class StoreSchemaTool(Tool):
    name = "store_schema"
    description = "Takes generated schema in JSON format and creates a new database table."
    Arguments = StoreSchemaArgs

    def __init__(self, project_db_path: str):
        self.project_db_path = project_db_path

    async def invoke(self, args: StoreSchemaArgs) -> str:
        try:
            schema = TableSchema.model_validate_json(trimNonCode(args.json_schema, "json"))
        except ValidationError as e:
            return f"Failed to unmarshal json schema: {e}"
        try:
            sql = createTableSql(schema)
        except ValueError as e:
            return f"Invalid schema: {e}"

        logger.debug("Creating table: %s", sql)
        db = _connectProject(self.project_db_path)
        try:
            with db:
                db.execute(sql)
        except sqlite3.Error as e:
            return f"Failed to create table: {e}"
        finally:
            db.close()
        return "Table created successfully"
