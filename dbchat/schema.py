import logging
from dataclasses import dataclass, field

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Catalog schemas that never hold user tables
SYSTEM_SCHEMAS = {
    "information_schema",
    "pg_catalog",
    "pg_toast",
    "mysql",
    "performance_schema",
    "sys",
    "guest",
    "db_owner",
    "db_accessadmin",
    "db_securityadmin",
    "db_ddladmin",
    "db_backupoperator",
    "db_datareader",
    "db_datawriter",
    "db_denydatareader",
    "db_denydatawriter",
}


@dataclass
class TableSchema:
    schema: str | None
    table: str
    columns: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class SchemaDescription:
    tables: list[TableSchema] = field(default_factory=list)
    error: str | None = None

    def to_text(self) -> str:
        """
        Renders the description the way it is sent to the model:
          Schema: public | Table: users
            - id (INTEGER)
            - name (VARCHAR(100))
        """
        lines = []
        for t in self.tables:
            lines.append(f"Schema: {t.schema} | Table: {t.table}")
            for name, type_ in t.columns:
                lines.append(f"  - {name} ({type_})")
        if self.error:
            lines.append(f"Could not read schema: {self.error}")
        return "\n".join(lines)


def describe(engine: Engine) -> SchemaDescription:
    """
    Reads tables and column types for every non-system schema.
    Failures end up in the description text instead of being raised.
    """
    description = SchemaDescription()
    try:
        insp = inspect(engine)
        for schema in insp.get_schema_names():
            if schema.lower() in SYSTEM_SCHEMAS or schema.lower().startswith("pg_"):
                continue
            for table in insp.get_table_names(schema=schema):
                columns = [(c["name"], str(c["type"])) for c in insp.get_columns(table, schema=schema)]
                description.tables.append(TableSchema(schema, table, columns))
        logger.debug("Database schema read successfully (%d tables)", len(description.tables))
    except Exception as e:
        logger.error("Could not read schema: %s", e)
        description.error = str(e)
    return description
