import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import settings

logger = logging.getLogger(__name__)


@dataclass
class Table:
    headers: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    error: str | None = None
    truncated: bool = False

    @classmethod
    def failure(cls, message: str) -> "Table":
        return cls(error=message)

    def to_row_data(self) -> list[list[Any]]:
        """
        Wire shape: header row followed by data rows, e.g. [["total"], [42]].
        A failed query is the single sentinel row [["SQL Error: ..."]].
        """
        if self.error is not None:
            return [[self.error]]
        if not self.headers:
            return []
        return [list(self.headers)] + [list(r) for r in self.rows]

    def records(self) -> list[dict[str, Any]]:
        return [dict(zip(self.headers, r)) for r in self.rows]


def run_sql(query: str, engine: Engine, max_rows: int | None = None) -> Table:
    """
    Runs a guarded statement and materializes headers + rows.
    Driver errors come back as a one-row error table instead of raising.
    """
    limit = max_rows or settings.max_rows
    statement = query.strip().rstrip(";").strip()
    try:
        logger.debug("Executing SQL query: %s", statement)
        with engine.connect() as conn:
            # no bind parameters: literal % in model SQL must reach the driver untouched
            result = conn.execution_options(no_parameters=True).exec_driver_sql(statement)
            if not result.returns_rows:
                return Table()
            headers = [str(k) for k in result.keys()]
            fetched = result.fetchmany(limit + 1)
    except SQLAlchemyError as e:
        logger.error("SQL execution error: %s", e)
        return Table.failure(f"SQL Error: {getattr(e, 'orig', None) or e}")

    table = Table(headers=headers, rows=[list(r) for r in fetched[:limit]])
    if len(fetched) > limit:
        table.truncated = True
        logger.info("Result truncated to %d rows", limit)
    return table
