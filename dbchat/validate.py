# dbchat/validate.py
"""
Pulls a SQL statement out of model output and decides whether it may run.

The read-only check is a prefix allow-list on the lowercased, trimmed text,
not a parser: a leading comment or a second statement after a semicolon is
not caught by it. sqlglot is only used to surface those cases as warnings.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

import sqlglot
from sqlglot.errors import SqlglotError

from .responses import load_json_object

logger = logging.getLogger(__name__)

MUTATING_KEYWORDS = ("create", "insert", "update", "delete", "drop", "alter")
REJECTION_MESSAGE = (
    "SQL Error: Only SELECT queries are allowed. "
    "CREATE, INSERT, UPDATE, DELETE, DROP and ALTER statements are not permitted."
)

_JSON_FENCE = re.compile(r"```\s*json\s*([\s\S]*?)```", re.IGNORECASE)
_SQL_FENCE = re.compile(r"```\s*sql\s*([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```([\s\S]*?)```")


def _sql_field(obj: Optional[dict]) -> Optional[str]:
    if not obj or obj.get("SQL") is None:
        return None
    return str(obj["SQL"]).strip() or None


def _fenced(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    if not m:
        return None
    return m.group(1).strip() or None


def from_json(text: str) -> Optional[str]:
    return _sql_field(load_json_object(text.strip()))


def from_json_fence(text: str) -> Optional[str]:
    block = _fenced(_JSON_FENCE, text)
    return _sql_field(load_json_object(block)) if block else None


def from_sql_fence(text: str) -> Optional[str]:
    return _fenced(_SQL_FENCE, text)


def from_any_fence(text: str) -> Optional[str]:
    return _fenced(_ANY_FENCE, text)


# Tried in order; the first one that finds something wins.
EXTRACTORS: tuple[Callable[[str], Optional[str]], ...] = (
    from_json,
    from_json_fence,
    from_sql_fence,
    from_any_fence,
)


def extract_sql(text: str) -> Optional[str]:
    if not text:
        return None
    for extractor in EXTRACTORS:
        sql = extractor(text)
        if sql:
            logger.debug("SQL extracted by %s", extractor.__name__)
            return sql
    return None


def rejection_reason(sql: str) -> Optional[str]:
    """Returns the error row text for a mutating statement, None for a read."""
    head = sql.strip().lower()
    if head.startswith(MUTATING_KEYWORDS):
        return REJECTION_MESSAGE
    return None


def statement_warnings(sql: str) -> list[str]:
    warnings = []
    if sql.lstrip().startswith(("--", "/*")):
        warnings.append("Query starts with a comment; only its leading keyword was checked.")
    try:
        statements = [s for s in sqlglot.parse(sql) if s is not None]
    except SqlglotError as e:
        logger.debug("sqlglot could not parse query: %s", e)
        return warnings
    if len(statements) > 1:
        warnings.append(f"Query contains {len(statements)} statements; only the leading keyword was checked.")
    return warnings


@dataclass
class GuardedSql:
    sql: str
    rejection: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.rejection is None


def extract_and_validate(model_text: str) -> Optional[GuardedSql]:
    """
    None when the model text holds no SQL at all (it is then a direct answer).
    Otherwise the statement plus its rejection reason, if any.
    """
    sql = extract_sql(model_text)
    if sql is None:
        return None
    reason = rejection_reason(sql)
    if reason:
        logger.warning("Blocked forbidden SQL command: %s", sql)
        return GuardedSql(sql, rejection=reason)
    return GuardedSql(sql, warnings=statement_warnings(sql))
