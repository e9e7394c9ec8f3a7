# dbchat/engines.py
from enum import Enum

from sqlalchemy.engine import URL

from .errors import UnsupportedTypeError, ValidationError


class DatabaseType(str, Enum):
    """Supported engines. Each value maps to one entry in ENGINE_SPECS."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    MSSQL = "mssql"
    ORACLE = "oracle"

    @classmethod
    def parse(cls, value: str) -> "DatabaseType":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise UnsupportedTypeError(f"Unsupported database type: {value}") from None

    @property
    def spec(self) -> "EngineSpec":
        return ENGINE_SPECS[self]

    def url(self, host: str, port: str, database: str, username: str, password: str | None = None) -> URL:
        try:
            port_number = int(port) if port else self.spec.default_port
        except ValueError:
            raise ValidationError(f"Invalid port: {port}") from None
        return URL.create(
            self.spec.driver,
            username=username,
            password=password,
            host=host,
            port=port_number,
            database=database,
        )


class EngineSpec:
    def __init__(self, driver: str, default_port: int, probe_sql: str = "SELECT 1"):
        self.driver = driver
        self.default_port = default_port
        self.probe_sql = probe_sql


ENGINE_SPECS = {
    DatabaseType.MYSQL: EngineSpec("mysql+mysqlconnector", 3306),
    DatabaseType.POSTGRESQL: EngineSpec("postgresql+psycopg2", 5432),
    DatabaseType.MSSQL: EngineSpec("mssql+pymssql", 1433),
    DatabaseType.ORACLE: EngineSpec("oracle+oracledb", 1521, probe_sql="SELECT 1 FROM DUAL"),
}
