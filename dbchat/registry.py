# dbchat/registry.py
"""
Connection registry: one server instance, many callers, many databases.

Callers hand in a ConnectionConfig with an encrypted secret and get back an
opaque connection id. The decrypted secret only ever lives inside the
SQLAlchemy engine built for that id; the registry keeps a password-free
SafeConnectionConfig next to it for listing.
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine

from .config import settings
from .crypto import SecretCodec
from .engines import DatabaseType
from .errors import DbChatError, DbConnectionError, DecryptionError, ValidationError

logger = logging.getLogger(__name__)

DECRYPTION_MESSAGE = "Failed to decrypt database secret. Please re-enter your database configuration."
CONNECT_MESSAGE = "Could not connect to the database. Check host, port and credentials."


class ConnectionConfig(BaseModel):
    """Raw connection input as sent by the UI."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = "mysql"
    host: str = ""
    port: str = ""
    database: str = ""
    username: str = ""
    encrypted_secret: str = Field(
        default="",
        validation_alias=AliasChoices("encryptedSecret", "encryptedKey", "encrypted_secret"),
        repr=False,
        exclude=True,
    )

    @field_validator("host", "database", "username", mode="before")
    @classmethod
    def _none_as_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("port", mode="before")
    @classmethod
    def _port_as_text(cls, v: Any) -> str:
        return "" if v is None else str(v)


class SafeConnectionConfig(BaseModel):
    """What the registry is allowed to show about a connection."""

    model_config = ConfigDict(frozen=True)

    type: str
    host: str
    port: str
    database: str
    username: str
    url: str


@dataclass(frozen=True)
class ConnectionRecord:
    id: str
    engine: Engine
    db_type: DatabaseType
    safe_config: SafeConnectionConfig


@dataclass(frozen=True)
class CreateResult:
    connection_id: Optional[str] = None
    error_kind: Optional[str] = None
    message: str = ""

    @property
    def created(self) -> bool:
        return self.connection_id is not None


def _default_engine_factory(url: URL) -> Engine:
    return create_engine(url, pool_pre_ping=True, pool_recycle=1800)


def probe(engine: Engine, db_type: DatabaseType) -> None:
    with engine.connect() as conn:
        conn.execute(text(db_type.spec.probe_sql)).scalar()


class ConnectionRegistry:
    def __init__(self, codec: SecretCodec, engine_factory: Callable[[URL], Engine] | None = None):
        self._codec = codec
        self._engine_factory = engine_factory or _default_engine_factory
        self._records: dict[str, ConnectionRecord] = {}
        self._lock = threading.Lock()

    def create_connection(self, config: ConnectionConfig | Mapping[str, Any]) -> CreateResult:
        """
        Decrypts the secret, validates the config, opens an engine and probes it.
        Returns a CreateResult carrying either the new id or the reason it failed.
        """
        if config is None:
            logger.warning("Database config is missing")
            return CreateResult(error_kind=ValidationError.kind, message="Database config is missing")
        if not isinstance(config, ConnectionConfig):
            try:
                config = ConnectionConfig.model_validate(dict(config))
            except PydanticValidationError as e:
                logger.warning("Invalid database config: %s", e)
                return CreateResult(error_kind=ValidationError.kind, message="Invalid database config")

        engine = None
        try:
            password = self._decrypt(config.encrypted_secret)
            if not config.host.strip() or not config.database.strip() or not config.username.strip():
                raise ValidationError("Missing required connection parameters: host, database and username")
            db_type = DatabaseType.parse(config.type)
            url = db_type.url(config.host, config.port, config.database, config.username, password)
            display_url = url.render_as_string(hide_password=True)

            logger.info("Creating connection to %s", display_url)
            try:
                engine = self._engine_factory(url)
                probe(engine, db_type)
            except Exception as e:
                logger.error("Failed to create database connection: %s", e)
                raise DbConnectionError(CONNECT_MESSAGE) from e
        except DbChatError as e:
            logger.warning("Connection not created (%s): %s", e.kind, e)
            self._dispose(engine)
            return CreateResult(error_kind=e.kind, message=str(e))

        connection_id = str(uuid.uuid4())
        safe_config = SafeConnectionConfig(
            type=db_type.value,
            host=config.host,
            port=str(url.port),
            database=config.database,
            username=config.username,
            url=display_url,
        )
        with self._lock:
            self._records[connection_id] = ConnectionRecord(connection_id, engine, db_type, safe_config)
        logger.info("Connection created successfully with ID: %s", connection_id)
        return CreateResult(connection_id=connection_id, message="Database connection created successfully")

    def _decrypt(self, encrypted_secret: str) -> Optional[str]:
        if not encrypted_secret:
            return None
        try:
            return self._codec.decrypt(encrypted_secret)
        except DecryptionError as e:
            logger.error("Failed to decrypt connection secret: %s", e)
            raise DecryptionError(DECRYPTION_MESSAGE) from e

    @staticmethod
    def _dispose(engine: Optional[Engine]) -> None:
        if engine is not None:
            engine.dispose()

    def get_connection(self, connection_id: Optional[str]) -> Optional[Engine]:
        record = self._get_record(connection_id)
        return record.engine if record else None

    def get_connection_config(self, connection_id: Optional[str]) -> Optional[SafeConnectionConfig]:
        record = self._get_record(connection_id)
        return record.safe_config if record else None

    def _get_record(self, connection_id: Optional[str]) -> Optional[ConnectionRecord]:
        if not connection_id:
            return None
        with self._lock:
            return self._records.get(connection_id)

    def test_connection(self, connection_id: Optional[str]) -> bool:
        """Re-probes a connection; a dead one is evicted."""
        record = self._get_record(connection_id)
        if record is None:
            return False
        try:
            probe(record.engine, record.db_type)
            return True
        except Exception as e:
            logger.warning("Connection %s is no longer valid: %s", connection_id, e)
            self.remove_connection(connection_id)
            return False

    def remove_connection(self, connection_id: Optional[str]) -> None:
        if not connection_id:
            return
        with self._lock:
            record = self._records.pop(connection_id, None)
        if record is not None:
            record.engine.dispose()
            logger.info("Connection %s removed", connection_id)

    def get_all_connections(self) -> Mapping[str, SafeConnectionConfig]:
        with self._lock:
            snapshot = {cid: record.safe_config for cid, record in self._records.items()}
        return MappingProxyType(snapshot)

    def close_all(self) -> None:
        with self._lock:
            records = list(self._records.values())
            self._records.clear()
        for record in records:
            record.engine.dispose()


def default_engine() -> Optional[Engine]:
    """Engine for the datasource configured in settings, or None when none is configured."""
    if not settings.db_name:
        return None
    db_type = DatabaseType.parse(settings.db_type)
    url = db_type.url(settings.db_host, settings.db_port, settings.db_name, settings.db_user, settings.db_pass or None)
    logger.info("Default datasource: %s", url.render_as_string(hide_password=True))
    return _default_engine_factory(url)
