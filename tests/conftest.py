import base64
import json

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from dbchat.charts import ChartRenderer
from dbchat.crypto import SecretCodec, StaticKeyProvider
from dbchat.llm import ModelGateway
from dbchat.main import app, get_gateway, get_pipeline, get_registry
from dbchat.pipeline import QueryPipeline
from dbchat.registry import ConnectionRegistry

TEST_KEY_B64 = base64.b64encode(bytes(range(32))).decode()
TEST_IV_B64 = base64.b64encode(bytes(range(100, 116))).decode()
USER_COUNT = 42


def make_users_engine():
    """In-memory SQLite with an attached `public` schema holding users(id, name)."""
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )

    @event.listens_for(engine, "connect")
    def attach_public(dbapi_conn, record):
        dbapi_conn.execute("ATTACH DATABASE ':memory:' AS public")

    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE public.users (id INTEGER PRIMARY KEY, name VARCHAR(100))"
        )
        conn.exec_driver_sql(
            "INSERT INTO public.users (id, name) VALUES (?, ?)",
            [(i, f"user{i}") for i in range(1, USER_COUNT + 1)],
        )
    return engine


def chat_body(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class ScriptedTransport(httpx.MockTransport):
    """Answers each POST with the next scripted JSON body and records the requests."""

    def __init__(self, *bodies):
        self.bodies = list(bodies)
        self.requests = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        body = self.bodies.pop(0)
        status = 429 if isinstance(body, dict) and "error" in body else 200
        return httpx.Response(status, json=body)


@pytest.fixture
def codec():
    return SecretCodec(StaticKeyProvider.from_base64(TEST_KEY_B64, TEST_IV_B64))


@pytest.fixture
def users_engine():
    engine = make_users_engine()
    yield engine
    engine.dispose()


# Every connection the registry opens lands on the same seeded database
@pytest.fixture
def registry(codec, users_engine):
    reg = ConnectionRegistry(codec, engine_factory=lambda url: users_engine)
    yield reg
    reg.close_all()


@pytest.fixture
def connection_config(codec):
    return {
        "type": "postgresql",
        "host": "db.internal",
        "port": "5432",
        "database": "analytics",
        "username": "reader",
        "encryptedSecret": codec.encrypt("s3cret-pa$$"),
    }


@pytest.fixture
def connection_id(registry, connection_config):
    outcome = registry.create_connection(connection_config)
    assert outcome.created
    return outcome.connection_id


def make_gateway(transport: httpx.MockTransport) -> ModelGateway:
    return ModelGateway(
        api_url="https://llm.test/v1/chat/completions",
        api_key="test-token",
        model="test-model",
        image_url="https://llm.test/v1/images/generations",
        image_model="test-image-model",
        max_attempts=1,
        backoff=0,
        transport=transport,
    )


@pytest.fixture
def make_pipeline(registry):
    def _make(*bodies, renderer=None, max_rows=None):
        transport = ScriptedTransport(*bodies)
        pipe = QueryPipeline(
            registry, make_gateway(transport), renderer=renderer or ChartRenderer(), max_rows=max_rows
        )
        return pipe, transport

    return _make


@pytest.fixture
def model_transport():
    return ScriptedTransport()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(registry, model_transport):
    gateway = make_gateway(model_transport)
    pipe = QueryPipeline(registry, gateway)

    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_pipeline] = lambda: pipe

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
