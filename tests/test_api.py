import json

import pytest
from conftest import USER_COUNT, chat_body
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_create_and_list_connection(client: AsyncClient, connection_config):
    """Creating returns an id; listing never shows the secret"""
    response = await client.post("/api/create-connection", json=connection_config)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    connection_id = data["connectionId"]

    listing = (await client.get("/api/connections")).json()["connections"]
    assert set(listing) == {connection_id}
    assert listing[connection_id]["host"] == "db.internal"
    assert "s3cret" not in json.dumps(listing)
    assert connection_config["encryptedSecret"] not in json.dumps(listing)


@pytest.mark.asyncio
async def test_create_connection_with_integer_port(client: AsyncClient, connection_config):
    connection_config["port"] = 6543
    data = (await client.post("/api/create-connection", json=connection_config)).json()
    assert data["success"] is True


@pytest.mark.asyncio
async def test_create_connection_missing_host(client: AsyncClient, connection_config):
    connection_config["host"] = ""
    response = await client.post("/api/create-connection", json=connection_config)

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["errorKind"] == "validation"
    assert (await client.get("/api/connections")).json()["connections"] == {}


@pytest.mark.asyncio
async def test_create_connection_bad_secret(client: AsyncClient, connection_config):
    connection_config["encryptedSecret"] = "garbage=="
    data = (await client.post("/api/create-connection", json=connection_config)).json()

    assert data["success"] is False
    assert "re-enter" in data["message"]


@pytest.mark.asyncio
async def test_test_connection_leaves_nothing_behind(client: AsyncClient, connection_config):
    data = (await client.post("/api/test-connection", json=connection_config)).json()

    assert data["success"] is True
    assert (await client.get("/api/connections")).json()["connections"] == {}


@pytest.mark.asyncio
async def test_check_and_remove_connection(client: AsyncClient, connection_id):
    checked = (await client.post(f"/api/connections/{connection_id}/test")).json()
    assert checked["success"] is True

    response = await client.delete(f"/api/connections/{connection_id}")
    assert response.status_code == 200
    assert response.json()["success"] is True

    # Removing twice is fine
    again = await client.delete(f"/api/connections/{connection_id}")
    assert again.status_code == 200

    checked = (await client.post(f"/api/connections/{connection_id}/test")).json()
    assert checked["success"] is False


@pytest.mark.asyncio
async def test_query(client: AsyncClient, connection_id, model_transport):
    model_transport.bodies += [
        chat_body(json.dumps({"SQL": "select count(*) as total from public.users"})),
        chat_body("There are 42 users."),
    ]
    payload = {"prompt": "How many users are there?", "enableChart": False, "connectionId": connection_id}

    response = await client.post("/api/query", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["rowData"] == [["total"], [USER_COUNT]]
    assert data["summary"] == "There are 42 users."


@pytest.mark.asyncio
async def test_query_error_is_500(client: AsyncClient, connection_id, model_transport):
    model_transport.bodies.append({"error": "rate limited"})

    response = await client.post("/api/query", json={"prompt": "q", "connectionId": connection_id})

    assert response.status_code == 500
    assert response.json() == {"error": "rate limited"}


@pytest.mark.asyncio
async def test_query_unknown_connection(client: AsyncClient):
    response = await client.post("/api/query", json={"prompt": "q", "connectionId": "nope"})

    assert response.status_code == 500
    assert "Connection not found" in response.json()["error"]


@pytest.mark.asyncio
async def test_complete(client: AsyncClient, model_transport):
    model_transport.bodies.append({"message": {"content": "pong"}})

    response = await client.post("/api/complete", json={"prompt": "ping"})

    assert response.status_code == 200
    assert response.json() == {"content": "pong"}


@pytest.mark.asyncio
async def test_generate_image(client: AsyncClient, model_transport):
    model_transport.bodies.append({"data": [{"b64_json": "iVBORw0KGgo="}]})

    response = await client.post("/api/generate-image", json={"prompt": "a chart"})

    assert response.status_code == 200
    assert response.json() == {"image": "iVBORw0KGgo="}


@pytest.mark.asyncio
async def test_generate_image_error(client: AsyncClient, model_transport):
    model_transport.bodies.append({"error": "model loading"})

    response = await client.post("/api/generate-image", json={"prompt": "a chart"})

    assert response.status_code == 500
    assert response.json() == {"error": "model loading"}


@pytest.mark.asyncio
async def test_get_single_connection(client: AsyncClient, connection_id):
    response = await client.get(f"/api/connections/{connection_id}")
    assert response.status_code == 200
    assert response.json()["database"] == "analytics"

    missing = await client.get("/api/connections/nope")
    assert missing.status_code == 404
