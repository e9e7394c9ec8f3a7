# dbchat/main.py
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import settings
from .crypto import default_codec
from .errors import ModelGatewayError
from .llm import ModelGateway
from .pipeline import QueryPipeline
from .registry import ConnectionConfig, ConnectionRegistry, default_engine

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

registry = ConnectionRegistry(default_codec())
gateway = ModelGateway()
pipeline = QueryPipeline(registry, gateway, default_engine=default_engine())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Dispose every engine the callers opened, then the default one
    registry.close_all()
    if pipeline.default_engine is not None:
        pipeline.default_engine.dispose()
    gateway.close()


app = FastAPI(title="DB Chat API", lifespan=lifespan)


def get_registry() -> ConnectionRegistry:
    return registry


def get_gateway() -> ModelGateway:
    return gateway


def get_pipeline() -> QueryPipeline:
    return pipeline


registry_dep = Annotated[ConnectionRegistry, Depends(get_registry)]
gateway_dep = Annotated[ModelGateway, Depends(get_gateway)]
pipeline_dep = Annotated[QueryPipeline, Depends(get_pipeline)]


class QueryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    enable_chart: bool = Field(True, alias="enableChart")
    connection_id: Optional[str] = Field(None, alias="connectionId")


class PromptIn(BaseModel):
    prompt: str = ""


@app.get("/health")
def health():
    return {"status": "ok"}


# Plain `def` endpoints: each request runs on its own worker thread
@app.post("/api/query")
def query(q: QueryIn, pipe: pipeline_dep):
    result = pipe.run(q.prompt, q.enable_chart, q.connection_id).to_response()
    logger.info("/api/query response: %s", sorted(result))
    if "error" in result:
        logger.error("/api/query error: %s", result["error"])
        return JSONResponse(status_code=500, content=jsonable_encoder(result))
    if "chartImageError" in result:
        logger.error("/api/query chart image error: %s", result["chartImageError"])
    return jsonable_encoder(result)


@app.post("/api/create-connection")
def create_connection(config: ConnectionConfig, reg: registry_dep):
    outcome = reg.create_connection(config)
    if outcome.created:
        return {"success": True, "connectionId": outcome.connection_id, "message": outcome.message}
    return {"success": False, "errorKind": outcome.error_kind, "message": outcome.message}


@app.post("/api/test-connection")
def test_connection(config: ConnectionConfig, reg: registry_dep):
    """Opens a throwaway connection with the given config and removes it again."""
    outcome = reg.create_connection(config)
    if not outcome.created:
        return {"success": False, "errorKind": outcome.error_kind, "message": outcome.message}
    reg.remove_connection(outcome.connection_id)
    return {"success": True, "message": "Database connection test successful"}


@app.get("/api/connections")
def list_connections(reg: registry_dep):
    connections = reg.get_all_connections()
    logger.info("/api/connections: Returned %d connections", len(connections))
    return {"connections": {cid: cfg.model_dump() for cid, cfg in connections.items()}}


@app.get("/api/connections/{connection_id}")
def get_connection(connection_id: str, reg: registry_dep):
    cfg = reg.get_connection_config(connection_id)
    if cfg is None:
        raise HTTPException(status_code=404, detail="Connection not found.")
    return cfg.model_dump()


@app.post("/api/connections/{connection_id}/test")
def check_connection(connection_id: str, reg: registry_dep):
    valid = reg.test_connection(connection_id)
    return {"success": valid, "message": "Connection is valid" if valid else "Connection is no longer valid"}


@app.delete("/api/connections/{connection_id}")
def remove_connection(connection_id: str, reg: registry_dep):
    reg.remove_connection(connection_id)
    return {"success": True, "message": "Connection removed successfully"}


@app.post("/api/complete")
def complete(body: PromptIn, gw: gateway_dep):
    try:
        return {"content": gw.generate_text(body.prompt)}
    except ModelGatewayError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.post("/api/generate-image")
def generate_image(body: PromptIn, gw: gateway_dep):
    try:
        return {"image": gw.generate_image(body.prompt)}
    except ModelGatewayError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
