# dbchat/pipeline.py
"""
End-to-end question answering against one selected connection.

  resolve connection -> describe schema -> model call #1 (SQL) ->
  guard -> execute -> model call #2 (summary) -> optional chart

Model gateway errors end the run with `error`. SQL rejection and execution
failures travel on as an error row, chart failures as `chartImageError`.
"""
import base64
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import Engine

from . import schema
from .charts import ChartRenderer, resolve_chart_type, should_chart
from .db import Table, run_sql
from .errors import ModelGatewayError
from .llm import ModelGateway
from .prompt import build_insights_prompt, build_prompt
from .registry import ConnectionRegistry
from .validate import extract_and_validate

logger = logging.getLogger(__name__)

NO_CONNECTION = "No database connection selected."
UNKNOWN_CONNECTION = "Connection not found. Please create a new database connection."


class PipelineResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ai_response: Optional[str] = Field(None, alias="aiResponse")
    query: Optional[str] = None
    row_data: Optional[list[list[Any]]] = Field(None, alias="rowData")
    summary: Optional[str] = None
    chart_type: Optional[str] = Field(None, alias="chartType")
    chart_image: Optional[str] = Field(None, alias="chartImage")
    chart_image_error: Optional[str] = Field(None, alias="chartImageError")
    warning: Optional[str] = None
    error: Optional[str] = None

    def to_response(self) -> dict:
        """Camel-case keys, absent fields left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


class QueryPipeline:
    def __init__(
        self,
        registry: ConnectionRegistry,
        gateway: ModelGateway,
        renderer: ChartRenderer | None = None,
        default_engine: Engine | None = None,
        max_rows: int | None = None,
    ):
        self.registry = registry
        self.gateway = gateway
        self.renderer = renderer or ChartRenderer()
        self.default_engine = default_engine
        self.max_rows = max_rows

    def resolve(self, connection_id: str | None) -> Engine:
        if connection_id:
            engine = self.registry.get_connection(connection_id)
            if engine is None:
                raise LookupError(UNKNOWN_CONNECTION)
            return engine
        if self.default_engine is None:
            raise LookupError(NO_CONNECTION)
        return self.default_engine

    def run(self, prompt: str, enable_chart: bool = True, connection_id: str | None = None) -> PipelineResult:
        result = PipelineResult()
        logger.info("Received prompt (enableChart=%s, connectionId=%s)", enable_chart, connection_id)

        try:
            engine = self.resolve(connection_id)
        except LookupError as e:
            logger.warning("Connection resolution failed: %s", e)
            result.error = str(e)
            return result

        schema_text = schema.describe(engine).to_text()

        try:
            ai_content = self.gateway.generate_text(build_prompt(prompt, schema_text))
        except ModelGatewayError as e:
            result.error = str(e)
            return result
        result.ai_response = ai_content

        guarded = extract_and_validate(ai_content)
        if guarded is None:
            logger.warning("No SQL extracted from AI content. Returning AI content as summary.")
            result.summary = ai_content
            return result

        logger.info("Extracted SQL")
        result.query = guarded.sql
        if guarded.allowed:
            table = run_sql(guarded.sql, engine, self.max_rows)
        else:
            table = Table.failure(guarded.rejection)
        result.row_data = table.to_row_data()

        warnings = list(guarded.warnings)
        if table.truncated:
            warnings.append(f"Result truncated to {len(table.rows)} rows.")
        if warnings:
            result.warning = " ".join(warnings)

        try:
            insights = self.gateway.generate_text(build_insights_prompt(prompt, table))
        except ModelGatewayError as e:
            result.error = str(e)
            return result
        result.summary = insights

        if should_chart(enable_chart, table):
            self._chart(result, table, insights, prompt)
        return result

    def _chart(self, result: PipelineResult, table: Table, insights: str, prompt: str) -> None:
        chart_type = resolve_chart_type(insights, prompt)
        result.chart_type = chart_type
        try:
            png = self.renderer.render(table, chart_type)
        except Exception as e:
            # chart failures never fail the request
            logger.error("Error generating chart image: %s", e, exc_info=True)
            result.chart_image_error = str(e) or type(e).__name__
            return
        result.chart_image = base64.b64encode(png).decode("ascii")
        logger.info("Chart generated, type: %s", chart_type)
