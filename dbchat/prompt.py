# dbchat/prompt.py
import json

from .db import Table

SYSTEM_INSTR = (
    "You are an AI assistant that helps with SQL databases.\n"
    "Always respond in JSON with the following keys:\n"
    "Summary, SQL, Explanation, Data, ChartType\n"
    "Generate SQL only if possible, otherwise keep the field empty.\n"
    "Always prefix table names with the schema name (e.g., schema.table) while generating the SQL.\n"
    "ChartType should be one of: bar, pie, line, scatter, histogram, or leave blank if not applicable.\n"
    "If the data is suitable for a chart, suggest the most appropriate chart type.\n"
    "Do not enter anything else after the JSON.\n"
)


def build_prompt(user_question: str, schema_text: str) -> str:
    """
    Prompt #1: schema-aware request for SQL.
    schema_text: output of SchemaDescription.to_text()
    """
    parts = ["Database schema:", schema_text, "", f"User question: {user_question}"]
    return "\n".join(parts)


def build_insights_prompt(user_question: str, table: Table) -> str:
    """Prompt #2: the query result as JSON, asking for a markdown summary."""
    if table.error is not None:
        data = json.dumps(table.to_row_data(), default=str)
    else:
        data = json.dumps(table.records(), default=str)
    parts = [
        "Given the following SQL result data and the original question, "
        "provide a concise summary or insights in markdown format.",
        f"Original question: {user_question}",
        f"Data: {data}",
    ]
    return "\n".join(parts)
