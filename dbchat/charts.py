# dbchat/charts.py
import io
import logging

import pandas as pd
from matplotlib.figure import Figure

from .db import Table
from .errors import ChartRenderError
from .responses import load_json_object

logger = logging.getLogger(__name__)

DEFAULT_CHART_TYPE = "bar"
CHART_TYPES = ("bar", "pie", "line", "scatter", "histogram")

# Checked against the user's question, in this order
PROMPT_KEYWORDS = (
    ("bar chart", "bar"),
    ("pie chart", "pie"),
    ("line chart", "line"),
    ("scatter plot", "scatter"),
    ("histogram", "histogram"),
)


def normalize_chart_type(value: str) -> str:
    v = value.strip().lower()
    for suffix in (" chart", " plot", " graph"):
        if v.endswith(suffix):
            v = v[: -len(suffix)].strip()
    return v if v in CHART_TYPES else DEFAULT_CHART_TYPE


def chart_type_from_prompt(prompt: str) -> str | None:
    lower = (prompt or "").lower()
    for keyword, chart_type in PROMPT_KEYWORDS:
        if keyword in lower:
            return chart_type
    return None


def resolve_chart_type(insights_text: str, prompt: str) -> str:
    """
    Model hint (ChartType in the second response's JSON) first, then a keyword
    in the original question, then bar.
    """
    obj = load_json_object((insights_text or "").strip())
    hint = obj.get("ChartType") if obj else None
    if isinstance(hint, str) and hint.strip():
        logger.info("AI suggested chart type: %s", hint)
        return normalize_chart_type(hint)
    return chart_type_from_prompt(prompt) or DEFAULT_CHART_TYPE


def should_chart(enable_chart: bool, table: Table) -> bool:
    # header row + at least one data row
    return enable_chart and len(table.to_row_data()) > 1


class ChartRenderer:
    """Renders a result table as a PNG with matplotlib (no pyplot state involved)."""

    def __init__(self, width: float = 7.0, height: float = 4.0, dpi: int = 100):
        self.width = width
        self.height = height
        self.dpi = dpi

    def render(self, table: Table, chart_type: str) -> bytes:
        if table.error is not None or not table.rows:
            raise ChartRenderError("Not enough data for chart")
        if len(table.headers) < 2:
            raise ChartRenderError("Need at least 2 columns for chart")

        df = pd.DataFrame(table.rows, columns=table.headers)
        categories = df.iloc[:, 0].astype(str).tolist()
        values = df.iloc[:, 1:].apply(pd.to_numeric, errors="coerce").fillna(0.0)

        x_label = table.headers[0]
        y_label = table.headers[1] if len(table.headers) == 2 else "Value"
        title = f"{y_label} by {x_label}" if len(table.headers) == 2 else "Results"

        fig = Figure(figsize=(self.width, self.height), dpi=self.dpi)
        ax = fig.add_subplot()
        kind = normalize_chart_type(chart_type or DEFAULT_CHART_TYPE)

        if kind == "pie":
            ax.pie(values.iloc[:, 0].tolist(), labels=categories, autopct="%1.1f%%")
            ax.set_title(f"{table.headers[1]} by {x_label}")
        elif kind == "line":
            for series in values.columns:
                ax.plot(categories, values[series].tolist(), marker="o", label=str(series))
            self._label(ax, title, x_label, y_label, len(values.columns))
        elif kind == "scatter":
            x = pd.to_numeric(df.iloc[:, 0], errors="coerce")
            xs = x.tolist() if x.notna().all() else list(range(len(df)))
            for series in values.columns:
                ax.scatter(xs, values[series].tolist(), label=str(series))
            self._label(ax, title, x_label, y_label, len(values.columns))
        elif kind == "histogram":
            ax.hist(values.iloc[:, 0].tolist(), bins="auto")
            ax.set_title(f"Distribution of {table.headers[1]}")
            ax.set_xlabel(table.headers[1])
            ax.set_ylabel("Frequency")
        else:
            width = 0.8 / len(values.columns)
            for k, series in enumerate(values.columns):
                positions = [i + k * width for i in range(len(categories))]
                ax.bar(positions, values[series].tolist(), width=width, label=str(series))
            ax.set_xticks([i + width * (len(values.columns) - 1) / 2 for i in range(len(categories))])
            ax.set_xticklabels(categories, rotation=45, ha="right")
            self._label(ax, title, x_label, y_label, len(values.columns))

        buf = io.BytesIO()
        fig.savefig(buf, format="png", bbox_inches="tight")
        return buf.getvalue()

    @staticmethod
    def _label(ax, title, x_label, y_label, n_series):
        ax.set_title(title)
        ax.set_xlabel(x_label)
        ax.set_ylabel(y_label)
        if n_series > 1:
            ax.legend()
