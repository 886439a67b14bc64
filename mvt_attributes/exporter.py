from __future__ import annotations

import csv
import io
import re
from typing import Optional, Sequence

from .analysis import LayerAnalysis, ValueCount
from .config import APP_CONFIG, CSV_FORMAT, ExportFormat


CSV_HEADER = "key,types,count,sample_values"
_NEWLINES = re.compile(r"\r\n|\r|\n")


def format_sample_values(values: Sequence[ValueCount], limit: int, show_all: bool = False) -> str:
    shown = values if show_all else values[: max(limit, 0)]
    return ", ".join(f"{item.value} ({item.count})" for item in shown)


def generate_csv(
    layer_name: str,
    layer_analysis: LayerAnalysis,
    max_samples: Optional[int] = None,
) -> str:
    """
    Render a layer's attribute statistics as CSV.

    Text columns are always quoted with embedded quotes doubled; the count
    column is a bare integer. Rows are newline separated with no trailing
    newline.
    """

    limit = APP_CONFIG["csv_sample_limit"] if max_samples is None else max(max_samples, 0)
    buffer = io.StringIO()
    buffer.write(CSV_HEADER + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for attr in layer_analysis.attributes:
        writer.writerow(
            [
                attr.key,
                ";".join(kind.value for kind in attr.types),
                attr.count,
                ";".join(item.value for item in attr.values[:limit]),
            ]
        )
    # drop the terminator of the last row
    return buffer.getvalue()[:-1]


def _escape_cell(value) -> str:
    return _NEWLINES.sub(" ", str(value).replace("|", "\\|"))


def generate_markdown(
    layer_name: str,
    layer_analysis: LayerAnalysis,
    sample_limit: Optional[int] = None,
    show_all: bool = False,
) -> str:
    """Render a layer's attribute statistics as a Markdown report with one table row per key."""

    limit = APP_CONFIG["default_sample_limit"] if sample_limit is None else sample_limit
    lines = [
        f"# Layer: {_escape_cell(layer_name)}",
        "",
        f"- **Features**: {layer_analysis.feature_count}",
        f"- **Version**: {layer_analysis.version}",
        f"- **Extent**: {layer_analysis.extent}",
        "",
        "## Attributes",
        "",
        "| Key | Types | Count | Sample Values |",
        "|-----|-------|-------|---------------|",
    ]
    for attr in layer_analysis.attributes:
        key = _escape_cell(attr.key)
        types = _escape_cell(", ".join(kind.value for kind in attr.types))
        samples = _escape_cell(format_sample_values(attr.values, limit, show_all))
        lines.append(f"| {key} | {types} | {attr.count} | {samples} |")
    return "\n".join(lines) + "\n"


def export_filename(layer_name: str, fmt: ExportFormat = CSV_FORMAT) -> str:
    return f"{layer_name}_attributes.{fmt.extension}"


def render_export(
    fmt: ExportFormat,
    layer_name: str,
    layer_analysis: LayerAnalysis,
    sample_limit: Optional[int] = None,
    show_all: bool = False,
) -> str:
    if fmt.name == "csv":
        return generate_csv(layer_name, layer_analysis)
    return generate_markdown(layer_name, layer_analysis, sample_limit, show_all)
