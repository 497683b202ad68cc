"""
Output module - Separates rendering from analysis.

Provides multiple output formats:
- render_text: Rich tables captured as plain terminal text
- render_json: The result models serialized as JSON
- render_markdown: GitHub/Slack-friendly format

Usage:
    from accelsense.output import render_text, render_json, render_markdown

    result = engine.analyze(sql)
    print(render_text(result))
"""

from accelsense.output.renderers import (
    OutputFormat,
    format_rows,
    format_time_ms,
    render,
    render_json,
    render_markdown,
    render_plan,
    render_text,
    short_op_name,
)

__all__ = [
    "OutputFormat",
    "render",
    "render_text",
    "render_json",
    "render_markdown",
    "render_plan",
    "format_rows",
    "format_time_ms",
    "short_op_name",
]
