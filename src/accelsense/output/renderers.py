"""
Output renderers for different formats.

Separates presentation logic from analysis logic. The text renderer builds
rich renderables (tables, panels, plan trees); the CLI prints them directly,
and ``render_text`` captures them as plain text for everything else.
"""

from __future__ import annotations

import io
import json
from enum import Enum
from typing import TYPE_CHECKING

from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from accelsense.advisor.models import AcceleratorBackend
from accelsense.parser import ParserConfig, parse_plan

if TYPE_CHECKING:
    from accelsense.advisor.cost_model import CostModel
    from accelsense.advisor.models import HardwareProfile, WorkbenchResult
    from accelsense.parser.models import PlanNode

TEXT_WIDTH = 120

_BACKEND_STYLES = {
    AcceleratorBackend.CPU: "white",
    AcceleratorBackend.GPU: "bold green",
    AcceleratorBackend.FPGA: "bold magenta",
    AcceleratorBackend.NPU: "bold cyan",
}


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    MARKDOWN = "markdown"


def render(result: "WorkbenchResult", format: OutputFormat = OutputFormat.TEXT) -> str:
    """
    Render an advisory result in the specified format.

    Args:
        result: Result to render
        format: Output format (text, json, markdown)

    Returns:
        Formatted string
    """
    if format == OutputFormat.TEXT:
        return render_text(result)
    elif format == OutputFormat.JSON:
        return render_json(result)
    elif format == OutputFormat.MARKDOWN:
        return render_markdown(result)
    else:
        raise ValueError(f"Unknown output format: {format}")


# =============================================================================
# Formatting helpers
# =============================================================================


def format_rows(n: int) -> str:
    """Compact row count: 1.2B, 3.5M, 12.0K or the plain number."""
    if n >= 1_000_000_000:
        return f"{n / 1_000_000_000:.1f}B"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def format_time_ms(ms: float) -> str:
    """Seconds with one decimal from one second up, whole milliseconds below."""
    if ms >= 1000.0:
        return f"{ms / 1000.0:.1f}s"
    return f"{ms:.0f}ms"


def short_op_name(name: str) -> str:
    """Drop a trailing 'Exec' or 'Scan' ('HashAggregateExec' -> 'HashAggregate')."""
    for suffix in ("Exec", "Scan"):
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


def format_cost(usd: float) -> str:
    return f"${usd:.4f}"


def format_break_even(value: float | None) -> str:
    return f"{value:,.0f} qry/hr" if value is not None else "n/a"


def _badge(backend: AcceleratorBackend) -> str:
    style = _BACKEND_STYLES[backend]
    return f"[{style}]{backend.badge}[/{style}]"


# =============================================================================
# Rich renderables
# =============================================================================


def hardware_table(profile: "HardwareProfile") -> Table:
    """Hardware profile as a two-column table."""
    table = Table(title="Hardware Profile", show_header=False)
    table.add_column("Resource", style="bold")
    table.add_column("Value")

    if profile.gpu_count:
        gpu = f"{profile.gpu_count}x {profile.gpu_device_name or 'GPU'} ({profile.gpu_vram_gb} GB)"
        if profile.gpu_compute_capability:
            major, minor = profile.gpu_compute_capability
            gpu += f", sm_{major}{minor}"
    else:
        gpu = "none"

    table.add_row("GPU", gpu)
    table.add_row("FPGA", profile.fpga_device_name or ("yes" if profile.fpga_available else "none"))
    table.add_row("NPU", "ONNX Runtime" if profile.npu_available else "none")
    table.add_row("SIMD", profile.simd_level.label)
    table.add_row("Batch size", f"CPU: {profile.cpu_batch_size} / GPU: {profile.gpu_batch_size}")
    table.add_row("GPU offload threshold", f"{profile.gpu_offload_threshold_rows:,} rows")
    return table


def operators_table(result: "WorkbenchResult") -> Table:
    table = Table(title="Operator Analysis", show_lines=True)
    table.add_column("Operator", style="bold cyan")
    table.add_column("Rows", justify="right")
    table.add_column("Backend", justify="center")
    table.add_column("Speedup", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Rationale", min_width=30)

    for op in result.operator_analyses:
        option = op.recommended_option
        table.add_row(
            escape(op.operator_name),
            format_rows(op.estimated_rows),
            _badge(op.recommended_backend),
            f"{option.estimated_speedup:.1f}x",
            format_time_ms(option.estimated_time_ms),
            format_cost(option.estimated_cost_usd),
            escape(op.rationale),
        )
    return table


def strategies_table(result: "WorkbenchResult") -> Table:
    table = Table(title="Strategy Comparison")
    table.add_column("Strategy", style="bold")
    table.add_column("Time", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Speedup", justify="right")
    table.add_column("Break-even", justify="right")
    table.add_column("Placement")

    for index, strategy in enumerate(result.strategies):
        name = strategy.name
        if index == result.recommended_strategy_index:
            name = f"[green]{name} (recommended)[/green]"
        placement = ", ".join(
            f"{escape(short_op_name(op))}: {backend.badge}"
            for op, backend in strategy.operator_backends
        )
        table.add_row(
            name,
            format_time_ms(strategy.total_estimated_time_ms),
            format_cost(strategy.total_estimated_cost_usd),
            f"{strategy.overall_speedup:.1f}x",
            format_break_even(strategy.break_even_queries_per_hour),
            placement,
        )
    return table


def recommendation_panels(result: "WorkbenchResult") -> list[Panel]:
    panels = []
    for rec in result.recommendations:
        body = escape(rec.description)
        if rec.actionable_sql:
            body += f"\n\n[bold]{escape(rec.actionable_sql)}[/bold]"
        panels.append(
            Panel(body, title=f"{rec.category.label}: {rec.title}", border_style="green")
        )
    return panels


def plan_tree(node: "PlanNode") -> Tree:
    """Draw a plan as a rich Tree, root at the top."""
    tree = Tree(_plan_label(node))
    _add_children(tree, node)
    return tree


def _add_children(branch: Tree, node: "PlanNode") -> None:
    for child in node.children:
        _add_children(branch.add(_plan_label(child)), child)


def _plan_label(node: "PlanNode") -> str:
    label = f"[bold]{escape(node.operator)}[/bold]"
    if node.relation:
        label += f" on [cyan]{escape(node.relation)}[/cyan]"
    details = [
        f"cost={node.cost_startup:.2f}..{node.cost_total:.2f}",
        f"rows={format_rows(node.estimated_rows)}",
    ]
    if node.actual_rows is not None:
        details.append(f"actual={format_rows(node.actual_rows)}")
    if node.actual_time_ms is not None:
        details.append(f"time={format_time_ms(node.actual_time_ms)}")
    return f"{label} [dim]({' '.join(details)})[/dim]"


def render_plan(node: "PlanNode | None", raw_text: str = "") -> RenderableType:
    """
    Plan display: a tree when the plan parsed, the raw text when it did not.
    """
    if node is None:
        return Panel(Text(raw_text), title="Query Plan (unparsed)", border_style="yellow")
    return plan_tree(node)


def text_report(result: "WorkbenchResult", parser_config: ParserConfig | None = None) -> Group:
    """
    All text-format sections as one renderable.

    ``parser_config`` should match the one used for analysis so the drawn
    plan has the same depth limit.
    """
    recommended = result.recommended_strategy
    header = Panel(
        f"Operators: [bold]{len(result.operator_analyses)}[/bold]  |  "
        f"Recommended: [bold]{recommended.name}[/bold]  |  "
        f"Speedup: [bold]{recommended.overall_speedup:.1f}x[/bold]",
        title="AccelSense Analysis",
        border_style="cyan",
    )
    parts: list[RenderableType] = [header, hardware_table(result.hardware_profile)]
    if result.explain_text:
        plan = parse_plan(result.explain_text, parser_config)
        parts.append(render_plan(plan, result.explain_text))
    parts.append(operators_table(result))
    parts.append(strategies_table(result))
    parts.extend(recommendation_panels(result))
    return Group(*parts)


def cost_model_table(cost_model: "CostModel") -> Table:
    """The calibration table, one row per operator kind."""
    table = Table(title="Cost Model")
    table.add_column("Operator", style="bold cyan")
    table.add_column("Reference rows", justify="right")
    table.add_column("CPU time", justify="right")
    table.add_column("CPU cost", justify="right")
    table.add_column("Accelerators")
    table.add_column("Note")

    for op, profile in cost_model.profiles.items():
        accelerators = ", ".join(
            f"{a.backend.badge} {a.speedup:g}x {format_cost(a.cost_usd)}" for a in profile.accelerators
        ) or "-"
        table.add_row(
            f"{op.label} ({profile.operator_name})",
            format_rows(profile.reference_rows),
            format_time_ms(profile.cpu_time_ms),
            format_cost(profile.cpu_cost_usd),
            accelerators,
            profile.note,
        )
    return table


def capture(renderable: RenderableType, width: int = TEXT_WIDTH) -> str:
    """Render a rich renderable to plain text."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, legacy_windows=False)
    console.print(renderable)
    return buffer.getvalue()


# =============================================================================
# Text renderer
# =============================================================================


def render_text(result: "WorkbenchResult", parser_config: ParserConfig | None = None) -> str:
    """
    Render an advisory result as terminal text.

    Same tables the CLI prints, captured without color.
    """
    return capture(text_report(result, parser_config))


# =============================================================================
# JSON renderer
# =============================================================================


def render_json(result: "WorkbenchResult", indent: int = 2) -> str:
    """
    Render an advisory result as JSON.

    Field names follow the result models, so the output validates back into
    a WorkbenchResult.
    """
    return json.dumps(result.model_dump(mode="json"), indent=indent)


# =============================================================================
# Markdown renderer
# =============================================================================


def render_markdown(result: "WorkbenchResult") -> str:
    """
    Render an advisory result as Markdown.

    Suitable for GitHub comments/issues, Slack messages, documentation.
    """
    lines: list[str] = []
    recommended = result.recommended_strategy

    lines.append("# AccelSense Analysis Report")
    lines.append("")
    lines.append(
        f"**Recommended:** {recommended.name} "
        f"({recommended.overall_speedup:.1f}x, {format_time_ms(recommended.total_estimated_time_ms)})"
    )
    lines.append("")

    lines.append("## Query")
    lines.append("")
    lines.append("```sql")
    lines.append(result.sql.strip())
    lines.append("```")
    lines.append("")

    lines.append("## Operators")
    lines.append("")
    lines.append("| Operator | Rows | Backend | Speedup | Rationale |")
    lines.append("|----------|------|---------|---------|-----------|")
    for op in result.operator_analyses:
        lines.append(
            f"| {op.operator_name} | {format_rows(op.estimated_rows)} | "
            f"{op.recommended_backend.label} | {op.recommended_option.estimated_speedup:.1f}x | "
            f"{op.rationale.replace('|', '/')} |"
        )
    lines.append("")

    lines.append("## Strategies")
    lines.append("")
    lines.append("| Strategy | Time | Cost | Speedup | Break-even |")
    lines.append("|----------|------|------|---------|------------|")
    for index, strategy in enumerate(result.strategies):
        name = strategy.name
        if index == result.recommended_strategy_index:
            name = f"**{name}**"
        lines.append(
            f"| {name} | {format_time_ms(strategy.total_estimated_time_ms)} | "
            f"{format_cost(strategy.total_estimated_cost_usd)} | "
            f"{strategy.overall_speedup:.1f}x | {format_break_even(strategy.break_even_queries_per_hour)} |"
        )
    lines.append("")

    if result.recommendations:
        lines.append("## Recommendations")
        lines.append("")
        for rec in result.recommendations:
            lines.append(f"### {rec.title}")
            lines.append("")
            lines.append(f"*{rec.category.label}*")
            lines.append("")
            lines.append(rec.description)
            if rec.actionable_sql:
                lines.append("")
                lines.append("```sql")
                lines.append(rec.actionable_sql)
                lines.append("```")
            lines.append("")

    return "\n".join(lines)
