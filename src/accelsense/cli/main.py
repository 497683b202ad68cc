"""
AccelSense CLI - Hardware acceleration advisor for analytical SQL.

Usage:
    accelsense analyze "SELECT region, SUM(cost) FROM cur GROUP BY region"
    accelsense analyze query.sql --plan explain.json --reference-cluster
    accelsense plan explain.txt
    accelsense hardware --hardware gpu-node.yaml
    accelsense ops
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from accelsense import __version__
from accelsense.advisor import (
    CPU_ONLY,
    DEFAULT_COST_MODEL,
    REFERENCE_CLUSTER,
    AdvisoryEngine,
    CostModel,
    HardwareProfile,
    load_cost_model,
    load_hardware_profile,
)
from accelsense.config import Config, get_config
from accelsense.exceptions import AccelSenseError, ParseError
from accelsense.output.renderers import (
    OutputFormat,
    cost_model_table,
    hardware_table,
    render_json,
    render_markdown,
    render_plan,
    text_report,
)
from accelsense.parser import ParserConfig, parse_plan, read_plan_file

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="accelsense",
    help="Hardware acceleration advisor for analytical SQL queries",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"AccelSense version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool, config_level: str = "WARNING") -> None:
    """Send library logs to stderr through rich."""
    level = logging.DEBUG if verbose else logging.getLevelName(config_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


def _fail(error: AccelSenseError) -> typer.Exit:
    error_console.print(f"[red]Error:[/red] {error.message}")
    detail = getattr(error, "detail", None)
    if detail:
        error_console.print(f"\n[dim]{detail}[/dim]")
    return typer.Exit(code=1)


def _load_config() -> Config:
    try:
        return get_config()
    except AccelSenseError as e:
        raise _fail(e) from e


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """AccelSense - Hardware acceleration advisor."""
    configure_logging(verbose, _load_config().log_level)


# =============================================================================
# Shared option handling
# =============================================================================


def _resolve_hardware(
    config: Config,
    hardware_file: Path | None,
    reference_cluster: bool,
) -> HardwareProfile:
    """
    Pick the profile: --hardware, then --reference-cluster, then the
    configured profile, then CPU-only. The configured threshold override
    applies to all of them.
    """
    threshold = config.gpu_offload_threshold_rows
    path = hardware_file or (None if reference_cluster else config.hardware_profile_path)
    if path is not None:
        return load_hardware_profile(path, gpu_offload_threshold_rows=threshold)

    profile = REFERENCE_CLUSTER if reference_cluster else CPU_ONLY
    if threshold is None:
        return profile
    return profile.model_copy(update={"gpu_offload_threshold_rows": threshold})


def _resolve_cost_model(config: Config, cost_model_file: Path | None) -> CostModel:
    if cost_model_file is not None:
        return load_cost_model(cost_model_file)
    if config.cost_model_path:
        return load_cost_model(config.cost_model_path)
    return DEFAULT_COST_MODEL


def _read_query(query: str) -> str:
    """The query argument is either SQL text or a path to a .sql file."""
    candidate = Path(query)
    if candidate.suffix.lower() == ".sql" or candidate.is_file():
        return read_plan_file(candidate)
    return query


HardwareOption = Annotated[
    Optional[Path],
    typer.Option("--hardware", "-H", help="Hardware profile (JSON or YAML)"),
]
ReferenceClusterOption = Annotated[
    bool,
    typer.Option("--reference-cluster", help="Use the built-in 2x A100 + FPGA + NPU profile"),
]
CostModelOption = Annotated[
    Optional[Path],
    typer.Option("--cost-model", "-c", help="Cost-model overrides (JSON or YAML)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON"),
]


# =============================================================================
# Commands
# =============================================================================


@app.command()
def analyze(
    query: Annotated[
        str,
        typer.Argument(help="SQL text, or path to a .sql file"),
    ],
    plan_file: Annotated[
        Optional[Path],
        typer.Option("--plan", "-p", help="EXPLAIN output for the query (JSON or text)"),
    ] = None,
    hardware_file: HardwareOption = None,
    reference_cluster: ReferenceClusterOption = False,
    cost_model_file: CostModelOption = None,
    output_format: Annotated[
        Optional[OutputFormat],
        typer.Option("--format", "-f", help="Output format (defaults to config)"),
    ] = None,
) -> None:
    """
    Recommend a backend for every operator of a query.

    Without --plan, operators are inferred from the query text.

    Examples:

        $ accelsense analyze "SELECT region, SUM(cost) FROM cur GROUP BY region"

        $ psql -c "EXPLAIN (FORMAT JSON) $(cat q.sql)" -At > plan.json
        $ accelsense analyze q.sql --plan plan.json --reference-cluster
    """
    config = _load_config()

    try:
        sql = _read_query(query)
        engine = AdvisoryEngine(
            hardware=_resolve_hardware(config, hardware_file, reference_cluster),
            cost_model=_resolve_cost_model(config, cost_model_file),
            parser_config=ParserConfig(max_depth=config.parser_max_depth),
        )
        if plan_file is not None:
            logger.debug("Using plan from %s", plan_file)
            result = engine.analyze_explain(sql, read_plan_file(plan_file))
        else:
            result = engine.analyze(sql)
    except AccelSenseError as e:
        raise _fail(e) from e

    fmt = output_format or OutputFormat(config.output_format)
    if fmt == OutputFormat.JSON:
        console.print_json(render_json(result))
    elif fmt == OutputFormat.MARKDOWN:
        typer.echo(render_markdown(result))
    else:
        console.print(text_report(result, engine.parser_config))


@app.command()
def plan(
    plan_file: Annotated[
        Path,
        typer.Argument(help="EXPLAIN output (JSON or indented text)"),
    ],
    json_output: JsonOption = False,
) -> None:
    """
    Parse a plan and draw it as a tree.

    Text that is not a recognizable plan is shown as-is.
    """
    config = _load_config()

    try:
        raw = read_plan_file(plan_file)
    except ParseError as e:
        raise _fail(e) from e

    node = parse_plan(raw, ParserConfig(max_depth=config.parser_max_depth))

    if json_output:
        if node is None:
            error_console.print("[red]Error:[/red] No plan structure found")
            raise typer.Exit(code=1)
        console.print_json(json.dumps(node.to_document()))
        return

    console.print(render_plan(node, raw))
    if node is not None:
        console.print(f"[dim]{node.node_count} nodes, depth {node.depth}[/dim]")


@app.command()
def hardware(
    hardware_file: HardwareOption = None,
    reference_cluster: ReferenceClusterOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show the hardware profile the advisor would use."""
    config = _load_config()

    try:
        profile = _resolve_hardware(config, hardware_file, reference_cluster)
    except AccelSenseError as e:
        raise _fail(e) from e

    if json_output:
        console.print_json(profile.model_dump_json())
        return

    console.print(hardware_table(profile))
    if not profile.has_accelerators:
        console.print(Panel(
            "[yellow]No accelerators present; every operator will run on CPU/SIMD.[/yellow]",
            border_style="yellow",
        ))


@app.command()
def ops(
    cost_model_file: CostModelOption = None,
    json_output: JsonOption = False,
) -> None:
    """List the cost-model table: CPU baselines and accelerator paths per operator."""
    config = _load_config()

    try:
        cost_model = _resolve_cost_model(config, cost_model_file)
    except AccelSenseError as e:
        raise _fail(e) from e

    if json_output:
        console.print_json(cost_model.model_dump_json())
        return

    console.print(cost_model_table(cost_model))


if __name__ == "__main__":
    app()
