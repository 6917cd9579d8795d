"""Typer-based CLI for decypher bundle analysis."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .callgraph import UNRESOLVED
from .config import CONFIG_FILE, AnalysisConfig
from .config_manager import load_analysis_config, save_analysis_config
from .errors import ConfigurationError, ParseError
from .modules import default_modules
from .orchestrator import AnalysisOrchestrator, AnalysisReport, value_to_dict
from .storage import AnalysisStore, write_json

app = typer.Typer(
    help="decypher: recover symbols, call graph, complexity, prompts, tools and modules from a JavaScript bundle.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

FILE_ARGUMENT = typer.Argument(..., exists=True, dir_okay=False, help="JavaScript bundle to analyse.")
CONFIG_OPTION = typer.Option(None, "--config", "-c", exists=True, dir_okay=False, help="TOML config file (defaults to ~/.decypher/config.toml).")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"decypher v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log every analysis decision."),
):
    """decypher: static analysis of minified JavaScript bundles."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )


def _analyze(file: Path, config_path: Optional[Path]) -> AnalysisReport:
    try:
        config = load_analysis_config(config_path)
        return AnalysisOrchestrator(config).analyze_file(file)
    except (ParseError, ConfigurationError) as exc:
        raise typer.BadParameter(str(exc)) from exc


def _short(text: str, width: int = 80) -> str:
    flat = " ".join(text.split())
    return escape(flat if len(flat) <= width else flat[: width - 3] + "...")


@app.command("analyze")
def analyze(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = typer.Option(None, "--db", help="Save results to this SQLite database."),
    json_path: Optional[Path] = typer.Option(None, "--json", help="Write the full report as JSON."),
):
    """Run every analysis and print a summary."""
    report = _analyze(file, config_path)
    stats = report.stats

    console.print(
        Panel.fit(
            f"[bold]{file.name}[/bold]\n"
            f"{stats.functions} functions, {stats.symbols} symbols, "
            f"{stats.total_calls} calls, {stats.artifacts_accepted} artifacts\n"
            f"{stats.tool_definitions} tools, {stats.config_values} config values, "
            f"{stats.interesting_strings} strings",
            title="[bold]Analysis Summary[/bold]",
            border_style="cyan",
        )
    )

    table = Table(title="Degraded results", show_header=True)
    table.add_column("Measure", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Structural errors", str(stats.structural_errors))
    table.add_row("Unknown symbols", str(stats.unknown_symbols))
    table.add_row("Cyclic symbols", str(stats.cyclic_symbols))
    table.add_row("Resolution passes", str(stats.resolution_passes))
    table.add_row("Deferred blocks", str(stats.deferred_blocks))
    table.add_row("Unresolved calls", str(stats.unresolved_calls))
    table.add_row("Top-level calls", str(stats.top_level_calls))
    table.add_row("Rejected text candidates", str(stats.artifacts_rejected))
    table.add_row("Fallback module assignments", str(stats.fallback_assignments))
    console.print(table)

    if db is not None:
        with AnalysisStore(db) as store:
            store.save_report(report)
        typer.echo(f"Saved results to {db}")
    if json_path is not None:
        write_json(report, json_path)
        typer.echo(f"Wrote JSON report to {json_path}")


@app.command("symbols")
def symbols(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Show a single symbol."),
):
    """List resolved symbols."""
    report = _analyze(file, config_path)
    table = Table(title="Symbols", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Provenance")
    table.add_column("Value", min_width=30)

    for symbol_name, symbol in report.symbols.items():
        if name is not None and symbol_name != name:
            continue
        value = value_to_dict(symbol.value)
        shown = value.get("value", value.get("target", ""))
        table.add_row(symbol_name, value["type"], symbol.provenance.value, _short(str(shown)))
    console.print(table)


@app.command("callgraph")
def callgraph(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    function: Optional[str] = typer.Option(None, "--function", "-f", help="Only show calls from/to this function."),
):
    """Show call edges between functions."""
    report = _analyze(file, config_path)
    graph = report.call_graph
    if function is not None and function not in report.function_index:
        raise typer.BadParameter(f"Function '{function}' not found.")

    table = Table(title="Call Graph", show_header=True)
    table.add_column("Caller", style="cyan")
    table.add_column("Callee")
    table.add_column("Count", justify="right")
    for edge in graph.edge_list():
        if function is not None and function not in (edge.caller, edge.callee):
            continue
        callee = f"[dim]{edge.callee}[/dim]" if edge.callee == UNRESOLVED else edge.callee
        table.add_row(edge.caller, callee, str(edge.count))
    console.print(table)
    typer.echo(
        f"Calls: {graph.total_calls} | Unresolved: {graph.unresolved_calls} | "
        f"Top-level: {graph.top_level_calls}"
    )


@app.command("complexity")
def complexity(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    top: int = typer.Option(10, "--top", "-t", min=1, help="Number of functions to show."),
):
    """Show the most complex functions."""
    report = _analyze(file, config_path)
    table = Table(title=f"Top {top} by cyclomatic complexity", show_header=True)
    table.add_column("Function", style="cyan")
    table.add_column("Cyclomatic", justify="right")
    table.add_column("Nesting", justify="right")
    table.add_column("Statements", justify="right")
    table.add_column("Params", justify="right")
    for metric in report.complexity.top(top):
        table.add_row(
            metric.function,
            str(metric.cyclomatic),
            str(metric.nesting_depth),
            str(metric.statement_count),
            str(metric.param_count),
        )
    console.print(table)

    summary = report.complexity.summary
    typer.echo(
        f"Average: {summary['average_cyclomatic']} | Max: {summary['max_cyclomatic']} "
        f"({summary['most_complex']})"
    )


@app.command("artifacts")
def artifacts(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    min_confidence: float = typer.Option(0.0, "--min-confidence", min=0.0, max=1.0, help="Hide lower scores."),
):
    """List extracted text artifacts."""
    report = _analyze(file, config_path)
    table = Table(title="Artifacts", show_header=True)
    table.add_column("Confidence", justify="right")
    table.add_column("Category", style="cyan")
    table.add_column("Entity")
    table.add_column("Provenance")
    table.add_column("Text", min_width=40)
    shown = 0
    for candidate in report.extraction.candidates:
        if candidate.confidence < min_confidence:
            continue
        shown += 1
        table.add_row(
            f"{candidate.confidence:.2f}",
            candidate.category.value,
            candidate.entity or "",
            candidate.provenance,
            _short(candidate.text, 60),
        )
    console.print(table)
    typer.echo(f"{shown} artifacts shown")


@app.command("modules")
def modules(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """Show how functions are grouped into modules."""
    report = _analyze(file, config_path)
    table = Table(title="Module Assignment", show_header=True)
    table.add_column("Module", style="cyan")
    table.add_column("Functions", justify="right")
    table.add_column("Members", min_width=30)
    for module, members in report.modules.by_module().items():
        table.add_row(module, str(len(members)), _short(", ".join(members), 60))
    console.print(table)


@app.command("config-values")
def config_values(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    category: Optional[str] = typer.Option(None, "--category", help="Only show one category (model, api, path...)."),
):
    """List configuration constants found in the bundle."""
    report = _analyze(file, config_path)
    table = Table(title="Configuration Values", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value", min_width=30)
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Line", justify="right")
    shown = 0
    for value in report.config_values:
        if category is not None and value.category.value != category:
            continue
        shown += 1
        table.add_row(value.key, _short(value.value, 60), value.value_type, value.category.value, str(value.line))
    console.print(table)
    typer.echo(f"{shown} configuration values shown")


@app.command("strings")
def strings(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
    category: Optional[str] = typer.Option(None, "--category", help="Only show one category (url, path, error_message...)."),
    limit: int = typer.Option(50, "--limit", "-l", min=1, help="Maximum number of strings to show."),
):
    """List interesting strings, most relevant first."""
    report = _analyze(file, config_path)
    table = Table(title="Interesting Strings", show_header=True)
    table.add_column("Relevance", justify="right")
    table.add_column("Category", style="cyan")
    table.add_column("Seen", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Value", min_width=30)
    selected = [s for s in report.strings if category is None or s.category.value == category][:limit]
    for item in selected:
        table.add_row(
            f"{item.relevance:.1f}",
            item.category.value,
            str(item.occurrences),
            str(item.line),
            _short(item.value, 60),
        )
    console.print(table)
    typer.echo(f"{len(selected)} strings shown")


@app.command("tools")
def tools(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """List tool definitions with their documentation and schema."""
    report = _analyze(file, config_path)
    if not report.tools:
        typer.echo("No tool definitions found")
        return
    for tool in report.tools:
        schema = tool.input_schema or {}
        params = ", ".join(schema.get("properties", {})) or "-"
        flags = [
            label
            for label, on in (
                ("strict", tool.properties.is_strict),
                ("read-only", tool.properties.is_read_only),
                ("concurrency-safe", tool.properties.is_concurrency_safe),
                ("disabled", not tool.properties.is_enabled),
            )
            if on
        ]
        console.print(
            Panel(
                f"[bold]Entity:[/bold] {escape(tool.entity)}\n"
                f"[bold]Summary:[/bold] {_short(tool.short_description, 100)}\n"
                f"[bold]Prompt:[/bold] {len(tool.full_prompt)} chars\n"
                f"[bold]Parameters:[/bold] {escape(params)}\n"
                f"[bold]Flags:[/bold] {', '.join(flags) or '-'}",
                title=f"[bold]{escape(tool.name)}[/bold] ({tool.confidence:.2f})",
                border_style="green",
            )
        )
    typer.echo(f"{len(report.tools)} tools found")


@app.command("metrics")
def metrics(
    file: Path = FILE_ARGUMENT,
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """Show whole-bundle code metrics."""
    report = _analyze(file, config_path)
    code = report.code_metrics
    table = Table(title="Code Metrics", show_header=True)
    table.add_column("Measure", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Lines of code", str(code.total_loc))
    table.add_row("Statements", str(code.statement_count))
    table.add_row("Functions", str(code.function_count))
    table.add_row("Classes", str(code.class_count))
    table.add_row("Variables", str(code.variable_count))
    table.add_row("Imports", str(code.import_count))
    table.add_row("Exports", str(code.export_count))
    table.add_row("Average function length", f"{code.avg_function_length:.2f}")
    table.add_row("Longest function", f"{code.longest_function or '-'} ({code.max_function_length})")
    console.print(table)


@app.command("init-config")
def init_config(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Where to write the config file (defaults to ~/.decypher/config.toml)."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
):
    """Write the default configuration as TOML."""
    path = path or CONFIG_FILE
    if path.exists() and not force:
        raise typer.BadParameter(f"{path} already exists; use --force to overwrite.")
    written = save_analysis_config(AnalysisConfig(modules=default_modules()), path)
    typer.echo(f"Wrote default configuration to {written}")
