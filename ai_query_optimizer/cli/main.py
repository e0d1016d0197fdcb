"""
CLI interface for the AI query optimizer.

Provides command-line access to model selection, context shrinking, the
self-test harness and the persisted usage stats.
"""

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_query_optimizer.common.logging import configure_logging
from ai_query_optimizer.config.loader import OptimizerConfig, load_optimizer_config
from ai_query_optimizer.core.manager import OptimizationManager
from ai_query_optimizer.core.model_selector import SelectionOptions
from ai_query_optimizer.core.pricing import calculate_cost
from ai_query_optimizer.demo.mock_data import build_mock_business_data

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION_HELP = "Path to YAML optimizer configuration"


def _build_manager(config_path: Optional[str]) -> OptimizationManager:
    """Load configuration, set up logging and build the manager."""
    config = load_optimizer_config(config_path) if config_path else OptimizerConfig()
    configure_logging(config.logging.level, config.logging.format)
    return OptimizationManager(config=config)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI Query Optimizer CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Query Optimizer - Use --help to see available commands")


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Show the optimization system health."""
    try:
        manager = _build_manager(config)
        system_status = manager.get_system_status()
        colour = "green" if system_status["status"] == "excellent" else "yellow"
        console.print(f"[{colour}]●[/] Optimization status: [bold]{system_status['status']}[/bold]")
        for issue in system_status["issues"]:
            console.print(f"  - {issue}")
        for component, state in system_status["components_status"].items():
            console.print(f"  {component}: {state}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def stats(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Show persisted model usage statistics."""
    try:
        manager = _build_manager(config)
        usage = manager.selector.get_usage_stats()

        console.print("\n[bold]Model Usage[/bold]")
        console.print(f"Total queries: {usage['total_queries']}")
        console.print(f"Total cost spent: {_format_currency(usage['total_cost_spent'])}")
        console.print(f"Total cost saved: {_format_currency(usage['total_cost_saved'])}")

        if usage["model_usage"]:
            table = Table()
            table.add_column("Model")
            table.add_column("Calls", justify="right")
            table.add_column("Total cost", justify="right")
            table.add_column("Avg response (ms)", justify="right")
            for name, model in usage["model_usage"].items():
                table.add_row(
                    name,
                    str(model["count"]),
                    _format_currency(model["total_cost"]),
                    f"{model['average_response_time_ms']:.0f}",
                )
            console.print(table)

        console.print(f"\n{usage['recommendation']}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def benchmark(
    query: Optional[List[str]] = typer.Option(
        None,
        "--query",
        "-q",
        help="Query to benchmark (repeatable); a default set runs if omitted"
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Run the optimization pipeline on sample queries without calling a model."""
    try:
        manager = _build_manager(config)
        result = manager.run_performance_test(query or None)

        table = Table(title="Performance Test")
        table.add_column("Query")
        table.add_column("Model")
        table.add_column("Strategy")
        table.add_column("Reduction", justify="right")
        table.add_column("Time (ms)", justify="right")
        for row in result["queries"]:
            if row["performance"] == "error":
                table.add_row(row["query"], "[red]error[/]", "", "", "")
                continue
            table.add_row(
                row["query"],
                row["selected_model"],
                row["strategy"],
                f"{row['context_reduction']}%",
                f"{row['processing_time_ms']:.1f}",
            )
        console.print(table)

        summary = result["summary"]
        console.print(
            f"Queries: {summary['successful_queries']}/{summary['total_queries']} ok, "
            f"avg {summary['average_processing_time_ms']:.1f} ms, "
            f"avg reduction {summary['average_context_reduction']}%, "
            f"est. cost {_format_currency(summary['total_estimated_cost'])}"
        )
        for warning in result["recommendations"]:
            console.print(f"[yellow]![/] {warning}")

        sys.exit(EXIT_CODE_FAIL if summary["error_queries"] else EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def select(
    query: str = typer.Argument(..., help="Query to choose a model for"),
    data_size: float = typer.Option(1000, "--data-size", "-s", help="Context size in tokens"),
    prioritize_speed: bool = typer.Option(False, "--speed", help="Favour faster models"),
    prioritize_cost: bool = typer.Option(False, "--cost", help="Favour cheaper models"),
    high_accuracy: bool = typer.Option(False, "--high-accuracy", help="Force the complex tier"),
    max_budget: Optional[float] = typer.Option(None, "--max-budget", "-b", help="Cost ceiling per call (USD)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Show which model a query would be sent to, and how every model compares."""
    try:
        manager = _build_manager(config)
        options = SelectionOptions(
            prioritize_speed=prioritize_speed,
            prioritize_cost=prioritize_cost,
            require_high_accuracy=high_accuracy,
            max_budget=max_budget,
        )
        complexity = manager.selector.resolve_complexity(query, require_high_accuracy=high_accuracy)
        model_config = manager.selector.select_optimal_model(query, data_size, complexity, options)

        console.print(f"[green]✓[/] Selected model: [bold]{model_config.model}[/bold]")
        console.print(f"Complexity: {model_config.complexity.value}")
        console.print(f"Temperature: {model_config.temperature}")
        console.print(f"Max tokens: {model_config.max_tokens}")
        console.print(f"Estimated cost: {_format_cost(model_config.estimated_cost)}")
        console.print(f"Reason: {model_config.rationale}")

        table = Table(title="Model Comparison")
        table.add_column("Model")
        table.add_column("Score", justify="right")
        table.add_column("Estimated cost", justify="right")
        for name in manager.selector.tiers.names():
            marker = " [green]✓[/]" if name == model_config.model else ""
            table.add_row(
                f"{name}{marker}",
                f"{model_config.scores.get(name, 0):.1f}",
                _format_cost(calculate_cost(manager.selector.tiers.get_tier(name), model_config.estimated_tokens)),
            )
        console.print(table)
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def optimize(
    query: str = typer.Argument(..., help="Query to shrink the context for"),
    data: Optional[Path] = typer.Option(
        None,
        "--data",
        "-d",
        help="JSON business-data snapshot; the mock snapshot is used if omitted"
    ),
    tier: Optional[str] = typer.Option(
        None,
        "--tier",
        "-t",
        help="Model tier hint (simple, medium, complex); resolved from the query if omitted"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the shrunk context as JSON"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Shrink a business-data snapshot for a query and report the reduction."""
    try:
        manager = _build_manager(config)
        if data is not None:
            with open(data, 'r', encoding='utf-8') as f:
                business_data = json.load(f)
        else:
            business_data = build_mock_business_data()

        hint = tier or manager.selector.resolve_complexity(query)
        context = manager.context_optimizer.prepare_optimal_context(query, business_data, hint)
        console.print(manager.context_optimizer.generate_optimization_report(context))

        if output is not None:
            with open(output, 'w', encoding='utf-8') as f:
                json.dump(context.to_prompt_payload(), f, ensure_ascii=False, indent=2, default=str)
            console.print(f"[green]✓[/] Context written to {output}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("reset-stats")
def reset_stats(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Clear the persisted model usage statistics."""
    try:
        manager = _build_manager(config)
        manager.selector.reset_stats()
        console.print("[green]✓[/] Usage statistics cleared")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_cost(amount: float) -> str:
    """Per-call costs are fractions of a cent."""
    return f"${amount:.6f}"


if __name__ == "__main__":
    app()
