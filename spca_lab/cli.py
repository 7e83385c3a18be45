"""
cli.py - Rich Command Line Interface for SPCA Lab

Usage:
    spca-lab --help
    spca-lab fit data.csv --components 3 --alpha 1e-3 --gamma 0.5 --output fit.npz
    spca-lab info fit.npz
    spca-lab version
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from enum import Enum

import numpy as np
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .types import SPCAError

# Initialize Typer app and Rich console
app = typer.Typer(
    name="spca-lab",
    help="Robust Sparse PCA: sparse loadings with outlier separation",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


class OutputFormat(str, Enum):
    """Output file formats."""
    npz = "npz"
    json = "json"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def print_report(result, title: str = "Decomposition Summary"):
    """Print the fit statistics, the component table and the loadings."""
    from .reporting import render_result, render_summary, summarize

    table = Table(title=title, show_header=False, title_style="bold cyan")
    table.add_column("Property", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Observations (n)", str(result.n_samples))
    table.add_row("Variables (p)", str(result.n_features))
    table.add_row("Components (k)", str(result.k))
    table.add_row("Iterations", f"{result.n_iter} ({'converged' if result.converged else 'budget exhausted'})")
    table.add_row("Final Objective", f"{result.objective[-1]:.5e}")
    table.add_row("Nonzero Loadings", f"{np.count_nonzero(result.loadings)} / {result.loadings.size}")
    table.add_row("Outlier Entries", f"{np.count_nonzero(result.sparse)} / {result.sparse.size}")
    if result.dropped_rows:
        table.add_row("Dropped Rows", f"[yellow]{len(result.dropped_rows)}[/yellow] (missing values)")

    console.print(table)
    console.print(render_summary(summarize(result)))
    console.print(render_result(result))


# =============================================================================
# COMMANDS
# =============================================================================

@app.command()
def fit(
    input_file: Path = typer.Argument(..., help="CSV file with a header row (rows=observations, cols=variables)"),
    components: Optional[int] = typer.Option(None, "--components", "-k", help="Target rank (default: min(n, p))"),
    alpha: float = typer.Option(1e-4, "--alpha", "-a", help="Sparsity weight on the loadings"),
    beta: float = typer.Option(1e-4, "--beta", "-b", help="Ridge weight on the loadings"),
    gamma: float = typer.Option(100.0, "--gamma", "-g", help="Sparsity threshold on the outliers"),
    center: bool = typer.Option(True, "--center/--no-center", help="Center the variables"),
    scale: bool = typer.Option(False, "--scale/--no-scale", help="Scale the variables to unit variance"),
    max_iter: int = typer.Option(1000, "--max-iter", help="Maximum number of iterations"),
    tol: float = typer.Option(1e-5, "--tol", help="Tolerance on the relative objective improvement"),
    verbose: bool = typer.Option(False, "--verbose/--quiet", help="Log per-iteration progress"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the result to this path"),
    format: OutputFormat = typer.Option(OutputFormat.npz, "--format", "-f", help="Output format"),
):
    """
    Fit a robust sparse PCA model to a data matrix.

    Example:
        spca-lab fit data.csv -k 3 --alpha 1e-3 --gamma 0.5
        spca-lab fit data.csv -k 2 --scale --output fit.json --format json
    """
    from .decomposition import robspca
    from .io import ResultFormat, load_matrix, save_result

    console.print(Panel.fit("[bold]Robust Sparse PCA[/bold]", border_style="blue"))

    try:
        X = load_matrix(input_file)
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] File not found: {input_file}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error:[/red] Could not parse {input_file}: {e}")
        raise typer.Exit(1)

    console.print(f"  Loaded data: [cyan]{X.shape[0]}[/cyan] observations × [cyan]{X.shape[1]}[/cyan] variables")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console
    ) as progress:
        progress.add_task("Running variable projection solver...", total=None)
        try:
            result = robspca(
                X,
                k=components,
                alpha=alpha,
                beta=beta,
                gamma=gamma,
                center=center,
                scale=scale,
                max_iter=max_iter,
                tol=tol,
                verbose=verbose,
            )
        except SPCAError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)

    console.print("  [green]✓[/green] Model fitted\n")
    print_report(result, title="Fitted Model")

    if output is not None:
        try:
            save_result(result, output, ResultFormat(format.value))
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        console.print(f"\n  Saved to: [bold]{output}[/bold]")


@app.command()
def info(
    result_file: Path = typer.Argument(..., help="Saved result (.npz or .json)"),
):
    """
    Display the report of a saved result.

    Example:
        spca-lab info fit.npz
    """
    from .io import load_result

    try:
        result = load_result(result_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"  File: [bold]{result_file}[/bold]\n")
    print_report(result)


@app.command()
def version():
    """Show version information."""
    from spca_lab import __version__

    console.print(Panel(
        f"[bold cyan]SPCA Lab[/bold cyan] v{__version__}\n\n"
        "Robust sparse principal component analysis\n"
        "via variable projection.",
        border_style="cyan"
    ))


# =============================================================================
# ENTRY POINT
# =============================================================================

def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
