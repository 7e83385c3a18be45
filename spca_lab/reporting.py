"""
reporting.py - Human-Readable Views of a Robust SPCA Result

Consumes only a finished RobustSPCAResult:
- summarize: per-component variance, standard deviation and explained-variance ratios
- format_result: compact plain-text view (standard deviations, eigenvalues, loadings)
- render_summary / render_result: rich tables for terminal display

Example Usage:
-------------
    >>> from spca_lab import robspca
    >>> from spca_lab.reporting import summarize, format_result
    >>>
    >>> result = robspca(X, k=3, verbose=False)
    >>> print(format_result(result))
    >>> summary = summarize(result)
    >>> summary.cumulative_variance_ratio[-1]  # fraction explained by all k components
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from rich import box
from rich.table import Table

from .types import RobustSPCAResult

SUMMARY_ROWS = (
    "Explained variance",
    "Standard deviations",
    "Proportion of variance",
    "Cumulative proportion",
)


@dataclass(frozen=True)
class VarianceSummary:
    """
    Explained-variance statistics of a decomposition.

    Parameters
    ----------
    variance : np.ndarray
        Variance of each component (``sdev**2``), shape (k,).
    sdev : np.ndarray
        Standard deviation of each component, shape (k,).
    explained_variance_ratio : np.ndarray
        ``variance / total_variance``, shape (k,). Zero when the total is zero.
    cumulative_variance_ratio : np.ndarray
        Running sum of the ratios, shape (k,).
    labels : Tuple[str, ...]
        Component names ``PC1 .. PCk``.
    """
    variance: np.ndarray
    sdev: np.ndarray
    explained_variance_ratio: np.ndarray
    cumulative_variance_ratio: np.ndarray
    labels: Tuple[str, ...]

    def as_table(self, decimals: int = 3) -> np.ndarray:
        """
        Rounded 4 x k table, one row per entry of ``SUMMARY_ROWS``.
        """
        return np.round(
            np.vstack([
                self.variance,
                self.sdev,
                self.explained_variance_ratio,
                self.cumulative_variance_ratio,
            ]),
            decimals,
        )


def component_labels(k: int) -> Tuple[str, ...]:
    """``("PC1", ..., "PCk")``"""
    return tuple(f"PC{i + 1}" for i in range(k))


def summarize(result: RobustSPCAResult) -> VarianceSummary:
    """
    Per-component variance table of a result.

    Parameters
    ----------
    result : RobustSPCAResult

    Returns
    -------
    VarianceSummary
    """
    sdev = np.asarray(result.sdev, dtype=np.float64)
    variance = sdev ** 2

    if result.variance > 0:
        ratio = variance / result.variance
    else:
        ratio = np.zeros_like(variance)

    return VarianceSummary(
        variance=variance,
        sdev=sdev,
        explained_variance_ratio=ratio,
        cumulative_variance_ratio=np.cumsum(ratio),
        labels=component_labels(result.k),
    )


def format_result(result: RobustSPCAResult, decimals: int = 3) -> str:
    """
    Compact printable view of a result.

    Lists the rounded standard deviations, eigenvalues and sparse loadings.
    """
    def fmt(arr):
        return np.array2string(np.round(arr, decimals), suppress_small=True)

    return "\n".join([
        "Standard deviations:",
        fmt(result.sdev),
        "",
        "Eigenvalues:",
        fmt(result.eigenvalues),
        "",
        "Sparse loadings:",
        fmt(result.loadings),
    ])


def render_summary(summary: VarianceSummary, decimals: int = 3) -> Table:
    """Rich table of a VarianceSummary (rows = statistics, columns = components)."""
    table = Table(title="Importance of Components", box=box.ROUNDED, title_style="bold cyan")
    table.add_column("", style="dim")
    for label in summary.labels:
        table.add_column(label, justify="right")

    values = summary.as_table(decimals)
    for name, row in zip(SUMMARY_ROWS, values):
        table.add_row(name, *(f"{v:.{decimals}f}" for v in row))

    return table


def render_result(result: RobustSPCAResult, decimals: int = 3, max_rows: int = 20) -> Table:
    """
    Rich table with standard deviations, eigenvalues and the sparse loadings.

    Only the first ``max_rows`` variables are listed; zero loadings print as "."
    """
    table = Table(title="Robust Sparse PCA", box=box.SIMPLE, title_style="bold cyan")
    table.add_column("", style="cyan")
    labels = component_labels(result.k)
    for label in labels:
        table.add_column(label, justify="right")

    table.add_row("Std. deviation", *(f"{v:.{decimals}f}" for v in result.sdev))
    table.add_row("Eigenvalue", *(f"{v:.{decimals}f}" for v in result.eigenvalues))
    table.add_section()

    n_show = min(max_rows, result.n_features)
    for j in range(n_show):
        row = result.loadings[j]
        table.add_row(f"V{j + 1}", *("." if v == 0 else f"{v:.{decimals}f}" for v in row))

    if result.n_features > n_show:
        table.add_row("...", *([""] * result.k))

    return table
