"""
decomposition.py - Robust Sparse PCA via Variable Projection
============================================================

Jointly estimates a sparse loadings matrix B, an orthonormal rotation A and
a sparse outlier matrix S by minimizing

    f(A, B, S) = 0.5 ||X - X B A^T - S||_F^2 + alpha ||B||_1
                 + 0.5 beta ||B||_F^2 + gamma ||S||_1

subject to A^T A = I. Each iteration runs, in order:

1. Orthogonal Procrustes update of A
2. Proximal gradient (elastic net) update of B
3. Soft-threshold update of S

and the loop stops on the relative improvement of f or the iteration budget.
Uses loguru for diagnostics.

Reference:
    Erichson, N. B., Zheng, P., Manohar, K., Brunton, S. L., Kutz, J. N.,
    Aravkin, A. Y. (2020) "Sparse Principal Component Analysis via
    Variable Projection." SIAM J. Appl. Math.
"""

from __future__ import annotations

import math
from typing import List, Optional

import numpy as np
from loguru import logger

from .computation import (
    adjoint,
    initialize,
    objective,
    residual,
    total_variance,
    update_loadings,
    update_outliers,
    update_rotation,
)
from .preprocessing import (
    apply_center_scale,
    as_matrix,
    center_scale,
    drop_missing_rows,
    resolve_rank,
    undo_center_scale,
)
from .types import (
    InvalidParameterError,
    NumericalFailureError,
    RobustSPCAResult,
    ScaledParameters,
    SolverConfig,
    SolverState,
)


# =============================================================================
# CONVERGENCE MONITOR
# =============================================================================

class ConvergenceMonitor:
    """
    Objective trace and stopping rule of the solver.

    The loop continues while ``iteration <= max_iter`` and the relative
    improvement ``(f[i-1] - f[i]) / f[i]`` exceeds ``tol``. Before the
    second iteration the improvement is treated as infinite, so at least
    two iterations run whenever ``max_iter >= 2``.

    Parameters
    ----------
    max_iter : int
        Iteration budget.
    tol : float
        Tolerance on the relative improvement.
    verbose : bool, default=False
        Log a progress line per iteration at INFO level.
    """

    def __init__(self, max_iter: int, tol: float, verbose: bool = False):
        self.max_iter = max_iter
        self.tol = tol
        self.verbose = verbose
        self._trace: List[float] = []
        self.improvement = math.inf

    @property
    def iteration(self) -> int:
        """Number of completed iterations."""
        return len(self._trace)

    @property
    def trace(self) -> tuple:
        """Objective values recorded so far (a snapshot)."""
        return tuple(self._trace)

    @property
    def converged(self) -> bool:
        """
        True once the loop stopped on the tolerance rule.

        This includes an objective increase (negative improvement), which
        is logged as a warning when it happens.
        """
        return self.improvement <= self.tol

    def should_continue(self) -> bool:
        """Whether another iteration should run."""
        return self.iteration < self.max_iter and self.improvement > self.tol

    def record(self, value: float) -> float:
        """
        Append an objective value and update the relative improvement.

        Returns
        -------
        float
            The relative improvement after this iteration.

        Raises
        ------
        NumericalFailureError
            If the objective is not finite.
        """
        if not math.isfinite(value):
            raise NumericalFailureError(
                f"Objective became non-finite at iteration {self.iteration + 1}: {value}"
            )

        self._trace.append(value)

        if self.iteration > 1:
            previous = self._trace[-2]
            # A zero objective is an exact fit; nothing left to improve.
            self.improvement = (previous - value) / value if value != 0 else 0.0

            message = (
                f"Iteration: {self.iteration:4d}, Objective: {value:1.5e}, "
                f"Relative improvement {self.improvement:1.5e}"
            )
            if self.verbose:
                logger.info(message)
            else:
                logger.debug(message)

            if self.improvement < 0:
                logger.warning(
                    f"Objective increased at iteration {self.iteration} "
                    f"({previous:1.5e} -> {value:1.5e}); stopping"
                )

        return self.improvement


# =============================================================================
# SOLVER
# =============================================================================

class VariableProjectionSolver:
    """
    Alternating Procrustes / proximal gradient / soft-threshold solver.

    Parameters
    ----------
    X : np.ndarray
        Preprocessed input, shape (n, p).
    k : int
        Target rank, ``1 <= k <= min(n, p)``.
    config : SolverConfig
        Hyperparameters and stopping rule.

    Examples
    --------
    >>> solver = VariableProjectionSolver(X, k=2, config=SolverConfig(verbose=False))
    >>> state = solver.run()
    >>> solver.monitor.trace[-1]  # final objective
    """

    def __init__(self, X: np.ndarray, k: int, config: SolverConfig):
        self.X = X
        self.k = k
        self.config = config
        self.monitor = ConvergenceMonitor(config.max_iter, config.tol, config.verbose)
        self.state: Optional[SolverState] = None
        self.params: Optional[ScaledParameters] = None

    def initialize(self) -> SolverState:
        """Compute the SVD-based starting point and the scaled constants."""
        self.state, self.params = initialize(self.X, self.k, self.config)
        return self.state

    def step(self) -> float:
        """
        Run one full iteration (A, then B, then S) and record the objective.

        Returns
        -------
        float
            The objective value of the new iterate.
        """
        if self.state is None:
            raise RuntimeError("Solver not initialized. Call initialize() first.")

        X, state, params = self.X, self.state, self.params

        state.A, state.D = update_rotation(X, state.B, state.S)
        state.B = update_loadings(X, state.A, state.B, state.S, params)

        R = residual(X, state.A, state.B)
        state.S = update_outliers(R, params.gamma)

        value = objective(R, state.B, state.S, params)
        self.monitor.record(value)
        return value

    def run(self) -> SolverState:
        """Iterate until the monitor stops the loop."""
        if self.state is None:
            self.initialize()

        while self.monitor.should_continue():
            self.step()

        if not self.monitor.converged:
            logger.warning(
                f"Iteration budget exhausted after {self.monitor.iteration} iterations "
                f"(relative improvement {self.monitor.improvement:.3e} > tol {self.config.tol:.1e})"
            )
        return self.state


# =============================================================================
# RESULT ASSEMBLY
# =============================================================================

def assemble_result(
    X: np.ndarray,
    state: SolverState,
    monitor: ConvergenceMonitor,
    center: Optional[np.ndarray] = None,
    scale: Optional[np.ndarray] = None,
    dropped_rows: tuple = (),
) -> RobustSPCAResult:
    """
    Package the final solver state.

    Eigenvalues are the singular values of the last Procrustes update
    divided by ``n - 1``; standard deviations are their square roots.
    """
    n = X.shape[0]

    eigenvalues = np.asarray(state.D, dtype=np.float64) / (n - 1)

    return RobustSPCAResult(
        loadings=state.B.copy(),
        transform=state.A.copy(),
        scores=X @ state.B,
        sparse=state.S.copy(),
        eigenvalues=eigenvalues,
        sdev=np.sqrt(eigenvalues),
        center=None if center is None else center.copy(),
        scale=None if scale is None else scale.copy(),
        objective=monitor.trace,
        variance=total_variance(X),
        n_iter=monitor.iteration,
        converged=monitor.converged,
        dropped_rows=tuple(dropped_rows),
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def robspca(
    X,
    k: Optional[int] = None,
    alpha: float = 1e-4,
    beta: float = 1e-4,
    gamma: float = 100.0,
    center: bool = True,
    scale: bool = False,
    max_iter: int = 1000,
    tol: float = 1e-5,
    verbose: bool = True,
    config: Optional[SolverConfig] = None,
) -> RobustSPCAResult:
    """
    Robust sparse principal component analysis.

    Separates the input into a low-rank part ``X B A^T`` with sparse loadings
    B and a sparse part S that captures grossly corrupted entries.

    Parameters
    ----------
    X : array_like (n, p)
        Real or complex input matrix. Rows containing NaN are dropped.
    k : int, optional
        Target rank. Defaults to ``min(n, p)``; larger values are clamped.
    alpha : float, default=1e-4
        Sparsity controlling parameter for the loadings.
    beta : float, default=1e-4
        Ridge shrinkage on the loadings.
    gamma : float, default=100.0
        Sparsity controlling parameter for the outlier matrix.
    center : bool, default=True
        Center the variables to zero mean.
    scale : bool, default=False
        Scale the variables to unit variance.
    max_iter : int, default=1000
        Maximum number of iterations.
    tol : float, default=1e-5
        Stopping tolerance on the relative objective improvement.
    verbose : bool, default=True
        Log per-iteration progress at INFO level.
    config : SolverConfig, optional
        Ready-made configuration. When given, the keyword hyperparameters
        above are ignored.

    Returns
    -------
    result : RobustSPCAResult
        Loadings, rotation, scores, outliers, eigenvalues and the objective trace.

    Raises
    ------
    InvalidParameterError
        If k < 1, a hyperparameter is out of range, or X is not a usable
        2D numeric matrix with at least 2 complete rows.
    NumericalFailureError
        If an SVD fails to converge.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> X = rng.standard_normal((200, 10)) @ rng.standard_normal((10, 30))
    >>> result = robspca(X, k=3, alpha=1e-3, gamma=1.0, verbose=False)
    >>> result.loadings.shape
    (30, 3)
    """
    if config is None:
        config = SolverConfig(
            alpha=alpha,
            beta=beta,
            gamma=gamma,
            center=center,
            scale=scale,
            max_iter=max_iter,
            tol=tol,
            verbose=verbose,
        )

    if k is not None and k < 1:
        raise InvalidParameterError(f"Target rank is not valid: k={k}")

    cleaned = drop_missing_rows(as_matrix(X))
    data = cleaned.data

    n, p = data.shape
    if n < 2:
        raise InvalidParameterError(f"X must have at least 2 complete rows, got n={n}")

    k = resolve_rank(k, n, p)

    logger.info(f"Starting Robust SPCA: {n} observations, {p} variables, k={k}")

    X_pre, center_vec, scale_vec = center_scale(data, center=config.center, scale=config.scale)

    solver = VariableProjectionSolver(X_pre, k, config)
    state = solver.run()

    result = assemble_result(
        X_pre,
        state,
        solver.monitor,
        center=center_vec,
        scale=scale_vec,
        dropped_rows=cleaned.dropped_rows,
    )

    explained = float(np.sum(result.eigenvalues)) / result.variance if result.variance > 0 else 0.0
    logger.success(
        f"Robust SPCA Complete. Iterations: {result.n_iter}, "
        f"Objective: {result.objective[-1]:.5e}, Explained Variance: {explained:.2%}"
    )
    return result


# =============================================================================
# UTILITIES
# =============================================================================

def project(result: RobustSPCAResult, X_new) -> np.ndarray:
    """
    Scores of new observations: the stored center/scale are applied and the
    result is multiplied by the sparse loadings.

    Parameters
    ----------
    result : RobustSPCAResult
        A fitted decomposition.
    X_new : array_like (m, p)
        New observations in the original units.

    Returns
    -------
    np.ndarray (m, k)
    """
    X_new = as_matrix(X_new)
    if X_new.shape[1] != result.n_features:
        raise InvalidParameterError(
            f"X_new must have {result.n_features} columns, got {X_new.shape[1]}"
        )
    return apply_center_scale(X_new, result.center, result.scale) @ result.loadings


def reconstruct(result: RobustSPCAResult, scores: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Rotate scores back to the data space, ``Z A^T``, in the original units.

    Parameters
    ----------
    result : RobustSPCAResult
        A fitted decomposition.
    scores : np.ndarray (m, k), optional
        Scores to map back. Defaults to ``result.scores``.

    Returns
    -------
    np.ndarray (m, p)
        Low-rank approximation with scaling and centering undone.
    """
    Z = result.scores if scores is None else np.asarray(scores)
    if Z.ndim != 2 or Z.shape[1] != result.k:
        raise InvalidParameterError(f"scores must have shape (m, {result.k}), got {Z.shape}")
    return undo_center_scale(Z @ adjoint(result.transform), result.center, result.scale)
