"""
types.py - Core Data Structures and Type Definitions for SPCA Lab

This module defines the fundamental data structures used throughout spca_lab:
- SolverConfig: Hyperparameters and stopping rule of the solver
- ScaledParameters: Solver constants after rescaling by the dominant singular value
- SolverState: The mutable (A, B, S) blocks owned by the iteration loop
- CleanedInput: Input matrix after missing-value handling (success-with-notice)
- RobustSPCAResult: The immutable output of a robust sparse PCA run
- Exceptions: InvalidParameterError, NumericalFailureError

Design Principles:
-----------------
1. Immutability where practical (frozen dataclasses for value objects)
2. Validation at construction time (fail-fast)
3. Clear type discrimination (no ambiguous Optional fields)
4. Numpy-style docstrings throughout

Example Usage:
-------------
    >>> import numpy as np
    >>> from spca_lab import robspca
    >>>
    >>> X = np.random.default_rng(0).standard_normal((100, 20))
    >>> result = robspca(X, k=3, verbose=False)
    >>> print(f"Result: {result.k} components, {result.n_features} variables")
    Result: 3 components, 20 variables
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


# =============================================================================
# EXCEPTIONS
# =============================================================================

class SPCAError(Exception):
    """Base class for all errors raised by spca_lab."""


class InvalidParameterError(SPCAError, ValueError):
    """
    Raised when an input or hyperparameter is invalid.

    Always raised before any computation starts (e.g. a target rank < 1,
    a negative sparsity weight, or a matrix that is not two-dimensional).
    """


class NumericalFailureError(SPCAError, RuntimeError):
    """
    Raised when a linear-algebra primitive fails to converge.

    The failure is propagated from the SVD backend and is never retried.
    """


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ScaledParameters:
    """
    Solver constants derived from the dominant singular value of X.

    Parameters
    ----------
    alpha : float
        Effective L1 weight on the loadings, ``alpha * dmax**2``.
    beta : float
        Effective ridge weight on the loadings, ``beta * dmax**2``.
    gamma : float
        Soft-threshold level for the outlier matrix (not rescaled).
    nu : float
        Gradient step size, ``1 / (dmax**2 + beta')``.
    kappa : float
        Soft-threshold level for the loadings, ``nu * alpha'``.
    dmax : float
        Largest singular value of the preprocessed input.
    """
    alpha: float
    beta: float
    gamma: float
    nu: float
    kappa: float
    dmax: float


@dataclass(frozen=True)
class SolverConfig:
    """
    Hyperparameters and stopping rule for robust sparse PCA.

    The solver never tunes these itself; they are accepted as given.

    Parameters
    ----------
    alpha : float, default=1e-4
        Sparsity controlling parameter. Higher values lead to sparser loadings.
    beta : float, default=1e-4
        Amount of ridge shrinkage applied to the loadings.
    gamma : float, default=100.0
        Sparsity controlling parameter for the outlier matrix S. Smaller
        values move more of the residual into S.
    center : bool, default=True
        Shift the variables to zero mean before fitting.
    scale : bool, default=False
        Scale the variables to unit variance before fitting.
    max_iter : int, default=1000
        Maximum number of iterations.
    tol : float, default=1e-5
        Stopping tolerance on the relative improvement of the objective.
    verbose : bool, default=True
        Log a progress line per iteration at INFO level.

    Raises
    ------
    InvalidParameterError
        If any field is out of range (checked in ``__post_init__``).

    Examples
    --------
    >>> config = SolverConfig(alpha=1e-3, gamma=0.5, max_iter=200)
    >>> round(config.scaled(dmax=10.0).kappa, 6)
    0.001
    """
    alpha: float = 1e-4
    beta: float = 1e-4
    gamma: float = 100.0
    center: bool = True
    scale: bool = False
    max_iter: int = 1000
    tol: float = 1e-5
    verbose: bool = True

    def __post_init__(self):
        """Validate ranges on construction."""
        self.validate()

    def validate(self) -> None:
        """
        Check that all hyperparameters are in range.

        Raises
        ------
        InvalidParameterError
            If alpha, beta or gamma is negative or not finite, if max_iter
            is smaller than 1, or if tol is not strictly positive.
        """
        for name in ("alpha", "beta", "gamma"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidParameterError(
                    f"{name} must be a non-negative finite number, got {value}"
                )

        if int(self.max_iter) != self.max_iter or self.max_iter < 1:
            raise InvalidParameterError(
                f"max_iter must be a positive integer, got {self.max_iter}"
            )

        if not math.isfinite(self.tol) or self.tol <= 0:
            raise InvalidParameterError(f"tol must be positive, got {self.tol}")

    def scaled(self, dmax: float) -> ScaledParameters:
        """
        Rescale the loadings penalties by the squared dominant singular value.

        Parameters
        ----------
        dmax : float
            Largest singular value of the preprocessed input.

        Returns
        -------
        ScaledParameters
        """
        d2 = dmax ** 2
        alpha = self.alpha * d2
        beta = self.beta * d2
        nu = 1.0 / (d2 + beta)
        return ScaledParameters(
            alpha=alpha,
            beta=beta,
            gamma=self.gamma,
            nu=nu,
            kappa=nu * alpha,
            dmax=dmax,
        )


# =============================================================================
# SOLVER STATE
# =============================================================================

@dataclass
class SolverState:
    """
    The blocks updated by the variable projection loop.

    Parameters
    ----------
    A : np.ndarray
        Rotation with orthonormal columns, shape (p, k).
    B : np.ndarray
        Sparse loadings, shape (p, k).
    S : np.ndarray
        Sparse outlier matrix, shape (n, p).
    D : Optional[np.ndarray]
        Singular values of the most recent Procrustes update, shape (k,).
        None until the first rotation update.
    """
    A: np.ndarray
    B: np.ndarray
    S: np.ndarray
    D: Optional[np.ndarray] = None

    @property
    def k(self) -> int:
        """Target rank."""
        return self.B.shape[1]


# =============================================================================
# INPUT HANDLING
# =============================================================================

@dataclass(frozen=True)
class CleanedInput:
    """
    Input matrix after rows with missing values were removed.

    Distinguishes a clean pass from a success-with-notice without relying
    on warnings as a side channel.

    Parameters
    ----------
    data : np.ndarray
        The retained rows, shape (n, p).
    dropped_rows : Tuple[int, ...]
        Row indices (in the original input) that contained missing values.
    """
    data: np.ndarray
    dropped_rows: Tuple[int, ...] = ()

    @property
    def had_missing(self) -> bool:
        """True if any row was dropped."""
        return len(self.dropped_rows) > 0


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class RobustSPCAResult:
    """
    Output of a robust sparse PCA decomposition.

    The preprocessed input is modelled as

        X ≈ X @ B @ A.T + S

    where B holds the sparse loadings, A is orthonormal and S captures
    grossly corrupted entries. The principal component scores are
    ``Z = X @ B``.

    Parameters
    ----------
    loadings : np.ndarray
        Sparse loadings (weight) matrix B, shape (p, k).
    transform : np.ndarray
        Orthonormal rotation A (approximate inverse transform), shape (p, k).
    scores : np.ndarray
        Principal component scores X @ B, shape (n, k).
    sparse : np.ndarray
        Outlier matrix S, shape (n, p).
    eigenvalues : np.ndarray
        Approximated eigenvalues, shape (k,).
    sdev : np.ndarray
        Standard deviations ``sqrt(eigenvalues)``, shape (k,).
    center : Optional[np.ndarray]
        Column means used for centering, or None if centering was not applied.
    scale : Optional[np.ndarray]
        Column scales used for scaling, or None if scaling was not applied.
    objective : Tuple[float, ...]
        Objective value after each iteration.
    variance : float
        Total variance of the preprocessed input.
    n_iter : int
        Number of iterations executed.
    converged : bool
        True if the loop stopped on the tolerance rule rather than the budget.
    dropped_rows : Tuple[int, ...]
        Indices of input rows removed because of missing values.

    Notes
    -----
    Array fields are flagged read-only on construction.
    """
    loadings: np.ndarray
    transform: np.ndarray
    scores: np.ndarray
    sparse: np.ndarray
    eigenvalues: np.ndarray
    sdev: np.ndarray
    center: Optional[np.ndarray]
    scale: Optional[np.ndarray]
    objective: Tuple[float, ...]
    variance: float
    n_iter: int = 0
    converged: bool = False
    dropped_rows: Tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Validate shapes and freeze array fields."""
        self.validate()
        for name in ("loadings", "transform", "scores", "sparse",
                     "eigenvalues", "sdev", "center", "scale"):
            value = getattr(self, name)
            if isinstance(value, np.ndarray):
                value.setflags(write=False)

    @property
    def k(self) -> int:
        """Number of components."""
        return self.loadings.shape[1]

    @property
    def n_features(self) -> int:
        """Number of variables (p)."""
        return self.loadings.shape[0]

    @property
    def n_samples(self) -> int:
        """Number of retained observations (n)."""
        return self.scores.shape[0]

    def validate(self) -> None:
        """
        Validate internal consistency of the result.

        Raises
        ------
        ValueError
            If any dimension mismatch is detected.
        """
        if self.loadings.ndim != 2:
            raise ValueError(f"loadings must be 2D, got shape {self.loadings.shape}")

        p, k = self.loadings.shape

        if self.transform.shape != (p, k):
            raise ValueError(
                f"transform shape mismatch: expected ({p}, {k}), got {self.transform.shape}"
            )

        n = self.scores.shape[0]
        if self.scores.shape != (n, k):
            raise ValueError(
                f"scores shape mismatch: expected (n, {k}), got {self.scores.shape}"
            )

        if self.sparse.shape != (n, p):
            raise ValueError(
                f"sparse shape mismatch: expected ({n}, {p}), got {self.sparse.shape}"
            )

        for name in ("eigenvalues", "sdev"):
            if getattr(self, name).shape != (k,):
                raise ValueError(
                    f"{name} must have shape ({k},), got {getattr(self, name).shape}"
                )

        for name in ("center", "scale"):
            vec = getattr(self, name)
            if vec is not None and vec.shape != (p,):
                raise ValueError(f"{name} must have shape ({p},), got {vec.shape}")
