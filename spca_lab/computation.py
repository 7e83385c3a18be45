# computation.py: Heavy mathematical lifting for the variable projection solver.
#
# Each update reads the current blocks and returns new arrays; the loop in
# decomposition.py owns the state and decides the order.

from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.linalg
import scipy.sparse.linalg
from loguru import logger

from .types import NumericalFailureError, ScaledParameters, SolverConfig, SolverState


# =============================================================================
# NUMERIC TYPE HELPERS
# =============================================================================

def adjoint(M: np.ndarray) -> np.ndarray:
    """Conjugate transpose (plain transpose for real input)."""
    if np.iscomplexobj(M):
        return M.conj().T
    return M.T


def total_variance(X: np.ndarray) -> float:
    """
    Sum of per-column sample variances (ddof=1) of the real part of X.

    For complex input the variance of the imaginary part is added.
    """
    if X.shape[0] < 2:
        return 0.0
    var = float(np.sum(np.var(np.real(X), axis=0, ddof=1)))
    if np.iscomplexobj(X):
        var += float(np.sum(np.var(np.imag(X), axis=0, ddof=1)))
    return var


# =============================================================================
# PROXIMAL OPERATOR
# =============================================================================

def soft_threshold(M: np.ndarray, t: float) -> np.ndarray:
    """
    Elementwise soft-thresholding, the proximal operator of ``t * ||.||_1``.

    Each entry m maps to ``m - t`` if ``m > t``, ``m + t`` if ``m <= -t``
    and 0 otherwise. Complex entries have their modulus shrunk by t.

    Parameters
    ----------
    M : np.ndarray
        Input array (any shape).
    t : float
        Non-negative threshold.

    Returns
    -------
    np.ndarray
        New array of the same shape; M is left untouched.
    """
    if np.iscomplexobj(M):
        mag = np.abs(M)
        shrink = np.maximum(mag - t, 0.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            factor = np.where(mag > 0, shrink / mag, 0.0)
        return M * factor

    M = np.asarray(M, dtype=np.float64)
    out = np.zeros_like(M)
    hi = M > t
    lo = M <= -t
    out[hi] = M[hi] - t
    out[lo] = M[lo] + t
    return out


# =============================================================================
# SVD
# =============================================================================

def _svd_flip(vt: np.ndarray) -> np.ndarray:
    """
    Make the largest-magnitude entry of each right singular vector positive.

    Removes the sign ambiguity of the SVD so results do not depend on the
    LAPACK build.
    """
    idx = np.argmax(np.abs(vt), axis=1)
    pivots = vt[np.arange(vt.shape[0]), idx]
    signs = np.where(np.real(pivots) < 0, -1.0, 1.0)
    return vt * signs[:, None]


def _compute_svd(X: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Dispatches to the most efficient SVD solver for the leading k factors.
    Uses Truncated SVD (ARPACK) for large k << min(n, p) problems.

    Returns
    -------
    s : np.ndarray
        Leading k singular values, descending.
    vt : np.ndarray
        Leading k right singular vectors as rows, shape (k, p).
    """
    min_dim = min(X.shape)

    try:
        if k < 0.1 * min_dim and min_dim > 500:
            logger.debug(f"Using Truncated SVD (ARPACK) | Shape: {X.shape}, k: {k}")
            # Fixed start vector; ARPACK otherwise draws a random one
            v0 = np.ones(min_dim, dtype=X.dtype)
            # svds returns ascending order, we flip for PCA consistency
            _, s, vt = scipy.sparse.linalg.svds(X, k=k, v0=v0)
            return s[::-1], vt[::-1, :]

        logger.debug(f"Using Dense SVD (LAPACK) | Shape: {X.shape}, k: {k}")
        _, s, vt = scipy.linalg.svd(X, full_matrices=False)
        return s[:k], vt[:k, :]
    except (np.linalg.LinAlgError, scipy.sparse.linalg.ArpackNoConvergence) as e:
        logger.exception("SVD solver failed during initialization.")
        raise NumericalFailureError(f"SVD did not converge: {e}") from e


def initialize(
    X: np.ndarray,
    k: int,
    config: SolverConfig,
) -> Tuple[SolverState, ScaledParameters]:
    """
    SVD-based initialization of the variable projection solver.

    Both A and B start at the leading k right singular vectors of X and
    S starts at zero. The loadings penalties are rescaled by the squared
    largest singular value.

    Parameters
    ----------
    X : np.ndarray
        Preprocessed input, shape (n, p).
    k : int
        Target rank (already resolved).
    config : SolverConfig
        Unscaled hyperparameters.

    Returns
    -------
    state : SolverState
        Initial (A, B, S).
    params : ScaledParameters
        Solver constants (alpha', beta', nu, kappa).

    Raises
    ------
    NumericalFailureError
        If the SVD does not converge.
    """
    s, vt = _compute_svd(X, k)
    V = adjoint(_svd_flip(vt))

    dmax = float(s[0])
    params = config.scaled(dmax)
    logger.debug(
        f"Initialized solver | Dmax: {dmax:.4e}, nu: {params.nu:.4e}, kappa: {params.kappa:.4e}"
    )

    state = SolverState(
        A=V.copy(),
        B=V.copy(),
        S=np.zeros_like(X),
    )
    return state, params


# =============================================================================
# BLOCK UPDATES
# =============================================================================

def update_rotation(
    X: np.ndarray,
    B: np.ndarray,
    S: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Orthogonal Procrustes update of the rotation.

    Solves ``min_A ||(X - S) - (X B) A^T||_F`` subject to ``A^T A = I``
    in closed form: with ``(X - S)^T X B = U D V^T``, ``A = U V^T``.

    Returns
    -------
    A : np.ndarray
        New rotation, shape (p, k), orthonormal columns.
    d : np.ndarray
        Singular values D of the Procrustes target, shape (k,).
    """
    Z = adjoint(X - S) @ (X @ B)
    try:
        U, d, Vt = scipy.linalg.svd(Z, full_matrices=False)
    except np.linalg.LinAlgError as e:
        logger.exception("SVD solver failed during rotation update.")
        raise NumericalFailureError(f"SVD did not converge: {e}") from e
    return U @ Vt, d


def update_loadings(
    X: np.ndarray,
    A: np.ndarray,
    B: np.ndarray,
    S: np.ndarray,
    params: ScaledParameters,
) -> np.ndarray:
    """
    One proximal gradient step on the loadings.

    The smooth part ``0.5 ||X - S - X B A^T||_F^2 + 0.5 beta' ||B||_F^2``
    is followed by soft-thresholding at kappa (elastic net).

    Returns
    -------
    np.ndarray
        New sparse loadings, shape (p, k).
    """
    R = (X - S) - (X @ B) @ adjoint(A)
    grad = adjoint(X) @ (R @ A) - params.beta * B
    return soft_threshold(B + params.nu * grad, params.kappa)


def residual(X: np.ndarray, A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Reconstruction residual ``X - X B A^T``."""
    return X - (X @ B) @ adjoint(A)


def update_outliers(R: np.ndarray, gamma: float) -> np.ndarray:
    """Extract the sparse outlier matrix from the residual R."""
    return soft_threshold(R, gamma)


def objective(
    R: np.ndarray,
    B: np.ndarray,
    S: np.ndarray,
    params: ScaledParameters,
) -> float:
    """
    Regularized objective of the current iterate.

    ``0.5 ||R||_F^2 + alpha' ||B||_1 + 0.5 beta' ||B||_F^2 + gamma ||S||_1``
    """
    abs_b = np.abs(B)
    return float(
        0.5 * np.sum(np.abs(R) ** 2)
        + params.alpha * np.sum(abs_b)
        + 0.5 * params.beta * np.sum(abs_b ** 2)
        + params.gamma * np.sum(np.abs(S))
    )
