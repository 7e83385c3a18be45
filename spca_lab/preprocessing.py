"""
preprocessing.py - Input Validation, Missing Values, Centering and Scaling
==========================================================================

Everything that happens to the data matrix before the solver sees it.
The outputs (a center vector and a scale vector, or None when the step is
not applied) are carried into the result for back-transformation.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from loguru import logger

from .types import CleanedInput, InvalidParameterError

# Scales below this magnitude are treated as constant columns and left alone.
_MIN_SCALE = 1e-8


def as_matrix(X) -> np.ndarray:
    """
    Convert array-like input to a 2D float64 (or complex128) array.

    Parameters
    ----------
    X : array_like
        Input matrix, shape (n, p).

    Returns
    -------
    np.ndarray
        A new array; the caller's data is never modified.

    Raises
    ------
    InvalidParameterError
        If X is not two-dimensional, is empty, or is not numeric.
    """
    arr = np.asarray(X)

    if arr.ndim != 2:
        raise InvalidParameterError(f"X must be a 2D array, got shape {arr.shape}")

    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidParameterError(f"X must have positive dimensions, got {arr.shape}")

    if np.iscomplexobj(arr):
        return arr.astype(np.complex128)

    try:
        return arr.astype(np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"X must be numeric, got dtype {arr.dtype}") from e


def drop_missing_rows(X: np.ndarray) -> CleanedInput:
    """
    Remove every row that contains a missing (NaN) value.

    Parameters
    ----------
    X : np.ndarray
        Input matrix, shape (n, p).

    Returns
    -------
    CleanedInput
        The retained rows and the indices of the dropped ones.

    Raises
    ------
    InvalidParameterError
        If X contains infinite values or every row has a missing value.
    """
    if np.isinf(X).any():
        raise InvalidParameterError("X contains infinite values")

    missing = np.isnan(X).any(axis=1)
    if not missing.any():
        return CleanedInput(data=X)

    dropped = tuple(int(i) for i in np.flatnonzero(missing))
    if len(dropped) == X.shape[0]:
        raise InvalidParameterError("Every row of X contains missing values")

    logger.warning(
        f"Missing values are omitted: dropped {len(dropped)} of {X.shape[0]} rows"
    )
    return CleanedInput(data=X[~missing], dropped_rows=dropped)


def resolve_rank(k: Optional[int], n: int, p: int) -> int:
    """
    Resolve the target rank.

    ``None`` selects ``min(n, p)``; values above ``min(n, p)`` are clamped.

    Raises
    ------
    InvalidParameterError
        If k is smaller than 1.
    """
    max_k = min(n, p)
    if k is None:
        return max_k

    if int(k) != k:
        raise InvalidParameterError(f"Target rank must be an integer, got k={k}")
    k = int(k)

    if k < 1:
        raise InvalidParameterError(f"Target rank is not valid: k={k}")

    if k > max_k:
        logger.debug(f"Clamping target rank k={k} to min(n, p)={max_k}")
        return max_k

    return k


def center_scale(
    X: np.ndarray,
    center: bool = True,
    scale: bool = False,
) -> Tuple[np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Center and/or scale the columns of X.

    Parameters
    ----------
    X : np.ndarray
        Input matrix, shape (n, p).
    center : bool, default=True
        Subtract the column means.
    scale : bool, default=False
        Divide by ``sqrt(sum(X**2, axis=0) / (n - 1))`` of the (centered) data.
        Scales whose real part is below 1e-8 are replaced by 1.

    Returns
    -------
    X_pre : np.ndarray
        Preprocessed copy of X.
    center_vec : Optional[np.ndarray]
        Column means, or None if centering was not applied.
    scale_vec : Optional[np.ndarray]
        Column scales, or None if scaling was not applied.
    """
    n = X.shape[0]
    X_pre = X.copy()

    center_vec = None
    if center:
        center_vec = X_pre.mean(axis=0)
        X_pre = X_pre - center_vec

    scale_vec = None
    if scale:
        denom = max(n - 1, 1)
        scale_vec = np.sqrt(np.sum(X_pre ** 2, axis=0) / denom)
        scale_vec[np.real(scale_vec) < _MIN_SCALE] = 1
        X_pre = X_pre / scale_vec

    return X_pre, center_vec, scale_vec


def apply_center_scale(
    X: np.ndarray,
    center_vec: Optional[np.ndarray],
    scale_vec: Optional[np.ndarray],
) -> np.ndarray:
    """Apply a previously fitted center/scale pair to new data."""
    out = X
    if center_vec is not None:
        out = out - center_vec
    if scale_vec is not None:
        out = out / scale_vec
    return out


def undo_center_scale(
    X: np.ndarray,
    center_vec: Optional[np.ndarray],
    scale_vec: Optional[np.ndarray],
) -> np.ndarray:
    """Map preprocessed data back to the original units."""
    out = X
    if scale_vec is not None:
        out = out * scale_vec
    if center_vec is not None:
        out = out + center_vec
    return out
