"""
io.py - Matrix Loading and Result Serialization

This module reads input matrices from CSV and saves/loads RobustSPCAResult
objects to/from disk. Supported result formats:
- NPZ: NumPy's archive format (default, supports complex results)
- JSON: Human-readable format (real-valued results only)

Example Usage:
-------------
    >>> from spca_lab.io import load_matrix, save_result, load_result
    >>>
    >>> X = load_matrix("measurements.csv")
    >>> save_result(result, "fit.npz")
    >>> loaded = load_result("fit.npz")
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .types import RobustSPCAResult

_ARRAY_FIELDS = ("loadings", "transform", "scores", "sparse", "eigenvalues", "sdev")


class ResultFormat(str, Enum):
    """Supported result file formats."""
    NPZ = "npz"
    JSON = "json"


def load_matrix(path: Union[str, Path], delimiter: str = ",", header: bool = True) -> np.ndarray:
    """
    Read a numeric matrix from a delimited text file.

    Empty or non-numeric cells become NaN, so rows with missing values are
    handled downstream by the decomposition.

    Parameters
    ----------
    path : str or Path
        Source file (rows = observations, columns = variables).
    delimiter : str, default=","
        Field separator.
    header : bool, default=True
        Skip the first line.

    Returns
    -------
    np.ndarray (n, p)

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    X = np.genfromtxt(path, delimiter=delimiter, skip_header=1 if header else 0, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    return X


def save_result(
    result: RobustSPCAResult,
    path: Union[str, Path],
    format: ResultFormat = ResultFormat.NPZ,
) -> None:
    """
    Save a decomposition result to disk.

    Parameters
    ----------
    result : RobustSPCAResult
        The result to save.
    path : str or Path
        Destination file path.
    format : ResultFormat, default=ResultFormat.NPZ
        Output format. JSON cannot hold complex values.
    """
    path = Path(path)

    if format == ResultFormat.NPZ:
        _save_npz(result, path)
    elif format == ResultFormat.JSON:
        _save_json(result, path)
    else:
        raise ValueError(f"Unsupported format: {format}")


def load_result(path: Union[str, Path]) -> RobustSPCAResult:
    """
    Load a decomposition result from disk. Format is inferred from extension.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file format is not recognized.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Result file not found: {path}")

    if path.suffix == ".npz":
        return _load_npz(path)
    elif path.suffix == ".json":
        return _load_json(path)
    else:
        raise ValueError(f"Unknown result format: {path.suffix}")


def _save_npz(result: RobustSPCAResult, path: Path) -> None:
    """Save result to NPZ format; absent center/scale are stored as empty arrays."""
    data = {name: getattr(result, name) for name in _ARRAY_FIELDS}
    data["center"] = result.center if result.center is not None else np.empty(0)
    data["scale"] = result.scale if result.scale is not None else np.empty(0)
    data["objective"] = np.asarray(result.objective, dtype=np.float64)
    data["variance"] = np.float64(result.variance)
    data["n_iter"] = np.int64(result.n_iter)
    data["converged"] = np.bool_(result.converged)
    data["dropped_rows"] = np.asarray(result.dropped_rows, dtype=np.int64)

    np.savez(path, **data)


def _optional_vector(arr: np.ndarray) -> Optional[np.ndarray]:
    return arr if arr.size > 0 else None


def _load_npz(path: Path) -> RobustSPCAResult:
    """Load result from NPZ format."""
    with np.load(path) as data:
        return RobustSPCAResult(
            **{name: data[name] for name in _ARRAY_FIELDS},
            center=_optional_vector(data["center"]),
            scale=_optional_vector(data["scale"]),
            objective=tuple(float(v) for v in data["objective"]),
            variance=float(data["variance"]),
            n_iter=int(data["n_iter"]),
            converged=bool(data["converged"]),
            dropped_rows=tuple(int(i) for i in data["dropped_rows"]),
        )


def _save_json(result: RobustSPCAResult, path: Path) -> None:
    """
    Save result to JSON format.

    Raises
    ------
    ValueError
        If the result holds complex values.
    """
    if any(np.iscomplexobj(getattr(result, name)) for name in _ARRAY_FIELDS):
        raise ValueError("JSON format does not support complex results; use NPZ")

    data = {name: getattr(result, name).tolist() for name in _ARRAY_FIELDS}
    data.update({
        "center": None if result.center is None else result.center.tolist(),
        "scale": None if result.scale is None else result.scale.tolist(),
        "objective": list(result.objective),
        "variance": result.variance,
        "n_iter": result.n_iter,
        "converged": result.converged,
        "dropped_rows": list(result.dropped_rows),
    })

    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def _load_json(path: Path) -> RobustSPCAResult:
    """Load result from JSON format."""
    with open(path, 'r') as f:
        data = json.load(f)

    def matrix(name):
        return np.array(data[name], dtype=np.float64)

    return RobustSPCAResult(
        loadings=matrix("loadings"),
        transform=matrix("transform"),
        scores=matrix("scores"),
        sparse=matrix("sparse"),
        eigenvalues=np.array(data["eigenvalues"], dtype=np.float64),
        sdev=np.array(data["sdev"], dtype=np.float64),
        center=None if data["center"] is None else np.array(data["center"], dtype=np.float64),
        scale=None if data["scale"] is None else np.array(data["scale"], dtype=np.float64),
        objective=tuple(data["objective"]),
        variance=float(data["variance"]),
        n_iter=int(data["n_iter"]),
        converged=bool(data["converged"]),
        dropped_rows=tuple(data["dropped_rows"]),
    )
