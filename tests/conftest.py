"""
conftest.py - Pytest Configuration and Shared Fixtures

This file contains fixtures used across all test modules. Fixtures are
organized by category:
- Random number generators (for reproducibility)
- Data matrices (clean low-rank, low-rank with gross outliers, tiny reference)
- Fitted results
"""

import pytest
import numpy as np
from loguru import logger

from spca_lab import robspca


# =============================================================================
# RANDOM NUMBER GENERATORS
# =============================================================================

@pytest.fixture
def rng():
    """
    Provide a seeded random number generator for reproducible tests.
    """
    return np.random.default_rng(seed=42)


# =============================================================================
# DATA MATRICES
# =============================================================================

@pytest.fixture
def reference_matrix():
    """
    A non-diagonal 4x3 matrix with a closed-form SVD.

    X^T X = [[10, 8, 0], [8, 10, 0], [0, 0, 1]], so the leading right
    singular vector is (1, 1, 0) / sqrt(2) with singular value sqrt(18).
    This keeps a few solver iterations computable by hand.
    """
    return np.array([
        [3.0, 3.0, 0.0],
        [1.0, -1.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, 0.0, 0.0],
    ])


@pytest.fixture
def low_rank_data(rng):
    """
    Rank-3 signal plus small noise.

    Shape: (100, 20).
    """
    n, p, k = 100, 20, 3
    scores = rng.standard_normal((n, k)) * np.array([5.0, 3.0, 1.5])
    loadings = np.linalg.qr(rng.standard_normal((p, k)))[0].T
    noise = rng.standard_normal((n, p)) * 0.05
    return scores @ loadings + noise


@pytest.fixture
def block_sparse_data(rng):
    """
    Two components loading on disjoint blocks of variables.

    Component 1 drives variables 0-9, component 2 variables 10-19,
    variables 20-29 are weak noise. Shape: (150, 30).
    """
    n, p = 150, 30
    W = np.zeros((2, p))
    W[0, :10] = 1.0
    W[1, 10:20] = 1.0
    scores = rng.standard_normal((n, 2)) * np.array([4.0, 2.0])
    return scores @ W + rng.standard_normal((n, p)) * 0.1


@pytest.fixture
def corrupted_data(rng):
    """
    Exact rank-2 matrix with 5 grossly corrupted entries (+20).

    Returns
    -------
    X : np.ndarray (200, 30)
    spikes : tuple of index arrays (rows, cols)
    """
    n, p = 200, 30
    L = rng.standard_normal((n, 2)) @ (3.0 * rng.standard_normal((2, p)))
    rows = np.array([5, 40, 77, 120, 181])
    cols = np.array([3, 11, 19, 24, 28])
    X = L.copy()
    X[rows, cols] += 20.0
    return X, (rows, cols)


# =============================================================================
# FITTED RESULTS
# =============================================================================

@pytest.fixture
def fitted_result(low_rank_data):
    """A centered robust SPCA fit with k=3."""
    return robspca(low_rank_data, k=3, alpha=1e-3, beta=1e-3, gamma=1.0, verbose=False)


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def log_messages():
    """Capture loguru messages (INFO and above) for the duration of a test."""
    messages = []
    handler_id = logger.add(messages.append, level="INFO", format="{level}|{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def tolerance():
    """Standard numerical tolerance for float comparisons."""
    return {"rtol": 1e-7, "atol": 1e-10}
