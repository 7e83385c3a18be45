"""
test_computation.py - Tests for the Solver Building Blocks

Tests cover:
- Soft-threshold operator (real and complex)
- Total variance helper
- SVD dispatch and sign normalization
- SVD-based initialization and parameter scaling
- Procrustes, proximal gradient and outlier updates
- Objective evaluation
"""

import pytest
import numpy as np
import scipy.linalg

from spca_lab import SolverConfig, ScaledParameters, NumericalFailureError
from spca_lab.computation import (
    soft_threshold,
    total_variance,
    adjoint,
    initialize,
    update_rotation,
    update_loadings,
    update_outliers,
    residual,
    objective,
    _compute_svd,
    _svd_flip,
)


class TestSoftThreshold:
    """Tests for the elementwise L1 proximal operator."""

    def test_known_values(self):
        """Entries above t shrink by t, entries within [-t, t] vanish."""
        M = np.array([[3.0, -3.0, 0.5], [-0.5, 1.0, -1.0]])
        out = soft_threshold(M, 1.0)

        expected = np.array([[2.0, -2.0, 0.0], [0.0, 0.0, 0.0]])
        assert np.array_equal(out, expected)

    def test_exact_zero_and_shift(self, rng):
        """|m| <= t gives exactly 0; otherwise exactly m - sign(m) * t."""
        M = rng.standard_normal((40, 7))
        t = 0.6
        out = soft_threshold(M, t)

        small = np.abs(M) <= t
        assert np.all(out[small] == 0.0)
        np.testing.assert_array_equal(out[~small], (M - np.sign(M) * t)[~small])

    def test_zero_threshold_is_identity(self, rng):
        """t = 0 leaves every entry unchanged."""
        M = rng.standard_normal((5, 5))
        np.testing.assert_array_equal(soft_threshold(M, 0.0), M)

    def test_input_not_modified(self, rng):
        """The operator is pure."""
        M = rng.standard_normal((6, 3))
        original = M.copy()
        soft_threshold(M, 0.3)
        np.testing.assert_array_equal(M, original)

    def test_shape_preserved(self):
        """Output has the input's shape."""
        assert soft_threshold(np.ones((3, 8)), 0.5).shape == (3, 8)

    def test_complex_modulus_shrinkage(self):
        """Complex entries keep their phase and lose t in modulus."""
        M = np.array([[3.0 + 4.0j, 0.3j, 0.0 + 0.0j]])
        out = soft_threshold(M, 1.0)

        np.testing.assert_allclose(out, [[2.4 + 3.2j, 0.0, 0.0]])


class TestTotalVariance:
    """Tests for the total variance helper."""

    def test_real(self, rng):
        X = rng.standard_normal((30, 4))
        assert np.isclose(total_variance(X), np.sum(np.var(X, axis=0, ddof=1)))

    def test_complex_adds_imaginary_part(self, rng):
        re = rng.standard_normal((30, 4))
        im = rng.standard_normal((30, 4))
        expected = np.sum(np.var(re, axis=0, ddof=1)) + np.sum(np.var(im, axis=0, ddof=1))

        assert np.isclose(total_variance(re + 1j * im), expected)

    def test_adjoint_conjugates_complex(self):
        M = np.array([[1 + 2j, 3 - 1j]])
        np.testing.assert_array_equal(adjoint(M), np.array([[1 - 2j], [3 + 1j]]))


class TestSVD:
    """Tests for the SVD dispatcher."""

    def test_leading_values_descending(self, low_rank_data):
        s, vt = _compute_svd(low_rank_data, k=3)

        assert s.shape == (3,)
        assert vt.shape == (3, low_rank_data.shape[1])
        assert np.all(s[:-1] >= s[1:])
        np.testing.assert_allclose(s, scipy.linalg.svdvals(low_rank_data)[:3])

    def test_sign_normalization(self, rng):
        """The largest-magnitude entry of each right singular vector is positive."""
        vt = rng.standard_normal((4, 10))
        flipped = _svd_flip(vt)

        pivots = flipped[np.arange(4), np.argmax(np.abs(flipped), axis=1)]
        assert np.all(pivots > 0)
        np.testing.assert_array_equal(np.abs(flipped), np.abs(vt))

    def test_truncated_path(self, rng):
        """Large matrices with k << min(n, p) use ARPACK and agree with LAPACK."""
        X = rng.standard_normal((600, 520))
        s, vt = _compute_svd(X, k=3)

        np.testing.assert_allclose(s, scipy.linalg.svdvals(X)[:3], rtol=1e-6)
        np.testing.assert_allclose(vt @ vt.T, np.eye(3), atol=1e-8)

    def test_truncated_path_reproducible(self, rng):
        """Repeated ARPACK runs on the same input return identical factors."""
        X = rng.standard_normal((700, 600))

        s1, vt1 = _compute_svd(X, k=3)
        for _ in range(3):
            s2, vt2 = _compute_svd(X, k=3)
            np.testing.assert_array_equal(s1, s2)
            np.testing.assert_array_equal(vt1, vt2)

    def test_failure_raises_numerical_failure(self, monkeypatch, rng):
        """A non-converging SVD surfaces as NumericalFailureError."""
        def broken_svd(*args, **kwargs):
            raise np.linalg.LinAlgError("SVD did not converge")

        monkeypatch.setattr(scipy.linalg, "svd", broken_svd)

        with pytest.raises(NumericalFailureError, match="did not converge"):
            _compute_svd(rng.standard_normal((10, 4)), k=2)


class TestInitialize:
    """Tests for the SVD-based initializer."""

    def test_initial_state(self, low_rank_data):
        config = SolverConfig(verbose=False)
        state, params = initialize(low_rank_data, 3, config)

        n, p = low_rank_data.shape
        assert state.A.shape == (p, 3)
        np.testing.assert_array_equal(state.A, state.B)
        np.testing.assert_allclose(state.A.T @ state.A, np.eye(3), atol=1e-10)
        assert state.S.shape == (n, p)
        assert not np.any(state.S)
        assert state.D is None

    def test_parameter_scaling(self, low_rank_data):
        config = SolverConfig(alpha=0.01, beta=0.02, gamma=3.0, verbose=False)
        _, params = initialize(low_rank_data, 2, config)

        dmax = scipy.linalg.svdvals(low_rank_data)[0]
        assert np.isclose(params.dmax, dmax)
        assert np.isclose(params.alpha, 0.01 * dmax ** 2)
        assert np.isclose(params.beta, 0.02 * dmax ** 2)
        assert np.isclose(params.nu, 1.0 / (dmax ** 2 + 0.02 * dmax ** 2))
        assert np.isclose(params.kappa, params.nu * params.alpha)
        assert params.gamma == 3.0


class TestBlockUpdates:
    """Tests for the three block updates and the objective."""

    def test_rotation_is_orthonormal(self, rng):
        X = rng.standard_normal((25, 8))
        B = rng.standard_normal((8, 3))
        S = soft_threshold(rng.standard_normal((25, 8)), 1.5)

        A, d = update_rotation(X, B, S)

        assert A.shape == (8, 3)
        np.testing.assert_allclose(A.T @ A, np.eye(3), atol=1e-10)
        assert d.shape == (3,)
        assert np.all(d >= 0)
        assert np.all(d[:-1] >= d[1:])

    def test_rotation_solves_procrustes(self, rng):
        """A = U V^T maximizes trace(A^T Z) over orthonormal A."""
        X = rng.standard_normal((25, 6))
        B = rng.standard_normal((6, 2))
        S = np.zeros_like(X)

        A, d = update_rotation(X, B, S)
        Z = X.T @ (X @ B)

        assert np.isclose(np.trace(A.T @ Z), np.sum(d))
        for _ in range(5):
            Q = np.linalg.qr(rng.standard_normal((6, 2)))[0]
            assert np.trace(Q.T @ Z) <= np.sum(d) + 1e-9

    def test_rotation_uses_outliers(self):
        """The Procrustes target is (X - S)^T X B, not X^T X B."""
        X = np.eye(2)
        B = np.array([[1.0], [1.0]])
        S = np.array([[0.0, 0.0], [2.0, 0.0]])

        # (X - S)^T X B = [[1, -2], [0, 1]] @ [1, 1]^T = [-1, 1]^T
        A, d = update_rotation(X, B, S)

        np.testing.assert_allclose(A, [[-1.0 / np.sqrt(2.0)], [1.0 / np.sqrt(2.0)]], atol=1e-12)
        np.testing.assert_allclose(d, [np.sqrt(2.0)])

    def test_loadings_step_by_hand(self):
        """
        One proximal gradient step away from a fixed point, with outliers.

        X = I, A = e1, B = (0.5, 0.5), S = [[0, 0], [1, 0]], nu = 0.5,
        beta' = 0.2, kappa = 0.1:
            R = (X - S) - X B A^T = [[0.5, 0], [-1.5, 1]]
            grad = X^T R A - beta' B = (0.4, -1.6)
            B + nu grad = (0.7, -0.3)  ->  soft-threshold  ->  (0.6, -0.2)
        """
        params = ScaledParameters(alpha=0.2, beta=0.2, gamma=1.0, nu=0.5, kappa=0.1, dmax=1.0)
        X = np.eye(2)
        A = np.array([[1.0], [0.0]])
        B = np.array([[0.5], [0.5]])
        S = np.array([[0.0, 0.0], [1.0, 0.0]])

        B_new = update_loadings(X, A, B, S, params)

        np.testing.assert_allclose(B_new, [[0.6], [-0.2]], atol=1e-12)

    def test_loadings_large_alpha_zeroes_everything(self, low_rank_data):
        """kappa above every gradient-step entry gives all-zero loadings."""
        config = SolverConfig(alpha=10.0, verbose=False)
        state, params = initialize(low_rank_data, 3, config)
        state.A, _ = update_rotation(low_rank_data, state.B, state.S)

        B = update_loadings(low_rank_data, state.A, state.B, state.S, params)

        assert B.shape == state.B.shape
        assert not np.any(B)

    def test_loadings_without_penalty_stay_at_pca(self, low_rank_data):
        """With alpha = beta = 0 the PCA basis is a fixed point of the B-step."""
        X = low_rank_data
        config = SolverConfig(alpha=0.0, beta=0.0, verbose=False)
        state, params = initialize(X, 3, config)
        A, _ = update_rotation(X, state.B, state.S)

        B = update_loadings(X, A, state.B, state.S, params)

        np.testing.assert_allclose(B, state.B, atol=1e-8)

    def test_outliers_large_gamma_is_zero(self, rng):
        R = rng.standard_normal((10, 4))
        assert not np.any(update_outliers(R, gamma=np.abs(R).max()))

    def test_outliers_keep_large_residuals(self):
        R = np.array([[0.5, -7.0], [4.0, 0.0]])
        np.testing.assert_array_equal(update_outliers(R, 2.0), [[0.0, -5.0], [2.0, 0.0]])

    def test_residual(self, rng, tolerance):
        X = rng.standard_normal((7, 4))
        A = np.linalg.qr(rng.standard_normal((4, 2)))[0]
        B = rng.standard_normal((4, 2))
        np.testing.assert_allclose(residual(X, A, B), X - X @ B @ A.T, **tolerance)

    def test_objective_formula(self, low_rank_data, rng):
        config = SolverConfig(alpha=0.1, beta=0.2, gamma=0.5, verbose=False)
        _, params = initialize(low_rank_data, 2, config)

        R = rng.standard_normal((5, 3))
        B = rng.standard_normal((3, 2))
        S = soft_threshold(rng.standard_normal((5, 3)), 0.5)

        expected = (
            0.5 * np.sum(R ** 2)
            + params.alpha * np.sum(np.abs(B))
            + 0.5 * params.beta * np.sum(B ** 2)
            + params.gamma * np.sum(np.abs(S))
        )
        assert np.isclose(objective(R, B, S, params), expected)
