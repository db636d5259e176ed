import numpy as np
import pytest

from signzerovar.errors import ConfigurationError, InfeasibleZeroRestrictionError, NumericalError
from signzerovar.linalg import (
    cholesky_lower,
    cholesky_upper,
    draw_inverse_wishart,
    draw_wishart,
    log_abs_det,
    numerical_jacobian,
    orthogonal_complement,
    random_orthogonal,
    safe_inv,
    vech,
)


def test_cholesky_factors():
    S = np.array([[4.0, 2.0], [2.0, 3.0]])
    L = cholesky_lower(S)
    U = cholesky_upper(S)
    assert np.allclose(L @ L.T, S)
    assert np.allclose(U.T @ U, S)
    assert np.allclose(np.triu(U), U)


@pytest.mark.parametrize("S", [
    np.array([[1.0, 2.0], [2.0, 1.0]]),   # indefinite
    np.array([[1.0, 0.5], [0.0, 1.0]]),   # not symmetric
    np.array([[1.0, np.nan], [np.nan, 1.0]]),
])
def test_cholesky_rejects_bad_matrices(S):
    with pytest.raises(NumericalError):
        cholesky_lower(S)


def test_orthogonal_complement_spans_null_space():
    rng = np.random.default_rng(0)
    R = rng.standard_normal((2, 5))
    N = orthogonal_complement(R, 5)
    assert N.shape == (5, 3)
    assert np.allclose(R @ N, 0.0, atol=1e-12)
    assert np.allclose(N.T @ N, np.eye(3), atol=1e-12)


def test_orthogonal_complement_edge_cases():
    assert np.array_equal(orthogonal_complement(np.zeros((0, 3)), 3), np.eye(3))
    with pytest.raises(InfeasibleZeroRestrictionError):
        orthogonal_complement(np.eye(3), 3)
    with pytest.raises(NumericalError):
        orthogonal_complement(np.array([[1.0, 0.0, 0.0], [2.0, 0.0, 0.0]]), 3)


def test_random_orthogonal():
    Q = random_orthogonal(4, np.random.default_rng(1))
    assert np.linalg.norm(Q.T @ Q - np.eye(4)) < 1e-10


def test_inverse_wishart_mean():
    rng = np.random.default_rng(2)
    scale = np.array([[2.0, 0.3], [0.3, 1.0]])
    df = 20
    draws = np.stack([draw_inverse_wishart(rng, df, scale) for _ in range(4000)])
    assert np.allclose(draws.mean(axis=0), scale / (df - 2 - 1), rtol=0.05, atol=0.005)


def test_wishart_mean():
    rng = np.random.default_rng(3)
    scale = np.array([[1.0, 0.2], [0.2, 0.5]])
    draws = np.stack([draw_wishart(rng, 10, scale) for _ in range(4000)])
    assert np.allclose(draws.mean(axis=0), 10 * scale, rtol=0.05, atol=0.05)


def test_wishart_rejects_small_df():
    with pytest.raises(ConfigurationError):
        draw_inverse_wishart(np.random.default_rng(0), 1.0, np.eye(3))


def test_vech_column_order():
    S = np.array([[1.0, 2.0, 4.0], [2.0, 3.0, 5.0], [4.0, 5.0, 6.0]])
    assert np.array_equal(vech(S), [1.0, 2.0, 4.0, 3.0, 5.0, 6.0])


def test_numerical_jacobian_of_linear_map():
    M = np.array([[1.0, 2.0, 0.0], [0.0, -1.0, 3.0]])
    J = numerical_jacobian(lambda x: M @ x, np.array([0.5, -2.0, 10.0]))
    assert np.allclose(J, M, atol=1e-8)


def test_singular_matrices():
    A = np.array([[1.0, 2.0], [2.0, 4.0]])
    with pytest.raises(NumericalError):
        safe_inv(A)
    with pytest.raises(NumericalError):
        log_abs_det(A)
