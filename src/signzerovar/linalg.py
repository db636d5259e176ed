from __future__ import annotations

from typing import Callable, Optional

import numpy as np
from scipy import linalg as sla
from scipy import stats

from signzerovar.errors import (
    ConfigurationError,
    InfeasibleZeroRestrictionError,
    NumericalError,
)

COND_THRESHOLD = 1e12   # above this a matrix is treated as singular
SYM_TOL = 1e-8


def as_2d_float(a, label: str = "array") -> np.ndarray:
    x = np.asarray(a, dtype=float)
    if x.ndim != 2:
        raise ConfigurationError(f"{label}: expected 2D array, got shape {x.shape}")
    return x


def matrix_rank(A: np.ndarray, tol: Optional[float] = None) -> int:
    # Robust rank via SVD
    if A.size == 0:
        return 0
    s = np.linalg.svd(A, compute_uv=False)
    if tol is None:
        tol = np.max(A.shape) * np.finfo(float).eps * (s[0] if s.size else 1.0)
    return int(np.sum(s > tol))


def vech(S: np.ndarray) -> np.ndarray:
    """Stack the lower triangle (diagonal included) column by column."""
    n = S.shape[0]
    rows, cols = np.tril_indices(n)
    order = np.lexsort((rows, cols))
    return S[rows[order], cols[order]]


def _check_symmetric(S: np.ndarray, tol: float) -> np.ndarray:
    if S.ndim != 2 or S.shape[0] != S.shape[1]:
        raise NumericalError(f"Expected a square matrix, got shape {S.shape}")
    if not np.isfinite(S).all():
        raise NumericalError("Matrix contains NaN/inf.")
    scale = max(1.0, float(np.max(np.abs(S))))
    if np.max(np.abs(S - S.T)) > tol * scale:
        raise NumericalError("Matrix is not symmetric within tolerance.")
    return 0.5 * (S + S.T)


def cholesky_lower(S: np.ndarray, tol: float = SYM_TOL) -> np.ndarray:
    """
    Lower Cholesky factor L with L @ L.T = S.

    Raises NumericalError if S is not symmetric positive definite within tol;
    the caller is expected to discard the current draw.
    """
    S = _check_symmetric(np.asarray(S, dtype=float), tol)
    try:
        L = sla.cholesky(S, lower=True)
    except np.linalg.LinAlgError as exc:
        raise NumericalError(f"Matrix is not positive definite: {exc}") from exc
    d = np.abs(np.diag(L))
    if d.min() <= tol * d.max():
        raise NumericalError("Matrix is numerically singular (Cholesky pivot below tolerance).")
    return L


def cholesky_upper(S: np.ndarray, tol: float = SYM_TOL) -> np.ndarray:
    """Upper Cholesky factor U with U.T @ U = S."""
    return cholesky_lower(S, tol=tol).T


def safe_inv(A: np.ndarray) -> np.ndarray:
    A = np.asarray(A, dtype=float)
    if not np.isfinite(A).all():
        raise NumericalError("Matrix contains NaN/inf.")
    if np.linalg.cond(A) > COND_THRESHOLD:
        raise NumericalError("Matrix is singular or ill-conditioned.")
    return sla.inv(A)


def safe_solve(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    A = np.asarray(A, dtype=float)
    if not np.isfinite(A).all() or np.linalg.cond(A) > COND_THRESHOLD:
        raise NumericalError("Matrix is singular or ill-conditioned.")
    return sla.solve(A, b)


def log_abs_det(A: np.ndarray) -> float:
    sign, logdet_val = np.linalg.slogdet(A)
    if sign == 0 or not np.isfinite(logdet_val):
        raise NumericalError("Matrix is singular (zero determinant).")
    return float(logdet_val)


def orthogonal_complement(R: np.ndarray, n: int) -> np.ndarray:
    """
    Orthonormal basis of the null space of the (r, n) matrix R.

    Householder QR of R.T: the trailing n - r columns of the full Q complete
    the row space of R to an orthonormal basis of R^n. Householder QR is a
    smooth function of R away from sign flips, which the importance weights rely on.
    """
    R = np.asarray(R, dtype=float).reshape(-1, n)
    r = R.shape[0]
    if r == 0:
        return np.eye(n)
    if r >= n:
        raise InfeasibleZeroRestrictionError(
            f"{r} constraints on a vector in R^{n}: null space is empty."
        )
    if not np.isfinite(R).all():
        raise NumericalError("Constraint matrix contains NaN/inf.")
    if matrix_rank(R) < r:
        raise NumericalError("Constraint matrix is rank deficient.")
    Qfull, _ = sla.qr(R.T)
    return Qfull[:, r:]


def null_space_basis(A: np.ndarray, n: int) -> np.ndarray:
    """SVD-based null space; an empty A gives the identity."""
    A = np.asarray(A, dtype=float).reshape(-1, n)
    if A.shape[0] == 0:
        return np.eye(n)
    return sla.null_space(A)


def numerical_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    step: float = 1e-6,
) -> np.ndarray:
    """Central-difference Jacobian, shape (len(func(x)), len(x))."""
    x = np.asarray(x, dtype=float)
    f0 = np.asarray(func(x), dtype=float)
    J = np.empty((f0.size, x.size))
    for i in range(x.size):
        h = step * max(1.0, abs(x[i]))
        xp = x.copy()
        xm = x.copy()
        xp[i] += h
        xm[i] -= h
        J[:, i] = (np.asarray(func(xp)) - np.asarray(func(xm))) / (2.0 * h)
    return J


# --------- random draws (explicit Generator, no global state) ----------
def draw_matrix_normal(
    rng: np.random.Generator,
    mean: np.ndarray,
    row_factor: np.ndarray,
    col_factor: np.ndarray,
) -> np.ndarray:
    """
    Draw from MN(mean, U, V) given factors with row_factor @ row_factor.T = U
    and col_factor @ col_factor.T = V.
    """
    E = rng.standard_normal(mean.shape)
    return mean + row_factor @ E @ col_factor.T


def _check_wishart_args(df: float, scale: np.ndarray) -> np.ndarray:
    scale = np.atleast_2d(np.asarray(scale, dtype=float))
    n = scale.shape[0]
    if df <= n - 1:
        raise ConfigurationError(f"Wishart degrees of freedom must exceed {n - 1}, got {df}")
    return scale


def draw_wishart(rng: np.random.Generator, df: float, scale: np.ndarray) -> np.ndarray:
    scale = _check_wishart_args(df, scale)
    n = scale.shape[0]
    cholesky_lower(scale)
    W = stats.wishart.rvs(df=df, scale=scale, random_state=rng)
    return np.asarray(W, dtype=float).reshape(n, n)


def draw_inverse_wishart(rng: np.random.Generator, df: float, scale: np.ndarray) -> np.ndarray:
    scale = _check_wishart_args(df, scale)
    n = scale.shape[0]
    cholesky_lower(scale)
    S = stats.invwishart.rvs(df=df, scale=scale, random_state=rng)
    S = np.asarray(S, dtype=float).reshape(n, n)
    return 0.5 * (S + S.T)


def random_orthogonal(n: int, rng: np.random.Generator) -> np.ndarray:
    """Haar-distributed orthogonal matrix."""
    A = rng.standard_normal((n, n))
    Q, R = sla.qr(A)
    # Fix sign ambiguity so the draw is Haar
    d = np.sign(np.diag(R))
    d[d == 0] = 1.0
    return Q * d
