"""
Structural mapper.

Reduced form  y_t' = x_t' B + u_t',  E[u u'] = Sigma
Structural    y_t' A0 = x_t' A_plus + e_t',  E[e e'] = I

linked by A0 = h(Sigma)^-1 Q and A_plus = B h(Sigma)^-1 Q, with h the upper
Cholesky factor (h' h = Sigma). The response of variable i to shock j at
horizon k is irfs[k, i, j]; on impact irfs[0] = (A0^-1)' = h' Q.
"""
from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
from scipy.linalg import solve_triangular

from signzerovar.errors import NumericalError
from signzerovar.linalg import cholesky_upper, safe_inv, safe_solve
from signzerovar.restrictions import LONG_RUN


def _build_companion(A_endo_no_const: np.ndarray, K: int, p: int) -> np.ndarray:
    """
    A_endo_no_const: (K, K*p) lag coefficients in equation-by-row form, ordered [A1|A2|...|Ap]
    companion size: (K*p, K*p)
    """
    if A_endo_no_const.shape != (K, K * p):
        raise ValueError(f"A_endo_no_const must be (K, K*p) = ({K},{K*p}), got {A_endo_no_const.shape}")

    A_comp = np.zeros((K * p, K * p))
    A_comp[:K, :K * p] = A_endo_no_const
    if p > 1:
        A_comp[K:, :-K] = np.eye(K * (p - 1))
    return A_comp


def _irf_companion(A_endo_no_const: np.ndarray, B0inv: np.ndarray, horizon: int) -> np.ndarray:
    """
    Returns irfs: (horizon+1, K, K) where irfs[h,:,j] = response at h to shock j.
    """
    K = B0inv.shape[0]
    p = A_endo_no_const.shape[1] // K
    A_comp = _build_companion(A_endo_no_const, K=K, p=p)

    J = np.zeros((K * p, K))
    J[:K, :K] = np.eye(K)

    irfs = np.zeros((horizon + 1, K, K))
    A_pow = np.eye(K * p)
    for h in range(horizon + 1):
        irfs[h] = (J.T @ A_pow @ J) @ B0inv
        A_pow = A_pow @ A_comp
    return irfs


def _long_run_matrix(A_endo_no_const: np.ndarray, B0inv: np.ndarray) -> np.ndarray:
    """
    Long-run multiplier: C(inf) = (I - A1 - ... - Ap)^(-1) B0inv
    """
    K = B0inv.shape[0]
    p = A_endo_no_const.shape[1] // K
    A_sum = np.zeros((K, K))
    for i in range(p):
        A_sum += A_endo_no_const[:, i * K:(i + 1) * K]
    return safe_solve(np.eye(K) - A_sum, B0inv)


def lag_coefficients(B: np.ndarray, n_vars: int, n_lags: int) -> np.ndarray:
    """[A1|...|Ap] (N, N*p) from the (K, N) reduced-form B; the constant row is dropped."""
    N = n_vars
    return np.hstack([B[(l - 1) * N:l * N, :].T for l in range(1, n_lags + 1)])


def structural_from_reduced(B: np.ndarray, Sigma: np.ndarray, Q: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    h = cholesky_upper(Sigma)
    h_inv = solve_triangular(h, np.eye(h.shape[0]), lower=False)
    A0 = h_inv @ Q
    return A0, B @ A0


def reduced_from_structural(A0: np.ndarray, A_plus: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    A0_inv = safe_inv(A0)
    B = A_plus @ A0_inv
    Sigma = A0_inv.T @ A0_inv
    Sigma = 0.5 * (Sigma + Sigma.T)
    Q = cholesky_upper(Sigma) @ A0
    return B, Sigma, Q


def _structural_parts(A0: np.ndarray, A_plus: np.ndarray, n_lags: int) -> Tuple[np.ndarray, np.ndarray]:
    A0_inv = safe_inv(A0)
    B = A_plus @ A0_inv
    return lag_coefficients(B, A0.shape[0], n_lags), A0_inv.T


def impulse_responses(A0: np.ndarray, A_plus: np.ndarray, n_lags: int, horizon: int) -> np.ndarray:
    """irfs[k, i, j]: response of variable i to a unit structural shock j after k periods."""
    A_endo, impact = _structural_parts(A0, A_plus, n_lags)
    irfs = _irf_companion(A_endo, impact, horizon=int(horizon))
    if not np.isfinite(irfs).all():
        raise NumericalError("Impulse responses are not finite.")
    return irfs


def long_run_response(A0: np.ndarray, A_plus: np.ndarray, n_lags: int) -> np.ndarray:
    A_endo, impact = _structural_parts(A0, A_plus, n_lags)
    return _long_run_matrix(A_endo, impact)


def _responses_dict(A_endo: np.ndarray, impact: np.ndarray, horizons: Iterable[float]) -> Dict[float, np.ndarray]:
    horizons = tuple(horizons)
    finite = [h for h in horizons if h != LONG_RUN]
    out: Dict[float, np.ndarray] = {}
    if finite:
        irfs = _irf_companion(A_endo, impact, horizon=int(max(finite)))
        out.update({h: irfs[int(h)] for h in finite})
    if LONG_RUN in horizons:
        out[LONG_RUN] = _long_run_matrix(A_endo, impact)
    return out


def responses_at(A0: np.ndarray, A_plus: np.ndarray, n_lags: int, horizons: Iterable[float]) -> Dict[float, np.ndarray]:
    """IRF blocks keyed by horizon; LONG_RUN gives the cumulative long-run response."""
    A_endo, impact = _structural_parts(A0, A_plus, n_lags)
    return _responses_dict(A_endo, impact, horizons)


def reduced_form_responses(B: np.ndarray, Sigma: np.ndarray, n_lags: int, horizons: Iterable[float]) -> Dict[float, np.ndarray]:
    """
    IRF blocks at Q = I, i.e. F(h(Sigma)^-1, B h(Sigma)^-1). For any rotation
    the responses are these blocks times Q.
    """
    N = Sigma.shape[0]
    impact = cholesky_upper(Sigma).T
    return _responses_dict(lag_coefficients(B, N, n_lags), impact, horizons)
