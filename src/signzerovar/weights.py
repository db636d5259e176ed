"""
Sign filter and importance weights.

Draws that pass the sign restrictions are weighted by

    w  ∝  |det A0|^-(2N + K + 1) / v_{(g o f_h)|Z}(A0, A_plus)

where f_h maps (A0, A_plus) to (B, Sigma, Q), g maps Q to the coordinates
w_j = N_j' q_j actually drawn by the rotation sampler, and v_{.|Z} is the
volume element of that map restricted to the zero-restriction manifold Z.
The numerator is the Jacobian of f_h, which turns the NIW posterior over
(B, Sigma) times a uniform prior over Q into a density over (A0, A_plus). The
denominator is the density induced by drawing every w_j uniformly on its sphere.
Without zero restrictions the ratio is constant.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from signzerovar.errors import NumericalError
from signzerovar.linalg import log_abs_det, null_space_basis, numerical_jacobian, vech
from signzerovar.priors import ReducedFormDraw
from signzerovar.restrictions import RestrictionSet
from signzerovar.rotation import iter_null_bases
from signzerovar.structural import (
    reduced_form_responses,
    reduced_from_structural,
    responses_at,
    structural_from_reduced,
)


@dataclass(frozen=True)
class Candidate:
    B: np.ndarray
    Sigma: np.ndarray
    Q: np.ndarray
    A0: np.ndarray
    A_plus: np.ndarray
    log_weight: float


def _split(x: np.ndarray, n: int, k: int):
    return x[:n * n].reshape(n, n), x[n * n:].reshape(k, n)


def _g_fh(x: np.ndarray, restrictions: RestrictionSet, n_lags: int, k: int) -> np.ndarray:
    n = restrictions.n_vars
    A0, A_plus = _split(x, n, k)
    B, Sigma, Q = reduced_from_structural(A0, A_plus)
    base = reduced_form_responses(B, Sigma, n_lags, restrictions.zero_horizons)
    ws = [N_j.T @ Q[:, j] for j, N_j in iter_null_bases(base, restrictions, Q)]
    return np.concatenate([B.ravel(), vech(Sigma)] + ws)


def _zero_constraints(x: np.ndarray, restrictions: RestrictionSet, n_lags: int, k: int) -> np.ndarray:
    A0, A_plus = _split(x, restrictions.n_vars, k)
    return restrictions.zero_values(responses_at(A0, A_plus, n_lags, restrictions.zero_horizons))


def log_volume_element(
    A0: np.ndarray,
    A_plus: np.ndarray,
    restrictions: RestrictionSet,
    n_lags: int,
    step: float = 1e-6,
) -> float:
    """log v_{(g o f_h)|Z}(A0, A_plus), via numerical Jacobians."""
    n, k = A0.shape[0], A_plus.shape[0]
    x = np.concatenate([A0.ravel(), A_plus.ravel()])

    if restrictions.has_zeros:
        Jz = numerical_jacobian(lambda z: _zero_constraints(z, restrictions, n_lags, k), x, step)
        tangent = null_space_basis(Jz, x.size)
    else:
        tangent = np.eye(x.size)

    J = numerical_jacobian(lambda z: _g_fh(z, restrictions, n_lags, k), x, step)
    s = np.linalg.svd(J @ tangent, compute_uv=False)
    if s.size == 0 or s.min() <= 0 or not np.isfinite(s).all():
        raise NumericalError("Volume element is degenerate.")
    return float(np.sum(np.log(s)))


def log_importance_weight(
    A0: np.ndarray,
    A_plus: np.ndarray,
    restrictions: RestrictionSet,
    n_lags: int,
    step: float = 1e-6,
) -> float:
    n, k = A0.shape[0], A_plus.shape[0]
    lw = -(2 * n + k + 1) * log_abs_det(A0) - log_volume_element(A0, A_plus, restrictions, n_lags, step)
    if not np.isfinite(lw):
        raise NumericalError("Importance weight is not finite.")
    return lw


def evaluate_candidate(
    draw: ReducedFormDraw,
    Q: np.ndarray,
    restrictions: RestrictionSet,
    n_lags: int,
    step: float = 1e-6,
    tol: float = 1e-8,
) -> Optional[Candidate]:
    """
    Map (B, Sigma, Q) to the structural pair, apply the sign filter and weight
    the survivor. Returns None when a sign restriction fails.
    """
    A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, Q)
    responses = responses_at(A0, A_plus, n_lags, restrictions.horizons)

    if restrictions.has_zeros:
        scale = max(1.0, max(float(np.max(np.abs(r))) for r in responses.values()))
        if np.max(np.abs(restrictions.zero_values(responses))) > tol * scale:
            raise NumericalError("Zero restrictions violated beyond tolerance.")

    if not restrictions.signs_hold(responses):
        return None

    log_w = log_importance_weight(A0, A_plus, restrictions, n_lags, step) if restrictions.has_zeros else 0.0
    return Candidate(B=draw.B, Sigma=draw.Sigma, Q=Q, A0=A0, A_plus=A_plus, log_weight=log_w)
