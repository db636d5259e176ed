"""
Constrained rotation sampler.

Columns of Q are drawn one shock at a time in RestrictionSet.order. Column j
is uniform on the unit sphere of the null space of

    R_j = [ Z_j F(h(Sigma)^-1, B h(Sigma)^-1) ]
          [ q_prev'                          ]

so the zero restrictions of shock j and orthogonality to the columns already
fixed hold exactly.
"""
from __future__ import annotations

from typing import Dict, Iterator, Tuple

import numpy as np

from signzerovar.errors import NumericalError
from signzerovar.linalg import orthogonal_complement
from signzerovar.restrictions import RestrictionSet
from signzerovar.structural import reduced_form_responses


def constraint_matrix(
    base: Dict[float, np.ndarray],
    restrictions: RestrictionSet,
    shock: int,
    fixed: np.ndarray,
) -> np.ndarray:
    """R_j for `shock`; `fixed` holds the already drawn columns, shape (N, k)."""
    return np.vstack([restrictions.zero_rows(base, shock), fixed.T])


def iter_null_bases(
    base: Dict[float, np.ndarray],
    restrictions: RestrictionSet,
    Q: np.ndarray,
) -> Iterator[Tuple[int, np.ndarray]]:
    """(shock, N_j) in processing order for a complete rotation Q."""
    order = restrictions.order
    for k, j in enumerate(order):
        R = constraint_matrix(base, restrictions, j, Q[:, list(order[:k])])
        yield j, orthogonal_complement(R, restrictions.n_vars)


def draw_rotation(
    B: np.ndarray,
    Sigma: np.ndarray,
    restrictions: RestrictionSet,
    n_lags: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Orthogonal Q with every zero restriction satisfied for (B, Sigma).

    Raises InfeasibleZeroRestrictionError when some null space is empty and
    NumericalError when a constraint matrix degenerates.
    """
    n = restrictions.n_vars
    base = reduced_form_responses(B, Sigma, n_lags, restrictions.zero_horizons)
    Q = np.zeros((n, n))
    order = restrictions.order
    for k, j in enumerate(order):
        R = constraint_matrix(base, restrictions, j, Q[:, list(order[:k])])
        N_j = orthogonal_complement(R, n)
        w = N_j.T @ rng.standard_normal(n)
        norm = np.linalg.norm(w)
        if norm == 0.0 or not np.isfinite(norm):
            raise NumericalError("Degenerate normal draw on the null space.")
        Q[:, j] = N_j @ (w / norm)
    return Q
