from __future__ import annotations

import numpy as np
from loguru import logger
from scipy.special import logsumexp

from signzerovar.errors import IdentificationError


def normalize_log_weights(log_weights: np.ndarray) -> np.ndarray:
    """Normalized weights summing to one; -inf log weights map to exactly zero."""
    lw = np.asarray(log_weights, dtype=float)
    if lw.size == 0 or not np.isfinite(lw).any():
        raise IdentificationError("Weighted pool is empty or all weights are zero.")
    w = np.exp(lw - logsumexp(lw))
    w[~np.isfinite(lw)] = 0.0
    return w / w.sum()


def effective_sample_size(log_weights: np.ndarray) -> float:
    """(sum w)^2 / sum w^2, the usual importance-sampling efficiency indicator."""
    w = normalize_log_weights(log_weights)
    return float(1.0 / np.sum(w ** 2))


def resample(log_weights: np.ndarray, size: int, rng: np.random.Generator) -> np.ndarray:
    """
    Sampling-importance-resampling: indices drawn with replacement, with
    probability proportional to the weights.

    `size` above the pool length is capped at the pool length. Indices repeat
    whenever weights are unequal, as with any draw with replacement.
    """
    w = normalize_log_weights(log_weights)
    if size > w.size:
        logger.warning("Requested {} posterior draws from a pool of {}; capping at {}.", size, w.size, w.size)
        size = w.size
    return rng.choice(w.size, size=int(size), replace=True, p=w)
