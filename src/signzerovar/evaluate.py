from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from signzerovar.errors import ConfigurationError
from signzerovar.sampler import PosteriorSample


@dataclass(frozen=True)
class ResponseSummary:
    """
    Pointwise posterior summaries, each array (H+1, N, N) indexed
    [horizon, variable, shock].
    """
    lower: np.ndarray
    median: np.ndarray
    upper: np.ndarray
    mean: np.ndarray
    quantiles: Tuple[float, float, float]
    var_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]

    @property
    def horizon(self) -> int:
        return self.median.shape[0] - 1

    def to_frame(self, shock: Union[int, str]) -> pd.DataFrame:
        """Long table for one shock, indexed by (variable, horizon)."""
        j = self.shock_names.index(shock) if isinstance(shock, str) else int(shock)
        H = self.horizon
        index = pd.MultiIndex.from_product([list(self.var_names), range(H + 1)], names=["variable", "horizon"])
        cols = {
            "lower": self.lower[:, :, j].T.ravel(),
            "median": self.median[:, :, j].T.ravel(),
            "upper": self.upper[:, :, j].T.ravel(),
            "mean": self.mean[:, :, j].T.ravel(),
        }
        return pd.DataFrame(cols, index=index)


def _check_quantiles(quantiles: Sequence[float]) -> Tuple[float, float, float]:
    q = tuple(float(v) for v in quantiles)
    if len(q) != 3 or not (0 < q[0] < q[1] < q[2] < 1):
        raise ConfigurationError(f"quantiles must be three increasing values in (0, 1), got {quantiles}")
    return q  # type: ignore[return-value]


def _summarize(draws: np.ndarray, quantiles, sample: PosteriorSample) -> ResponseSummary:
    q = _check_quantiles(quantiles)
    lo, med, hi = np.quantile(draws, q, axis=0)
    return ResponseSummary(
        lower=lo, median=med, upper=hi, mean=draws.mean(axis=0),
        quantiles=q, var_names=sample.var_names, shock_names=sample.shock_names,
    )


def fevd_shares(irfs: np.ndarray) -> np.ndarray:
    """
    irfs: (..., H+1, N, N). Share of the (h+1)-step forecast error variance of
    variable i due to shock j: cumulated squared responses over the total.
    """
    cum = np.cumsum(irfs ** 2, axis=-3)
    total = cum.sum(axis=-1, keepdims=True)
    return np.divide(cum, total, out=np.zeros_like(cum), where=total > 0)


def irf_summary(
    sample: PosteriorSample,
    horizon: int,
    quantiles: Sequence[float] = (0.16, 0.5, 0.84),
    irfs: Optional[np.ndarray] = None,
) -> ResponseSummary:
    if horizon < 0:
        raise ConfigurationError("horizon must be non-negative")
    if irfs is None:
        irfs = sample.impulse_responses(horizon)
    logger.debug("IRF summary over {} draws, horizon {}", irfs.shape[0], horizon)
    return _summarize(irfs, quantiles, sample)


def fevd_summary(
    sample: PosteriorSample,
    horizon: int,
    quantiles: Sequence[float] = (0.16, 0.5, 0.84),
    irfs: Optional[np.ndarray] = None,
) -> ResponseSummary:
    if horizon < 0:
        raise ConfigurationError("horizon must be non-negative")
    if irfs is None:
        irfs = sample.impulse_responses(horizon)
    logger.debug("FEVD summary over {} draws, horizon {}", irfs.shape[0], horizon)
    return _summarize(fevd_shares(irfs), quantiles, sample)
