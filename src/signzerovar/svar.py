from __future__ import annotations

import threading
from typing import Any, Dict, Literal, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger

from signzerovar.data import Layout, TimeOrder, VARData
from signzerovar.errors import ConfigurationError
from signzerovar.evaluate import ResponseSummary, fevd_summary, irf_summary
from signzerovar.priors import NIWPosterior, NIWPrior, OLSResult, ols
from signzerovar.restrictions import SignRestrictions, ZeroRestrictions
from signzerovar.sampler import PosteriorSample, SamplerConfig, SignZeroSampler

PriorChoice = Union[Literal["flat", "minnesota"], NIWPrior]


class SignZeroSVAR:
    """
    SVAR identified with zero and sign restrictions on impulse responses.

    Expected data layout: T x N, one row per period, one column per variable,
    oldest observation first. Other layouts are accepted through `layout` and
    `time_order`.

    Typical use::

        model = SignZeroSVAR(df, p=4)
        sample = model.identify(
            zero=ZeroRestrictions({0: [("hours", 0)]}),
            signs=SignRestrictions({0: {("tfp", 0): +1}}),
            config=SamplerConfig(n_survivors=1000, n_posterior=1000, seed=7),
        )
        irf = model.irf(horizon=20)
    """

    # --------- init / data ----------
    def __init__(
        self,
        data: Union[pd.DataFrame, np.ndarray],
        p: int,
        var_names: Optional[Sequence[str]] = None,
        shock_names: Optional[Sequence[str]] = None,
        layout: Optional[Layout] = None,
        time_order: TimeOrder = "chronological",
        prior: PriorChoice = "flat",
        prior_kwargs: Optional[Mapping[str, Any]] = None,
        name: str = "SignZeroSVAR",
        verbose: bool = False,
    ):
        self.name = name
        self.verbose = verbose
        self.data = VARData.from_frame(data, p, var_names=var_names, layout=layout, time_order=time_order)
        self.p = self.data.p
        self.K = self.data.n_vars
        self.var_names = self.data.var_names
        self.shock_names = tuple(shock_names) if shock_names is not None else None

        if isinstance(prior, NIWPrior):
            self.prior = prior
        elif prior == "flat":
            self.prior = NIWPrior.flat(self.data.n_vars, self.data.n_regressors)
        elif prior == "minnesota":
            self.prior = NIWPrior.minnesota(self.data, **dict(prior_kwargs or {}))
        else:
            raise ConfigurationError(f"Unknown prior: {prior!r}")

        # --------- outputs ----------
        self.ols_result: Optional[OLSResult] = None
        self.sample: Optional[PosteriorSample] = None

    # ----------------- reduced form -----------------
    def fit_ols(self) -> "SignZeroSVAR":
        self.ols_result = ols(self.data)
        return self

    def posterior(self) -> NIWPosterior:
        return NIWPosterior.from_data(self.data, self.prior)

    # ----------------- identification -----------------
    def identify(
        self,
        zero: Optional[Union[ZeroRestrictions, Mapping]] = None,
        signs: Optional[Union[SignRestrictions, Mapping]] = None,
        config: Optional[Union[SamplerConfig, Mapping[str, Any]]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> PosteriorSample:
        """
        Draw the restricted posterior. Plain dicts are accepted for both
        restriction sets and for the config.
        """
        if zero is not None and not isinstance(zero, ZeroRestrictions):
            zero = ZeroRestrictions(zero)
        if signs is not None and not isinstance(signs, SignRestrictions):
            signs = SignRestrictions(signs)
        if config is not None and not isinstance(config, SamplerConfig):
            config = SamplerConfig.from_mapping(config)

        sampler = SignZeroSampler(
            self.data, prior=self.prior, zero=zero, signs=signs, config=config, shock_names=self.shock_names,
        )
        self.sample = sampler.run(stop_event=stop_event)
        if self.verbose:
            logger.info("{} diagnostics:\n{}", self.name, self.summary().to_string())
        return self.sample

    def _require_sample(self) -> PosteriorSample:
        if self.sample is None:
            raise RuntimeError("No identification stored. Call identify() first.")
        return self.sample

    # ----------------- IRF / FEVD -----------------
    def irf_draws(self, horizon: int) -> np.ndarray:
        return self._require_sample().impulse_responses(horizon)

    def irf(self, horizon: int, quantiles: Sequence[float] = (0.16, 0.5, 0.84)) -> ResponseSummary:
        return irf_summary(self._require_sample(), horizon, quantiles)

    def fevd(self, horizon: int, quantiles: Sequence[float] = (0.16, 0.5, 0.84)) -> ResponseSummary:
        return fevd_summary(self._require_sample(), horizon, quantiles)

    def summary(self) -> pd.DataFrame:
        diag = self._require_sample().diagnostics
        return diag.to_series().to_frame().rename(columns={"diagnostics": self.name})

    def ols_table(self) -> Dict[str, pd.DataFrame]:
        if self.ols_result is None:
            raise RuntimeError("Call fit_ols() first.")
        rows = [f"{v}.L{l}" for l in range(1, self.p + 1) for v in self.var_names] + ["const"]
        return {
            "B": pd.DataFrame(self.ols_result.B, index=rows, columns=list(self.var_names)),
            "Sigma": pd.DataFrame(self.ols_result.Sigma, index=list(self.var_names), columns=list(self.var_names)),
        }
