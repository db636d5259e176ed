from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger
from scipy.linalg import cho_factor, cho_solve, solve_triangular
from statsmodels.tsa.ar_model import AutoReg

from signzerovar.data import VARData
from signzerovar.errors import ConfigurationError, NumericalError
from signzerovar.linalg import (
    cholesky_lower,
    cholesky_upper,
    draw_inverse_wishart,
    draw_matrix_normal,
)


@dataclass(frozen=True)
class ReducedFormDraw:
    B: np.ndarray      # (K, N)
    Sigma: np.ndarray  # (N, N)


@dataclass(frozen=True)
class OLSResult:
    B: np.ndarray
    Sigma: np.ndarray
    resid: np.ndarray


def ols(data: VARData) -> OLSResult:
    """Least-squares reduced form. Sigma uses divisor T-p, as in the KL convention."""
    B, *_ = np.linalg.lstsq(data.X, data.Y, rcond=None)
    E = data.Y - data.X @ B
    Sigma = (E.T @ E) / data.n_obs
    return OLSResult(B=B, Sigma=Sigma, resid=E)


@dataclass(frozen=True)
class NIWPrior:
    """
    Normal-inverse-Wishart prior on the reduced form:

        Sigma     ~ IW(nu, Phi)
        B | Sigma ~ MN(Psi, Omega, Sigma)

    Omega is carried as its precision Omega_inv so the flat prior (Omega_inv = 0)
    is representable.
    """
    nu: float
    Phi: np.ndarray        # (N, N)
    Psi: np.ndarray        # (K, N)
    Omega_inv: np.ndarray  # (K, K)
    name: str = "niw"

    def __post_init__(self):
        N = self.Phi.shape[0]
        K = self.Psi.shape[0]
        if self.Phi.shape != (N, N):
            raise ConfigurationError(f"Phi must be square, got {self.Phi.shape}")
        if self.Psi.shape != (K, N):
            raise ConfigurationError(f"Psi must be (K, N) = ({K}, {N}), got {self.Psi.shape}")
        if self.Omega_inv.shape != (K, K):
            raise ConfigurationError(f"Omega_inv must be ({K}, {K}), got {self.Omega_inv.shape}")
        for label, a in (("Phi", self.Phi), ("Psi", self.Psi), ("Omega_inv", self.Omega_inv)):
            if not np.isfinite(a).all():
                raise ConfigurationError(f"{label} contains NaN/inf.")
        if self.nu < 0:
            raise ConfigurationError(f"nu must be >= 0, got {self.nu}")
        if np.any(np.linalg.eigvalsh(0.5 * (self.Omega_inv + self.Omega_inv.T)) < -1e-10):
            raise ConfigurationError("Omega_inv must be positive semi-definite.")

    @property
    def n_vars(self) -> int:
        return self.Phi.shape[0]

    @property
    def n_regressors(self) -> int:
        return self.Psi.shape[0]

    @classmethod
    def flat(cls, n_vars: int, n_regressors: int) -> "NIWPrior":
        """Diffuse reference prior: nu = 0, Phi = 0, Psi = 0, Omega_inv = 0."""
        return cls(
            nu=0.0,
            Phi=np.zeros((n_vars, n_vars)),
            Psi=np.zeros((n_regressors, n_vars)),
            Omega_inv=np.zeros((n_regressors, n_regressors)),
            name="flat",
        )

    @classmethod
    def minnesota(
        cls,
        data: VARData,
        tightness: float = 0.2,
        decay: float = 1.0,
        const_std: float = 1e4,
        own_lag_mean: float = 0.0,
        sigma_deg: Optional[float] = None,
        sigma_arlags: Optional[int] = None,
    ) -> "NIWPrior":
        """
        Minnesota-type NIW prior.

        Own first-lag coefficients are centred on own_lag_mean (0 for differenced
        or stationary data, 1 for levels), everything else on zero. The prior
        standard deviation of the lag-l coefficient of variable j in equation i is
        roughly tightness * sigma_i / (sigma_j * l**decay), where sigma_j is the
        residual std of a univariate AR fit.
        """
        if tightness <= 0 or const_std <= 0:
            raise ConfigurationError("tightness and const_std must be positive.")
        N, p = data.n_vars, data.p
        K = data.n_regressors
        sigma_deg = float(N + 2 if sigma_deg is None else sigma_deg)
        if sigma_deg <= N + 1:
            raise ConfigurationError(f"sigma_deg must exceed N + 1 = {N + 1} for E(Sigma) to exist.")

        sigma = _ar_residual_std(data, arlags=p if sigma_arlags is None else int(sigma_arlags))

        lag_weights = np.arange(1, p + 1, dtype=float) ** decay
        w = np.kron(lag_weights, sigma / tightness)
        w = np.concatenate([w, [1.0 / const_std]])
        Omega_inv = np.diag(w ** 2)

        Psi = np.zeros((K, N))
        Psi[:N, :N] = own_lag_mean * np.eye(N)

        Phi = np.diag(sigma ** 2) * (sigma_deg - N - 1)
        return cls(nu=sigma_deg, Phi=Phi, Psi=Psi, Omega_inv=Omega_inv, name="minnesota")


def _ar_residual_std(data: VARData, arlags: int) -> np.ndarray:
    # univariate AR(arlags) with constant per series
    y = data.levels
    sigma = np.zeros(data.n_vars)
    for n in range(data.n_vars):
        series = y[:, n]
        if arlags == 0:
            resid = series - series.mean()
        else:
            if series.shape[0] < arlags + 10:
                raise ConfigurationError(f"Too few observations for an AR({arlags}) fit of {data.var_names[n]}")
            resid = AutoReg(series, lags=arlags, trend="c").fit().resid
        sigma[n] = max(float(np.std(resid, ddof=1)), 1e-6)
    return sigma


@dataclass(frozen=True)
class NIWPosterior:
    """
    Conjugate posterior NIW(nu, Phi, Psi, Omega) given the data.

    Draws are i.i.d. and do not depend on any structural restriction.
    """
    nu: float
    Phi: np.ndarray
    Psi: np.ndarray
    Omega_factor: np.ndarray  # C with C @ C.T = Omega
    prior_name: str = "flat"

    @classmethod
    def from_data(cls, data: VARData, prior: Optional[NIWPrior] = None) -> "NIWPosterior":
        N, K = data.n_vars, data.n_regressors
        if prior is None:
            prior = NIWPrior.flat(N, K)
        if prior.n_vars != N or prior.n_regressors != K:
            raise ConfigurationError(
                f"Prior is for N={prior.n_vars}, K={prior.n_regressors}; data has N={N}, K={K}"
            )
        X, Y = data.X, data.Y
        precision = X.T @ X + prior.Omega_inv
        try:
            U = cholesky_upper(precision)
            cF = cho_factor(precision)
        except (NumericalError, np.linalg.LinAlgError) as exc:
            raise ConfigurationError("X'X + Omega_inv is not positive definite; regressors are collinear.") from exc

        Psi_post = cho_solve(cF, X.T @ Y + prior.Omega_inv @ prior.Psi)
        E = Y - X @ Psi_post
        D = Psi_post - prior.Psi
        Phi_post = E.T @ E + D.T @ prior.Omega_inv @ D + prior.Phi
        Phi_post = 0.5 * (Phi_post + Phi_post.T)
        nu_post = data.n_obs + prior.nu

        if nu_post <= N - 1:
            raise ConfigurationError(f"Posterior degrees of freedom {nu_post} must exceed N - 1 = {N - 1}.")
        try:
            cholesky_lower(Phi_post)
        except NumericalError as exc:
            raise ConfigurationError("Posterior scale matrix is not positive definite.") from exc

        Omega_factor = solve_triangular(U, np.eye(K), lower=False)
        logger.debug("NIW posterior ({} prior): nu={}, N={}, K={}", prior.name, nu_post, N, K)
        return cls(
            nu=float(nu_post),
            Phi=Phi_post,
            Psi=Psi_post,
            Omega_factor=Omega_factor,
            prior_name=prior.name,
        )

    @property
    def Omega(self) -> np.ndarray:
        return self.Omega_factor @ self.Omega_factor.T

    @property
    def B_mean(self) -> np.ndarray:
        return self.Psi

    @property
    def Sigma_mean(self) -> Optional[np.ndarray]:
        N = self.Phi.shape[0]
        if self.nu <= N + 1:
            return None
        return self.Phi / (self.nu - N - 1)

    def draw(self, rng: np.random.Generator) -> ReducedFormDraw:
        Sigma = draw_inverse_wishart(rng, self.nu, self.Phi)
        L = cholesky_lower(Sigma)
        B = draw_matrix_normal(rng, self.Psi, self.Omega_factor, L)
        return ReducedFormDraw(B=B, Sigma=Sigma)
