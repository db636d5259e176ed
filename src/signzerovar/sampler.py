"""
Sign-and-zero restricted posterior sampler.

Workers repeat, until the shared pool is full or the shared budget is spent:
draw (B, Sigma) from the NIW posterior, draw Q on the zero-restricted set,
map to (A0, A_plus), drop the draw if a sign restriction fails, otherwise
weight it. The merged weighted pool is then resampled (SIR) into an equally
weighted posterior sample.
"""
from __future__ import annotations

import bisect
import threading
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from loguru import logger

from signzerovar.data import VARData
from signzerovar.errors import (
    ConfigurationError,
    IdentificationError,
    InfeasibleZeroRestrictionError,
    NumericalError,
)
from signzerovar.priors import NIWPosterior, NIWPrior
from signzerovar.resample import effective_sample_size, resample
from signzerovar.restrictions import (
    RestrictionSet,
    SignRestrictions,
    ZeroRestrictions,
    resolve_restrictions,
)
from signzerovar.rotation import draw_rotation
from signzerovar.structural import impulse_responses
from signzerovar.weights import Candidate, evaluate_candidate


@dataclass(frozen=True)
class SamplerConfig:
    """
    n_survivors:    size S of the weighted pool
    n_posterior:    size M of the resampled posterior sample (capped at S)
    max_iterations: total candidate budget across workers
    max_seconds:    optional wall-clock budget
    seed:           seed for numpy's SeedSequence; None draws fresh entropy
    n_workers:      parallel workers, each with its own random stream; survivors
                    and the candidate budget are shared
    max_horizon:    optional bound on finite restriction horizons
    """
    n_survivors: int = 1000
    n_posterior: int = 1000
    max_iterations: int = 100_000
    max_seconds: Optional[float] = None
    seed: Optional[int] = None
    n_workers: int = 1
    jacobian_step: float = 1e-6
    tolerance: float = 1e-8
    max_horizon: Optional[int] = None

    def __post_init__(self):
        for name in ("n_survivors", "n_posterior", "max_iterations", "n_workers"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, (int, np.integer)) or v < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {v!r}")
        if self.max_iterations < self.n_survivors:
            raise ConfigurationError("max_iterations must be at least n_survivors.")
        if self.n_workers > self.n_survivors:
            raise ConfigurationError("n_workers cannot exceed n_survivors.")
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ConfigurationError("max_seconds must be positive.")
        if not (0 < self.jacobian_step < 1) or not (0 < self.tolerance < 1):
            raise ConfigurationError("jacobian_step and tolerance must lie in (0, 1).")
        mh = self.max_horizon
        if mh is not None and (isinstance(mh, bool) or not isinstance(mh, (int, np.integer)) or mh < 0):
            raise ConfigurationError(f"max_horizon must be a non-negative integer, got {self.max_horizon!r}")

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "SamplerConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ConfigurationError(f"Unknown sampler options: {sorted(unknown)}")
        return cls(**dict(params))


@dataclass
class SamplerDiagnostics:
    attempted: int = 0
    accepted: int = 0
    sign_rejected: int = 0
    numerical_failures: int = 0
    infeasible: int = 0
    effective_sample_size: float = float("nan")
    elapsed_seconds: float = 0.0
    n_workers: int = 1
    interrupted: bool = False

    @property
    def acceptance_rate(self) -> float:
        return self.accepted / self.attempted if self.attempted else 0.0

    def merge(self, other: "SamplerDiagnostics") -> None:
        for name in ("attempted", "accepted", "sign_rejected", "numerical_failures", "infeasible"):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.interrupted = self.interrupted or other.interrupted

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["acceptance_rate"] = self.acceptance_rate
        return d

    def to_series(self) -> pd.Series:
        return pd.Series(self.as_dict(), name="diagnostics")


@dataclass(frozen=True)
class PosteriorSample:
    """M equally weighted structural draws; every draw satisfies all restrictions."""
    B: np.ndarray        # (M, K, N)
    Sigma: np.ndarray    # (M, N, N)
    Q: np.ndarray        # (M, N, N)
    A0: np.ndarray       # (M, N, N)
    A_plus: np.ndarray   # (M, K, N)
    n_lags: int
    var_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]
    diagnostics: SamplerDiagnostics
    pool_index: np.ndarray = field(repr=False, default=None)

    def __len__(self) -> int:
        return self.A0.shape[0]

    def impulse_responses(self, horizon: int) -> np.ndarray:
        """(M, horizon+1, N, N); [m, k, i, j] = response of variable i to shock j."""
        return np.stack([
            impulse_responses(self.A0[m], self.A_plus[m], self.n_lags, horizon)
            for m in range(len(self))
        ])


_Record = Tuple[int, str, Optional[Candidate]]


class _SharedProgress:
    """
    Survivor positions shared by all workers.

    Candidate k of worker w sits at position k * n_workers + w of one
    round-robin sequence. The pool is the accepted prefix of that sequence,
    so it does not depend on thread timing.
    """

    def __init__(self, target: int):
        self.target = target
        self._accepted: List[int] = []
        self._lock = threading.Lock()

    def accept(self, position: int) -> None:
        with self._lock:
            bisect.insort(self._accepted, position)

    def reached_before(self, position: int) -> bool:
        """True once `target` survivors are known at positions below `position`."""
        with self._lock:
            return bisect.bisect_left(self._accepted, position) >= self.target


def _run_worker(
    posterior: NIWPosterior,
    restrictions: RestrictionSet,
    n_lags: int,
    progress: _SharedProgress,
    budget: int,
    seed: np.random.SeedSequence,
    stop_event: threading.Event,
    deadline: Optional[float],
    step: float,
    tol: float,
    worker_id: int = 0,
    n_workers: int = 1,
) -> Tuple[List[_Record], int, bool]:
    """
    Returns the worker's records, the first position it did not evaluate and
    whether it was interrupted.
    """
    rng = np.random.default_rng(seed)
    records: List[_Record] = []
    position = worker_id
    interrupted = False

    while position < budget and not progress.reached_before(position):
        if stop_event.is_set() or (deadline is not None and time.monotonic() > deadline):
            interrupted = True
            break
        candidate = None
        try:
            draw = posterior.draw(rng)
            Q = draw_rotation(draw.B, draw.Sigma, restrictions, n_lags, rng)
            candidate = evaluate_candidate(draw, Q, restrictions, n_lags, step=step, tol=tol)
            outcome = "accepted" if candidate is not None else "sign_rejected"
        except InfeasibleZeroRestrictionError:
            outcome = "infeasible"
        except NumericalError:
            outcome = "numerical_failures"
        records.append((position, outcome, candidate))
        if candidate is not None:
            progress.accept(position)
        position += n_workers

    logger.debug(
        "Worker {}: {} candidates, {} survivors{}",
        worker_id, len(records), sum(r[1] == "accepted" for r in records),
        " (interrupted)" if interrupted else "",
    )
    return records, position, interrupted


def _diagnostics_for(records: List[_Record], interrupted: bool) -> SamplerDiagnostics:
    diag = SamplerDiagnostics(attempted=len(records), interrupted=interrupted)
    for _, outcome, _ in records:
        setattr(diag, outcome, getattr(diag, outcome) + 1)
    return diag


class SignZeroSampler:
    """
    Posterior sampler for an SVAR identified by zero and sign restrictions
    on impulse responses.

    data:         VARData (Y, X, lag length)
    prior:        NIWPrior, or None for the flat prior
    zero, signs:  restriction specifications; validated here, before any sampling
    """

    def __init__(
        self,
        data: VARData,
        prior: Optional[NIWPrior] = None,
        zero: Optional[ZeroRestrictions] = None,
        signs: Optional[SignRestrictions] = None,
        config: Optional[SamplerConfig] = None,
        shock_names: Optional[Tuple[str, ...]] = None,
    ):
        self.data = data
        self.config = config or SamplerConfig()
        self.restrictions = resolve_restrictions(
            zero, signs, data.var_names, shock_names, max_horizon=self.config.max_horizon,
        )
        self.posterior = NIWPosterior.from_data(data, prior)

    def run(self, stop_event: Optional[threading.Event] = None) -> PosteriorSample:
        cfg = self.config
        W = cfg.n_workers
        stop_event = stop_event if stop_event is not None else threading.Event()
        start = time.monotonic()
        deadline = None if cfg.max_seconds is None else start + cfg.max_seconds

        # one independent stream per worker plus one for resampling
        streams = np.random.SeedSequence(cfg.seed).spawn(W + 1)
        progress = _SharedProgress(cfg.n_survivors)

        logger.info(
            "Sampling {} survivors (N={}, p={}, {} zero / {} sign restrictions, {} worker(s))",
            cfg.n_survivors, self.data.n_vars, self.data.p,
            self.restrictions.n_zeros, len(self.restrictions.signs), W,
        )

        args = [
            (self.posterior, self.restrictions, self.data.p, progress, cfg.max_iterations, streams[k],
             stop_event, deadline, cfg.jacobian_step, cfg.tolerance, k, W)
            for k in range(W)
        ]
        if W == 1:
            results = [_run_worker(*args[0])]
        else:
            results = Parallel(n_jobs=W, backend="threading")(delayed(_run_worker)(*a) for a in args)

        # every position below the smallest worker frontier has been evaluated
        frontier = min(next_position for _, next_position, _ in results)
        evaluated = sorted(
            (rec for records, _, _ in results for rec in records if rec[0] < frontier),
            key=lambda rec: rec[0],
        )
        kept: List[_Record] = []
        n_accepted = 0
        for rec in evaluated:
            kept.append(rec)
            if rec[1] == "accepted":
                n_accepted += 1
                if n_accepted == cfg.n_survivors:
                    break

        pool: List[Candidate] = [c for _, outcome, c in kept if outcome == "accepted"]
        diag = SamplerDiagnostics(n_workers=W)
        for k, (_, _, interrupted) in enumerate(results):
            diag.merge(_diagnostics_for([rec for rec in kept if rec[0] % W == k], interrupted))
        diag.elapsed_seconds = time.monotonic() - start

        if len(pool) < cfg.n_survivors:
            reason = "interrupted" if diag.interrupted else "iteration budget exhausted"
            logger.error(
                "Identification failed ({}): {} of {} survivors after {} candidates, acceptance rate {:.4f}",
                reason, len(pool), cfg.n_survivors, diag.attempted, diag.acceptance_rate,
            )
            raise IdentificationError(
                f"Only {len(pool)} of {cfg.n_survivors} draws satisfied the restrictions "
                f"({reason}; {diag.attempted} candidates tried, acceptance rate {diag.acceptance_rate:.4f}).",
                diagnostics=diag,
            )

        log_w = np.array([c.log_weight for c in pool])
        diag.effective_sample_size = effective_sample_size(log_w)
        if diag.effective_sample_size < 0.1 * len(pool):
            logger.warning(
                "Low effective sample size {:.1f} out of {} weighted draws.",
                diag.effective_sample_size, len(pool),
            )

        idx = resample(log_w, cfg.n_posterior, np.random.default_rng(streams[W]))
        chosen = [pool[i] for i in idx]
        logger.info(
            "Done in {:.2f}s: {} candidates, acceptance rate {:.4f}, ESS {:.1f}, posterior size {}",
            diag.elapsed_seconds, diag.attempted, diag.acceptance_rate, diag.effective_sample_size, len(chosen),
        )
        return PosteriorSample(
            B=np.stack([c.B for c in chosen]),
            Sigma=np.stack([c.Sigma for c in chosen]),
            Q=np.stack([c.Q for c in chosen]),
            A0=np.stack([c.A0 for c in chosen]),
            A_plus=np.stack([c.A_plus for c in chosen]),
            n_lags=self.data.p,
            var_names=self.data.var_names,
            shock_names=self.restrictions.shock_names,
            diagnostics=diag,
            pool_index=idx,
        )
