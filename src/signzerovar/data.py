from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from signzerovar.errors import ConfigurationError

Layout = Literal["TxK", "KL_KxT"]                   # TxK: time x vars, KL: vars x time
TimeOrder = Literal["chronological", "KL_reverse"]  # KL_reverse: first obs newest


def _is_datetime_like_index(idx: pd.Index) -> bool:
    return isinstance(idx, (pd.DatetimeIndex, pd.PeriodIndex)) or pd.api.types.is_datetime64_any_dtype(idx)


def _infer_layout(df: pd.DataFrame, layout: Optional[Layout]) -> Layout:
    if layout is not None:
        return layout
    # time in the columns means variables are rows
    col_time = _is_datetime_like_index(df.columns)
    idx_time = _is_datetime_like_index(df.index)
    if col_time and not idx_time:
        return "KL_KxT"
    return "TxK"


def _coerce_to_TK(df: pd.DataFrame, layout: Layout) -> Tuple[np.ndarray, List[str], pd.Index]:
    if layout == "TxK":
        return df.to_numpy(dtype=float), [str(c) for c in df.columns], df.index
    if layout == "KL_KxT":
        return df.to_numpy(dtype=float).T, [str(i) for i in df.index], df.columns
    raise ConfigurationError(f"Unknown layout: {layout}")


def _validate_values(X: np.ndarray, label: str) -> None:
    if not np.isfinite(X).all():
        bad = np.argwhere(~np.isfinite(X))
        raise ConfigurationError(
            f"{label} contains NaN/inf at positions like {bad[:5].tolist()} (showing up to 5)."
        )


def lag_design(y: np.ndarray, p: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    y: (T, N) chronological data.

    Returns Y (T-p, N) and X (T-p, N*p + 1) with rows
    x_t = [y_{t-1}', ..., y_{t-p}', 1].
    """
    T, N = y.shape
    nobs = T - p
    X = np.ones((nobs, N * p + 1))
    for lag in range(1, p + 1):
        X[:, (lag - 1) * N:lag * N] = y[p - lag:T - lag, :]
    return y[p:, :], X


@dataclass(frozen=True)
class VARData:
    """
    Observation and design matrices of a VAR(p) with a constant.

    levels: (T, N) cleaned series, chronological
    Y:      (T-p, N) left-hand side
    X:      (T-p, K) regressors, K = N*p + 1, constant in the last column
    """
    levels: np.ndarray
    Y: np.ndarray
    X: np.ndarray
    p: int
    var_names: Tuple[str, ...]
    time_index: Any = None

    @classmethod
    def from_frame(
        cls,
        data: Union[pd.DataFrame, np.ndarray],
        p: int,
        var_names: Optional[Sequence[str]] = None,
        layout: Optional[Layout] = None,
        time_order: TimeOrder = "chronological",
    ) -> "VARData":
        p = int(p)
        if p < 1:
            raise ConfigurationError("p must be >= 1")

        if isinstance(data, pd.DataFrame):
            layout = _infer_layout(data, layout)
            y, names, time_index = _coerce_to_TK(data, layout)
        else:
            arr = np.asarray(data, dtype=float)
            if arr.ndim != 2:
                raise ConfigurationError(f"Expected 2D data, got shape {arr.shape}")
            y = arr.T if layout == "KL_KxT" else arr
            names = [f"var_{i}" for i in range(1, y.shape[1] + 1)]
            time_index = pd.RangeIndex(y.shape[0])

        if var_names is not None:
            if len(var_names) != y.shape[1]:
                raise ConfigurationError(
                    f"Got {len(var_names)} variable names for {y.shape[1]} series."
                )
            names = [str(v) for v in var_names]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Variable names must be unique: {names}")

        if time_order == "KL_reverse":
            y = y[::-1, :]
            time_index = time_index[::-1] if time_index is not None else None
        elif time_order != "chronological":
            raise ConfigurationError(f"Unknown time_order: {time_order}")

        _validate_values(y, label="endog")
        T, N = y.shape
        # need at least one residual degree of freedom per equation
        if T - p <= N * p + 1:
            raise ConfigurationError(
                f"Need T - p > N*p + 1 observations. Got T={T}, p={p}, N={N}"
            )

        y = np.ascontiguousarray(y)
        Y, X = lag_design(y, p)
        for a in (y, Y, X):
            a.setflags(write=False)
        return cls(levels=y, Y=Y, X=X, p=p, var_names=tuple(names), time_index=time_index)

    @property
    def n_vars(self) -> int:
        return self.Y.shape[1]

    @property
    def n_lags(self) -> int:
        return self.p

    @property
    def n_obs(self) -> int:
        return self.Y.shape[0]

    @property
    def n_regressors(self) -> int:
        return self.X.shape[1]

    def frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.levels, columns=list(self.var_names), index=self.time_index)
