"""
Zero and sign restrictions on impulse responses.

Both specifications are keyed by shock (index or name) and by
(variable, horizon) pairs. Horizon 0 is impact, ``"inf"`` the long-run
cumulative response. Everything is validated and resolved to integer indices
before sampling starts; malformed input raises ConfigurationError.
"""
from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from signzerovar.errors import ConfigurationError

LONG_RUN = float("inf")

Horizon = Union[int, float, str]
Entry = Tuple[Union[int, str], Horizon]

_SIGNS = {1: 1, -1: -1, "+": 1, "-": -1, "pos": 1, "neg": -1, 0: 0, None: 0}


def parse_horizon(h: Horizon) -> float:
    if isinstance(h, str):
        if h.strip().lower() in ("inf", "lr", "long_run", "long-run"):
            return LONG_RUN
        raise ConfigurationError(f"Unknown horizon {h!r}")
    if isinstance(h, bool) or not isinstance(h, numbers.Real):
        raise ConfigurationError(f"Horizon must be an int or 'inf', got {h!r}")
    if np.isnan(h):
        raise ConfigurationError("Horizon must not be NaN")
    if np.isinf(h) and h > 0:
        return LONG_RUN
    if h < 0 or int(h) != h:
        raise ConfigurationError(f"Horizon must be a non-negative integer, got {h!r}")
    return int(h)


def _resolve_index(key: Hashable, names: Sequence[str], what: str) -> int:
    if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
        if not 0 <= int(key) < len(names):
            raise ConfigurationError(f"{what} index {key} out of range 0..{len(names) - 1}")
        return int(key)
    if isinstance(key, str) and key in names:
        return list(names).index(key)
    raise ConfigurationError(f"Unknown {what} {key!r}; expected an index or one of {list(names)}")


class ZeroRestrictions:
    """{shock: [(variable, horizon), ...]}; each listed response is exactly zero."""

    def __init__(self, spec: Optional[Mapping[Hashable, Iterable[Entry]]] = None):
        self.spec = {k: list(v) for k, v in (spec or {}).items()}

    def __len__(self) -> int:
        return sum(len(v) for v in self.spec.values())


class SignRestrictions:
    """
    {shock: {(variable, horizon): sign}} with sign in {+1, -1, '+', '-'};
    0 or None leaves the entry unrestricted.

    strict=False accepts a response of exactly zero for either sign.
    """

    def __init__(
        self,
        spec: Optional[Mapping[Hashable, Mapping[Entry, Union[int, str, None]]]] = None,
        strict: bool = False,
    ):
        self.spec = {k: dict(v) for k, v in (spec or {}).items()}
        self.strict = bool(strict)

    def __len__(self) -> int:
        return sum(1 for v in self.spec.values() for s in v.values() if _SIGNS.get(s, 1) != 0)


@dataclass(frozen=True)
class RestrictionSet:
    """
    Resolved restrictions.

    zeros[j]:  tuple of (variable index, horizon) for shock j
    signs:     tuple of (variable index, horizon, shock index, +1/-1)
    order:     shock processing order for the rotation sampler
    """
    n_vars: int
    zeros: Tuple[Tuple[Tuple[int, float], ...], ...]
    signs: Tuple[Tuple[int, float, int, int], ...]
    strict: bool
    order: Tuple[int, ...]
    var_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]

    @property
    def has_zeros(self) -> bool:
        return any(len(z) for z in self.zeros)

    @property
    def n_zeros(self) -> int:
        return sum(len(z) for z in self.zeros)

    @property
    def horizons(self) -> Tuple[float, ...]:
        """Every horizon referenced by any restriction, sorted (long run last)."""
        hs = {h for z in self.zeros for _, h in z} | {h for _, h, _, _ in self.signs}
        return tuple(sorted(hs))

    @property
    def zero_horizons(self) -> Tuple[float, ...]:
        return tuple(sorted({h for z in self.zeros for _, h in z}))

    def zero_rows(self, responses: Mapping[float, np.ndarray], shock: int) -> np.ndarray:
        """
        Rows of Z_j F: responses[h] holds the IRF block at Q = I, so the
        restricted response of variable i to shock j is responses[h][i, :] @ q_j.
        """
        rows = [responses[h][i, :] for i, h in self.zeros[shock]]
        if not rows:
            return np.zeros((0, self.n_vars))
        return np.vstack(rows)

    def zero_values(self, responses: Mapping[float, np.ndarray]) -> np.ndarray:
        """Restricted responses stacked shock by shock; all zero on the manifold."""
        vals = [responses[h][i, j] for j in range(self.n_vars) for i, h in self.zeros[j]]
        return np.asarray(vals, dtype=float)

    def signs_hold(self, responses: Mapping[float, np.ndarray]) -> bool:
        for i, h, j, s in self.signs:
            v = s * responses[h][i, j]
            if v < 0 or (self.strict and v == 0):
                return False
        return True


def resolve_restrictions(
    zero: Optional[ZeroRestrictions],
    signs: Optional[SignRestrictions],
    var_names: Sequence[str],
    shock_names: Optional[Sequence[str]] = None,
    max_horizon: Optional[int] = None,
) -> RestrictionSet:
    """Validate both specifications against the model and resolve names to indices."""
    n = len(var_names)
    zero = zero or ZeroRestrictions()
    signs = signs or SignRestrictions()
    if shock_names is None:
        shock_names = [f"shock_{j + 1}" for j in range(n)]
    if len(shock_names) != n:
        raise ConfigurationError(f"Got {len(shock_names)} shock names for {n} shocks.")

    def check_h(h: float) -> float:
        if max_horizon is not None and h != LONG_RUN and h > max_horizon:
            raise ConfigurationError(f"Horizon {h} exceeds the maximum horizon {max_horizon}")
        return h

    zeros: List[List[Tuple[int, float]]] = [[] for _ in range(n)]
    for shock, entries in zero.spec.items():
        j = _resolve_index(shock, shock_names, "shock")
        for entry in entries:
            try:
                var, h = entry
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Zero restriction entries must be (variable, horizon), got {entry!r}") from exc
            item = (_resolve_index(var, var_names, "variable"), check_h(parse_horizon(h)))
            if item in zeros[j]:
                raise ConfigurationError(f"Duplicate zero restriction {entry!r} for shock {shock!r}")
            zeros[j].append(item)

    sign_list: List[Tuple[int, float, int, int]] = []
    for shock, entries in signs.spec.items():
        j = _resolve_index(shock, shock_names, "shock")
        for entry, sign in entries.items():
            try:
                var, h = entry
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Sign restriction keys must be (variable, horizon), got {entry!r}") from exc
            if isinstance(sign, bool) or sign not in _SIGNS:
                raise ConfigurationError(f"Sign must be one of +1, -1, '+', '-', 0/None; got {sign!r}")
            s = _SIGNS[sign]
            if s == 0:
                continue
            i, hh = _resolve_index(var, var_names, "variable"), check_h(parse_horizon(h))
            if (i, hh) in zeros[j] and signs.strict:
                raise ConfigurationError(
                    f"Entry {entry!r} of shock {shock!r} is restricted to zero and to a strict sign."
                )
            sign_list.append((i, hh, j, s))

    # shocks with more zero restrictions first; stable on ties
    order = tuple(sorted(range(n), key=lambda j: -len(zeros[j])))
    for k, j in enumerate(order):
        if len(zeros[j]) > n - 1 - k:
            logger.warning(
                "Shock {} has {} zero restrictions but at most {} are feasible at position {}; "
                "every draw will be infeasible.",
                shock_names[j], len(zeros[j]), n - 1 - k, k,
            )

    return RestrictionSet(
        n_vars=n,
        zeros=tuple(tuple(z) for z in zeros),
        signs=tuple(sign_list),
        strict=signs.strict,
        order=order,
        var_names=tuple(var_names),
        shock_names=tuple(shock_names),
    )
