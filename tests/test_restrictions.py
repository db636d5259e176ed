import numpy as np
import pytest

from signzerovar.errors import ConfigurationError
from signzerovar.restrictions import (
    LONG_RUN,
    SignRestrictions,
    ZeroRestrictions,
    parse_horizon,
    resolve_restrictions,
)

NAMES = ("tfp", "stock", "cons")


def test_resolves_names_and_indices():
    rs = resolve_restrictions(
        ZeroRestrictions({0: [("stock", 0), (2, "inf")]}),
        SignRestrictions({"news": {("tfp", 4): "+", ("cons", 0): None}, 2: {(1, 0): -1}}),
        NAMES,
        shock_names=("news", "tech", "other"),
    )
    assert rs.zeros[0] == ((1, 0), (2, LONG_RUN))
    assert rs.signs == ((0, 4, 0, 1), (1, 0, 2, -1))
    assert rs.horizons == (0, 4, LONG_RUN)
    assert rs.zero_horizons == (0, LONG_RUN)
    assert rs.n_zeros == 2


def test_processing_order_puts_most_restricted_first():
    rs = resolve_restrictions(
        ZeroRestrictions({1: [(0, 0)], 2: [(0, 0), (1, 0)]}), None, NAMES,
    )
    assert rs.order == (2, 1, 0)


@pytest.mark.parametrize("h, expected", [(0, 0), (12, 12), ("inf", LONG_RUN), (np.inf, LONG_RUN), (3.0, 3)])
def test_parse_horizon(h, expected):
    assert parse_horizon(h) == expected


@pytest.mark.parametrize("h", [float("nan"), np.nan, -np.inf, "soon", True])
def test_parse_horizon_rejects(h):
    with pytest.raises(ConfigurationError):
        parse_horizon(h)


@pytest.mark.parametrize("zero, signs", [
    ({0: [("gdp", 0)]}, None),                  # unknown variable
    ({5: [(0, 0)]}, None),                      # shock out of range
    ({0: [(0, -1)]}, None),                     # negative horizon
    ({0: [(0, 1.5)]}, None),                    # fractional horizon
    ({0: [(0, float("nan"))]}, None),           # NaN horizon
    ({0: [(0, 0), (0, 0)]}, None),              # duplicate
    ({0: [0]}, None),                           # not a pair
    (None, {0: {(0, 0): 2}}),                   # bad sign
    (None, {0: {(3, 0): 1}}),                   # variable index out of range
])
def test_malformed_specs_raise(zero, signs):
    with pytest.raises(ConfigurationError):
        resolve_restrictions(
            ZeroRestrictions(zero) if zero else None,
            SignRestrictions(signs) if signs else None,
            NAMES,
        )


def test_zero_and_strict_sign_conflict():
    with pytest.raises(ConfigurationError):
        resolve_restrictions(
            ZeroRestrictions({0: [(1, 0)]}), SignRestrictions({0: {(1, 0): 1}}, strict=True), NAMES,
        )


def test_horizon_above_maximum():
    with pytest.raises(ConfigurationError):
        resolve_restrictions(None, SignRestrictions({0: {(0, 9): 1}}), NAMES, max_horizon=8)


def test_sign_check_ties():
    responses = {0: np.array([[0.0, 1.0], [-1.0, 2.0]])}
    weak = resolve_restrictions(None, SignRestrictions({0: {(0, 0): 1, (1, 0): -1}}), ("a", "b"))
    strict = resolve_restrictions(None, SignRestrictions({0: {(0, 0): 1, (1, 0): -1}}, strict=True), ("a", "b"))
    assert weak.signs_hold(responses)
    assert not strict.signs_hold(responses)
    flipped = resolve_restrictions(None, SignRestrictions({1: {(1, 0): -1}}), ("a", "b"))
    assert not flipped.signs_hold(responses)
