import numpy as np
import pandas as pd
import pytest

from signzerovar.data import VARData

# y_t = c + A1 y_{t-1} + IMPACT e_t ; shock 1 does not move hours on impact
A1 = np.array([[0.5, 0.1],
               [0.0, 0.3]])
IMPACT = np.array([[1.0, 0.5],
                   [0.0, 0.8]])
CONST = np.array([0.2, -0.1])


def simulate_var(T, A_lags, impact, const, seed, burn=100):
    rng = np.random.default_rng(seed)
    n = impact.shape[0]
    p = len(A_lags)
    y = np.zeros((T + burn, n))
    for t in range(p, T + burn):
        y[t] = const + sum(A_lags[l] @ y[t - l - 1] for l in range(p)) + impact @ rng.standard_normal(n)
    return y[burn:]


@pytest.fixture(scope="session")
def bivariate_frame():
    y = simulate_var(400, [A1], IMPACT, CONST, seed=123)
    index = pd.period_range("1950Q1", periods=y.shape[0], freq="Q")
    return pd.DataFrame(y, columns=["output", "hours"], index=index)


@pytest.fixture(scope="session")
def bivariate_data(bivariate_frame):
    return VARData.from_frame(bivariate_frame, p=1)


@pytest.fixture(scope="session")
def trivariate_data():
    A_lags = [np.array([[0.4, 0.1, 0.0], [0.1, 0.3, 0.1], [0.0, 0.2, 0.5]]),
              np.array([[0.1, 0.0, 0.0], [0.0, 0.1, 0.0], [0.05, 0.0, 0.1]])]
    impact = np.array([[1.0, 0.0, 0.0], [0.3, 0.8, 0.0], [0.2, 0.4, 0.6]])
    y = simulate_var(300, A_lags, impact, np.zeros(3), seed=7)
    frame = pd.DataFrame(y, columns=["tfp", "stock", "cons"])
    return VARData.from_frame(frame, p=2)


@pytest.fixture(scope="session")
def restricted_sample(bivariate_data):
    from signzerovar.restrictions import SignRestrictions, ZeroRestrictions
    from signzerovar.sampler import SamplerConfig, SignZeroSampler

    sampler = SignZeroSampler(
        bivariate_data,
        zero=ZeroRestrictions({0: [("hours", 0)]}),
        signs=SignRestrictions({0: {("output", 0): +1}}),
        config=SamplerConfig(n_survivors=200, n_posterior=200, max_iterations=5000, seed=11),
    )
    return sampler.run()
