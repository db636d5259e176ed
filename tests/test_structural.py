import numpy as np
import pytest

from signzerovar.errors import NumericalError
from signzerovar.linalg import random_orthogonal
from signzerovar.priors import NIWPosterior
from signzerovar.restrictions import LONG_RUN
from signzerovar.structural import (
    impulse_responses,
    long_run_response,
    reduced_form_responses,
    reduced_from_structural,
    responses_at,
    structural_from_reduced,
)


@pytest.fixture
def draw_and_rotation(trivariate_data):
    rng = np.random.default_rng(5)
    draw = NIWPosterior.from_data(trivariate_data).draw(rng)
    return draw, random_orthogonal(3, rng)


def test_bijection_recovers_reduced_form(draw_and_rotation):
    draw, Q = draw_and_rotation
    A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, Q)
    B, Sigma, Q2 = reduced_from_structural(A0, A_plus)
    assert np.allclose(B, draw.B)
    assert np.allclose(Sigma, draw.Sigma)
    assert np.allclose(Q2, Q)
    # structural shocks have identity covariance
    assert np.allclose(np.linalg.inv(A0 @ A0.T), draw.Sigma)


def test_impulse_responses_follow_vma_recursion(draw_and_rotation):
    draw, Q = draw_and_rotation
    A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, Q)
    irfs = impulse_responses(A0, A_plus, n_lags=2, horizon=6)
    A1, A2 = draw.B[:3].T, draw.B[3:6].T
    assert irfs.shape == (7, 3, 3)
    assert np.allclose(irfs[0], np.linalg.cholesky(draw.Sigma) @ Q)
    assert np.allclose(irfs[0] @ irfs[0].T, draw.Sigma)
    assert np.allclose(irfs[1], A1 @ irfs[0])
    assert np.allclose(irfs[2], A1 @ irfs[1] + A2 @ irfs[0])


def test_long_run_and_rotation_equivariance(draw_and_rotation):
    draw, Q = draw_and_rotation
    A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, Q)
    A1, A2 = draw.B[:3].T, draw.B[3:6].T
    lr = long_run_response(A0, A_plus, n_lags=2)
    assert np.allclose(lr, np.linalg.solve(np.eye(3) - A1 - A2, np.linalg.cholesky(draw.Sigma) @ Q))

    base = reduced_form_responses(draw.B, draw.Sigma, 2, (0, 3, LONG_RUN))
    rotated = responses_at(A0, A_plus, 2, (0, 3, LONG_RUN))
    for h in (0, 3, LONG_RUN):
        assert np.allclose(rotated[h], base[h] @ Q)


def test_singular_inputs_raise():
    with pytest.raises(NumericalError):
        structural_from_reduced(np.zeros((3, 2)), np.array([[1.0, 1.0], [1.0, 1.0]]), np.eye(2))
    with pytest.raises(NumericalError):
        impulse_responses(np.zeros((2, 2)), np.zeros((3, 2)), n_lags=1, horizon=2)
