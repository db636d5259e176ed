import numpy as np

from signzerovar.linalg import random_orthogonal
from signzerovar.priors import NIWPosterior
from signzerovar.restrictions import SignRestrictions, ZeroRestrictions, resolve_restrictions
from signzerovar.rotation import draw_rotation
from signzerovar.structural import structural_from_reduced
from signzerovar.weights import evaluate_candidate, log_importance_weight


def test_weights_are_constant_without_zero_restrictions(bivariate_data):
    # uniform rotations already give the target density: the weight must not vary
    rs = resolve_restrictions(None, None, bivariate_data.var_names)
    post = NIWPosterior.from_data(bivariate_data)
    rng = np.random.default_rng(4)
    log_w = []
    for _ in range(6):
        draw = post.draw(rng)
        A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, random_orthogonal(2, rng))
        log_w.append(log_importance_weight(A0, A_plus, rs, bivariate_data.p))
    assert np.ptp(log_w) < 1e-5


def test_weights_are_finite_with_zero_restrictions(trivariate_data):
    rs = resolve_restrictions(ZeroRestrictions({0: [("stock", 1)]}), None, trivariate_data.var_names)
    post = NIWPosterior.from_data(trivariate_data)
    rng = np.random.default_rng(8)
    log_w = []
    for _ in range(4):
        draw = post.draw(rng)
        Q = draw_rotation(draw.B, draw.Sigma, rs, trivariate_data.p, rng)
        A0, A_plus = structural_from_reduced(draw.B, draw.Sigma, Q)
        log_w.append(log_importance_weight(A0, A_plus, rs, trivariate_data.p))
    assert np.isfinite(log_w).all()


def test_evaluate_candidate_filters_signs(bivariate_data):
    post = NIWPosterior.from_data(bivariate_data)
    draw = post.draw(np.random.default_rng(0))
    L = np.linalg.cholesky(draw.Sigma)
    want_positive = resolve_restrictions(None, SignRestrictions({0: {("output", 0): "+"}}), bivariate_data.var_names)

    # with Q = I the impact of shock 0 on output is L[0, 0] > 0
    assert L[0, 0] > 0
    kept = evaluate_candidate(draw, np.eye(2), want_positive, bivariate_data.p)
    assert kept is not None and kept.log_weight == 0.0
    assert evaluate_candidate(draw, -np.eye(2), want_positive, bivariate_data.p) is None


def test_evaluate_candidate_weights_zero_restricted_draws(bivariate_data):
    rs = resolve_restrictions(
        ZeroRestrictions({0: [("hours", 0)]}),
        SignRestrictions({0: {("output", 0): 1}}),
        bivariate_data.var_names,
    )
    post = NIWPosterior.from_data(bivariate_data)
    rng = np.random.default_rng(3)
    draw = post.draw(rng)
    Q = draw_rotation(draw.B, draw.Sigma, rs, 1, rng)
    if (np.linalg.cholesky(draw.Sigma) @ Q)[0, 0] < 0:
        Q[:, 0] = -Q[:, 0]
    cand = evaluate_candidate(draw, Q, rs, 1)
    assert cand is not None
    assert np.isfinite(cand.log_weight)


def test_weight_is_invariant_to_shock_sign_flips(trivariate_data):
    # (A0, A_plus) -> (A0 D, A_plus D) keeps the zero manifold and maps the
    # drawn coordinates w_j to -w_j, so the weight must not move
    rs = resolve_restrictions(
        ZeroRestrictions({0: [("stock", 0), ("cons", 1)], 1: [("tfp", 0)]}),
        None,
        trivariate_data.var_names,
    )
    rng = np.random.default_rng(13)
    draw = NIWPosterior.from_data(trivariate_data).draw(rng)
    Q = draw_rotation(draw.B, draw.Sigma, rs, trivariate_data.p, rng)
    base = log_importance_weight(*structural_from_reduced(draw.B, draw.Sigma, Q), rs, trivariate_data.p)
    for signs in ([-1, 1, 1], [1, -1, 1], [1, 1, -1], [-1, -1, -1]):
        flipped = Q * np.array(signs, dtype=float)
        lw = log_importance_weight(*structural_from_reduced(draw.B, draw.Sigma, flipped), rs, trivariate_data.p)
        assert abs(lw - base) < 1e-5


def test_weight_depends_only_on_reduced_form_when_exactly_identified(bivariate_data):
    # one impact zero in a bivariate model pins Q down to column signs
    rs = resolve_restrictions(ZeroRestrictions({0: [("hours", 0)]}), None, bivariate_data.var_names)
    rng = np.random.default_rng(17)
    draw = NIWPosterior.from_data(bivariate_data).draw(rng)
    log_w = []
    for _ in range(6):
        Q = draw_rotation(draw.B, draw.Sigma, rs, 1, rng)
        log_w.append(log_importance_weight(*structural_from_reduced(draw.B, draw.Sigma, Q), rs, 1))
    assert np.ptp(log_w) < 1e-5
