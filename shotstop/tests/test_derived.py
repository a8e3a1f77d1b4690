"""
Tests for derived quantities: finite-difference derivatives, gradients and
the delta-method variance.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from shotstop import DerivedFunction, InvalidParameter, as_derived


def _check(numeric, analytic, tol):
    np.testing.assert_allclose(numeric, analytic, atol=tol)


# ── Scalar f ──────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("p", [0.1, 0.3, 0.49, 0.8])
def test_finite_difference_slope_sqrt(p: float):
    f = DerivedFunction(np.sqrt)
    _check(f.slope(p, step=1e-4), 0.5 / math.sqrt(p), 1e-6)


def test_finite_difference_slope_quadratic_is_exact():
    f = DerivedFunction(lambda p: 3 * p**2 - p)
    assert f.slope(0.4, step=0.01) == pytest.approx(6 * 0.4 - 1)


def test_slope_clips_at_boundaries():
    f = DerivedFunction(np.sqrt)
    # p = 0: only [0, Δ] is evaluated, sqrt(-Δ) never is.
    assert f.slope(0.0, step=0.01) == pytest.approx(math.sqrt(0.01) / 0.01)
    # p = 1: evaluated on [1 - Δ, 1].
    assert f.slope(1.0, step=0.01) == pytest.approx((1 - math.sqrt(0.99)) / 0.01)


def test_analytic_derivative_used():
    calls = []

    def deriv(p):
        calls.append(p)
        return 2.0

    f = DerivedFunction(lambda p: 2 * p, derivative=deriv)
    assert f.slope(0.3, step=0.01) == 2.0
    assert calls == [0.3]


def test_scalar_delta_method():
    f = DerivedFunction(lambda p: 2 * p)
    assert f.variance(0.3, 0.001, step=0.01) == pytest.approx(4 * 0.001)


def test_non_finite_value_raises():
    f = DerivedFunction(lambda p: 1.0 / p if p > 0 else math.inf)
    with pytest.raises(InvalidParameter):
        f.apply(0.0)
    with pytest.raises(InvalidParameter):
        f.slope(0.0, step=0.01)


def test_non_finite_derivative_raises():
    f = DerivedFunction(np.log, derivative=lambda p: math.nan)
    with pytest.raises(InvalidParameter):
        f.slope(0.5, step=0.01)


# ── Vector f ──────────────────────────────────────────────────────────────────


def test_numeric_gradient_matches_analytic():
    w = np.array([1.0, -2.0, 0.5, 3.0])
    linear = DerivedFunction(lambda p: float(w @ p))
    p = np.array([0.4, 0.3, 0.2, 0.1])
    _check(linear.gradient(p, step=1e-3), w, 1e-9)

    quad = DerivedFunction(lambda p: float(np.sum(p**2)))
    _check(quad.gradient(p, step=1e-3), 2 * p, 1e-9)


def test_gradient_clips_each_coordinate():
    f = DerivedFunction(lambda p: float(np.sum(np.sqrt(p))))
    grad = f.gradient(np.array([0.0, 1.0]), step=0.01)
    _check(grad, [math.sqrt(0.01) / 0.01, (1 - math.sqrt(0.99)) / 0.01], 1e-12)


def test_vector_delta_method():
    w = np.array([1.0, -1.0, -1.0, 1.0])
    zz = DerivedFunction(lambda p: float(w @ p), derivative=lambda p: w)
    p = np.array([0.4, 0.1, 0.2, 0.3])
    v = p * (1 - p) / 100
    assert zz.variance(p, v, step=0.01) == pytest.approx(float(np.sum(v)))


def test_analytic_gradient_shape_checked():
    f = DerivedFunction(lambda p: float(p.sum()), derivative=lambda p: np.ones(3))
    with pytest.raises(InvalidParameter):
        f.gradient(np.full(4, 0.25), step=0.01)


# ── Construction ──────────────────────────────────────────────────────────────


def test_as_derived():
    assert as_derived(None) is None
    f = DerivedFunction(np.sqrt)
    assert as_derived(f) is f
    wrapped = as_derived(np.sqrt)
    assert isinstance(wrapped, DerivedFunction)
    assert wrapped.label == "sqrt"
    with pytest.raises(InvalidParameter):
        as_derived(3.0)


def test_label_and_repr():
    f = DerivedFunction(lambda p: p, name="identity")
    assert f.label == "identity"
    assert "finite-difference" in repr(f)


def test_not_callable_rejected():
    with pytest.raises(InvalidParameter):
        DerivedFunction(1.0)
    with pytest.raises(InvalidParameter):
        DerivedFunction(np.sqrt, derivative=0.5)
