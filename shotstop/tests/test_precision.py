"""
Tests for the precision constants: z, H(γ, Δ), N_min and the Bonferroni split.
"""

from __future__ import annotations

import math

import pytest

from shotstop import (
    InvalidParameter,
    PrecisionRequest,
    h_constant,
    minimum_samples,
    z_value,
)


# ── Constants ─────────────────────────────────────────────────────────────────


def test_z_value_known_quantiles():
    assert z_value(0.05) == pytest.approx(1.959964, abs=1e-6)
    assert z_value(0.10) == pytest.approx(1.644854, abs=1e-6)


def test_h_constant_reference_value():
    """Δ = 0.0001, γ = 0.05 → H ≈ 727."""
    assert h_constant(1e-4, 0.05) == pytest.approx(727, abs=1)


def test_h_constant_definition():
    delta, gamma = 0.003, 0.2
    assert h_constant(delta, gamma) == pytest.approx((z_value(gamma) / delta) ** (2 / 3))


def test_minimum_samples_reference_values():
    assert minimum_samples(1e-4, 0.05) == 513
    assert minimum_samples(0.01, 0.1) == 11
    assert minimum_samples(0.01, 0.0125) == 2


def test_minimum_samples_guards_degenerate_run():
    """(1 - Δ)^N_min <= 1 - γ, and N_min - 1 shots would not be enough."""
    delta, gamma = 0.002, 0.3
    n = minimum_samples(delta, gamma)
    assert (1 - delta) ** n <= 1 - gamma
    assert (1 - delta) ** (n - 1) > 1 - gamma


@pytest.mark.parametrize("gamma", [0.01, 0.05, 0.2, 0.5])
def test_minimum_samples_monotone_in_delta(gamma: float):
    deltas = [0.4, 0.2, 0.1, 0.05, 0.01, 0.005, 0.001, 1e-4]
    floors = [minimum_samples(d, gamma) for d in deltas]
    assert floors == sorted(floors)


@pytest.mark.parametrize("delta", [0.3, 0.05, 1e-3, 1e-4])
def test_minimum_samples_monotone_in_gamma(delta: float):
    gammas = [0.9, 0.5, 0.2, 0.1, 0.05, 0.01, 0.001]
    floors = [minimum_samples(delta, g) for g in gammas]
    assert floors == sorted(floors)


# ── PrecisionRequest ──────────────────────────────────────────────────────────


def test_request_properties_match_functions():
    req = PrecisionRequest(delta=1e-3, gamma=0.05)
    assert req.z == pytest.approx(z_value(0.05))
    assert req.h == pytest.approx(h_constant(1e-3, 0.05))
    assert req.n_min == minimum_samples(1e-3, 0.05)


def test_request_bonferroni_split():
    req = PrecisionRequest(delta=0.01, gamma=0.05).split(4)
    assert req.gamma == pytest.approx(0.0125)
    assert req.delta == 0.01


def test_request_is_immutable():
    req = PrecisionRequest(delta=0.01, gamma=0.05)
    with pytest.raises(AttributeError):
        req.delta = 0.02  # type: ignore[misc]


@pytest.mark.parametrize(
    "delta, gamma",
    [(0.0, 0.05), (-0.1, 0.05), (1.0, 0.05), (0.01, 0.0), (0.01, 1.0),
     (0.01, -0.5), (math.nan, 0.05), (0.01, math.inf)],
)
def test_invalid_request(delta: float, gamma: float):
    with pytest.raises(InvalidParameter):
        PrecisionRequest(delta, gamma)
    with pytest.raises(InvalidParameter):
        minimum_samples(delta, gamma)


def test_invalid_parameter_is_value_error():
    with pytest.raises(ValueError):
        h_constant(0.0, 0.05)


def test_split_rejects_zero_outcomes():
    with pytest.raises(InvalidParameter):
        PrecisionRequest(0.01, 0.05).split(0)
