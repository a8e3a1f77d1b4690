"""
Tests for the sampling backends: bit folding, Stim sampling and the
simulated Bernoulli / multinomial distributions.
"""

from __future__ import annotations

import numpy as np
import pytest
import stim

from shotstop import (
    BernoulliBackend,
    ConstantNoise,
    InvalidParameter,
    MultinomialBackend,
    StimBackend,
    TimeIncreasingNoise,
    bits_to_outcomes,
)


# ── Bit folding ───────────────────────────────────────────────────────────────


def test_bits_to_outcomes_first_column_most_significant():
    bits = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=bool)
    np.testing.assert_array_equal(bits_to_outcomes(bits), [0, 1, 2, 3])
    np.testing.assert_array_equal(bits_to_outcomes([[1, 0, 1]]), [5])


def test_bits_to_outcomes_rejects_flat_input():
    with pytest.raises(ValueError):
        bits_to_outcomes([0, 1, 1])


# ── Stim ──────────────────────────────────────────────────────────────────────


def test_stim_bell_pair_outcomes():
    sc = stim.Circuit("H 0\nCX 0 1\nM 0 1")
    outcomes = StimBackend(seed=0)(sc, 2000)
    assert outcomes.shape == (2000,)
    assert outcomes.dtype == np.int64
    assert set(np.unique(outcomes)) <= {0, 3}
    assert abs(np.mean(outcomes == 0) - 0.5) < 0.05


def test_stim_deterministic_circuit():
    sc = stim.Circuit("X 1\nM 0 1")
    np.testing.assert_array_equal(StimBackend(seed=1)(sc, 10), np.full(10, 1))


def test_stim_seed_reproducible():
    sc = stim.Circuit("H 0\nM 0")
    a = StimBackend(seed=42)(sc, 500)
    b = StimBackend(seed=42)(sc, 500)
    np.testing.assert_array_equal(a, b)


def test_stim_requires_measurements():
    with pytest.raises(ValueError):
        StimBackend(seed=0)(stim.Circuit("H 0"), 10)


# ── Simulated distributions ───────────────────────────────────────────────────


def test_bernoulli_frequency():
    outcomes = BernoulliBackend(0.3, seed=0)(None, 100_000)
    assert abs(np.mean(outcomes == 0) - 0.3) < 0.005


def test_bernoulli_constant_noise_flips():
    """p = 1: every reading 0 unless flipped with probability 1 - q."""
    backend = BernoulliBackend(1.0, noise=0.9, seed=1)
    assert isinstance(backend.noise, ConstantNoise)
    outcomes = backend(None, 100_000)
    assert abs(np.mean(outcomes) - 0.1) < 0.005
    assert backend.shots_drawn == 100_000


def test_bernoulli_time_noise_clock_advances():
    backend = BernoulliBackend(1.0, noise=TimeIncreasingNoise(b0=1.0), seed=2)
    backend(None, 50)
    assert backend.shots_drawn == 50
    # K >= 51 gates: flip probability 0.5 (1 - e^{-51}) is 0.5.
    late = backend(None, 20_000)
    assert abs(np.mean(late) - 0.5) < 0.02


def test_bernoulli_ignores_circuit():
    a = BernoulliBackend(0.5, seed=3)("anything", 100)
    b = BernoulliBackend(0.5, seed=3)(None, 100)
    np.testing.assert_array_equal(a, b)


def test_multinomial_frequencies():
    probs = [0.5, 0.25, 0.25, 0.0]
    outcomes = MultinomialBackend(probs, seed=4)(None, 100_000)
    counts = np.bincount(outcomes, minlength=4)
    assert counts[3] == 0
    np.testing.assert_allclose(counts / counts.sum(), probs, atol=0.01)


@pytest.mark.parametrize(
    "make",
    [
        lambda: BernoulliBackend(1.2),
        lambda: BernoulliBackend(0.5, noise=0.3),
        lambda: BernoulliBackend(0.5, noise="loud"),
        lambda: MultinomialBackend([1.0]),
        lambda: MultinomialBackend([0.5, 0.6]),
        lambda: MultinomialBackend([1.2, -0.2]),
    ],
)
def test_invalid_backend_parameters(make):
    with pytest.raises(InvalidParameter):
        make()
