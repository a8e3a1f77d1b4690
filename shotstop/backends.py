"""
Sampling backends that follow the engine's backend contract:

    backend(circuit, n_shots) -> int64 array of n_shots outcomes in [0, L - 1]

StimBackend runs a stim.Circuit's measurement sampler and folds each shot's
measurement bits into a joint-state index (first measurement = most
significant bit, so '01' is outcome 1). BernoulliBackend and
MultinomialBackend simulate a known distribution, with optional readout
noise, for testing and planning; they ignore the circuit argument.
"""

from __future__ import annotations

import numpy as np
import stim

from .errors import InvalidParameter
from .noise import ConstantNoise, NoiseModel, TimeIncreasingNoise


def bits_to_outcomes(bits: np.ndarray) -> np.ndarray:
    """
    Fold an (n_shots, M) bit array into joint-state indices.

    Column 0 is the most significant bit.
    """
    bits = np.asarray(bits)
    if bits.ndim != 2:
        raise ValueError(f"bits must be two-dimensional, got shape {bits.shape}")
    m = bits.shape[1]
    weights = np.left_shift(1, np.arange(m - 1, -1, -1, dtype=np.int64))
    return bits.astype(np.int64) @ weights


def _fidelities(noise: NoiseModel, shots_done: int, n_shots: int) -> np.ndarray:
    """Per-shot fidelity q for shots shots_done+1 .. shots_done+n_shots."""
    if isinstance(noise, ConstantNoise):
        return np.full(n_shots, noise.q)
    if noise.accumulate:
        elapsed = (shots_done + np.arange(1, n_shots + 1)) * noise.gates_per_shot
    else:
        elapsed = np.full(n_shots, noise.gates_per_shot)
    return 0.5 * (1.0 + np.exp(-noise.b0 * elapsed))


# ── Stim ──────────────────────────────────────────────────────────────────────


class StimBackend:
    """
    Measurement sampling through Stim.

    Each call compiles the circuit's sampler with a fresh seed drawn from
    the backend's generator, so runs are reproducible for a fixed seed.

    Example::

        sc = stim.Circuit('''
            H 0
            CX 0 1
            M 0 1
        ''')
        outcomes = StimBackend(seed=0)(sc, 1_000)   # values in {0, 3}
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = np.random.default_rng(seed)

    def __call__(self, circuit: stim.Circuit, n_shots: int) -> np.ndarray:
        if circuit.num_measurements == 0:
            raise ValueError("StimBackend requires a circuit with at least one measurement")
        seed = int(self._rng.integers(0, np.iinfo(np.int64).max))
        sampler = circuit.compile_sampler(seed=seed)
        return bits_to_outcomes(sampler.sample(shots=n_shots))


# ── Simulated distributions ───────────────────────────────────────────────────


class BernoulliBackend:
    """
    Single simulated qubit: outcome 0 with probability p.

    Args:
        p:      True P(outcome 0).
        noise:  Optional readout noise: a fidelity q (float) or a noise model.
                A TimeIncreasingNoise clock advances with every shot drawn.
        seed:   RNG seed.
    """

    def __init__(
        self,
        p: float,
        noise: float | NoiseModel | None = None,
        seed: int | None = None,
    ) -> None:
        if not 0.0 <= p <= 1.0:
            raise InvalidParameter(f"p must lie in [0, 1], got {p!r}")
        if isinstance(noise, (int, float)):
            noise = ConstantNoise(float(noise))
        if noise is not None and not isinstance(noise, (ConstantNoise, TimeIncreasingNoise)):
            raise InvalidParameter(f"unsupported noise model {type(noise).__name__}")
        self.p = p
        self.noise = noise
        self.shots_drawn = 0
        self._rng = np.random.default_rng(seed)

    def __call__(self, circuit, n_shots: int) -> np.ndarray:
        outcomes = (self._rng.random(n_shots) >= self.p).astype(np.int64)
        if self.noise is not None:
            q = _fidelities(self.noise, self.shots_drawn, n_shots)
            outcomes ^= (self._rng.random(n_shots) >= q).astype(np.int64)
        self.shots_drawn += n_shots
        return outcomes


class MultinomialBackend:
    """
    Simulated joint states: outcome l with probability probs[l].

    Args:
        probs:  Length-L probabilities summing to 1.
        seed:   RNG seed.
    """

    def __init__(self, probs, seed: int | None = None) -> None:
        probs = np.asarray(probs, dtype=np.float64)
        if probs.ndim != 1 or probs.size < 2:
            raise InvalidParameter("probs must be a vector of at least 2 probabilities")
        if np.any(probs < 0) or not np.isclose(probs.sum(), 1.0):
            raise InvalidParameter("probs must be non-negative and sum to 1")
        self.probs = probs / probs.sum()
        self._rng = np.random.default_rng(seed)

    def __call__(self, circuit, n_shots: int) -> np.ndarray:
        return self._rng.choice(self.probs.size, size=n_shots, p=self.probs).astype(np.int64)
