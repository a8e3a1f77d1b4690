"""
Symmetric binary readout noise and the bias correction that undoes it.

Each reading Z_n equals the true bit X_n with probability q and its inverse
with probability 1 - q. With p = P(X_n = 0):

    P(Z_n = 0) = p(2q - 1) + (1 - q)

so the raw average of zeros is biased toward 1/2. Knowing q,

    p̂    = (Z̄ - (1 - q)) / (2q - 1)
    V(p̂) = (p + q - 2pq)(1 - p - q + 2pq) / (N (2q - 1)^2)

Two noise models share one interface:

    ConstantNoise(q)          q fixed, 0.5 < q <= 1 (1 is noiseless).
    TimeIncreasingNoise(b0)   inversion probability 0.5·(1 - exp(-B0·K)) after
                              K elapsed gates, i.e. q(K) = 0.5·(1 + exp(-B0·K)).

When q drifts from shot to shot, E[Z̄] = p(2q̄ - 1) + (1 - q̄) with q̄ the mean
fidelity over the shots, so the correction uses mean_fidelity().
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

from .errors import DegenerateNoise, InvalidParameter


# ── Noise models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConstantNoise:
    """
    Readout noise with a fixed fidelity.

    Attributes:
        q:  Probability that a reading is faithful, in (0.5, 1].
    """

    q: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.q) and 0.5 < self.q <= 1.0):
            raise InvalidParameter(f"q must lie in (0.5, 1], got {self.q!r}")

    def fidelity(self, elapsed: float = 0.0) -> float:
        return self.q

    def flip_probability(self, elapsed: float = 0.0) -> float:
        return 1.0 - self.q

    def mean_fidelity(self, shots_done: int, n_shots: int) -> float:
        return self.q


@dataclass(frozen=True)
class TimeIncreasingNoise:
    """
    Readout noise that grows with elapsed operation time.

        flip(K) = 0.5 · (1 - exp(-b0 · K))

    Attributes:
        b0:              Calibration constant B0 >= 0 (per gate).
        gates_per_shot:  Gates executed per shot.
        accumulate:      True: shot n of the run has K = n · gates_per_shot,
                         so elapsed time keeps growing across batches.
                         False: every shot has K = gates_per_shot.
    """

    b0: float
    gates_per_shot: int = 1
    accumulate: bool = True

    def __post_init__(self) -> None:
        if not (math.isfinite(self.b0) and self.b0 >= 0.0):
            raise InvalidParameter(f"b0 must be a finite value >= 0, got {self.b0!r}")
        if self.gates_per_shot < 1:
            raise InvalidParameter(
                f"gates_per_shot must be >= 1, got {self.gates_per_shot}"
            )

    def flip_probability(self, elapsed: float) -> float:
        return 0.5 * (1.0 - math.exp(-self.b0 * elapsed))

    def fidelity(self, elapsed: float) -> float:
        return 0.5 * (1.0 + math.exp(-self.b0 * elapsed))

    def elapsed(self, shot_index: int) -> int:
        """Elapsed gate count K at the given 1-based shot of the run."""
        if self.accumulate:
            return shot_index * self.gates_per_shot
        return self.gates_per_shot

    def mean_fidelity(self, shots_done: int, n_shots: int) -> float:
        """
        Mean q over shots shots_done+1 .. shots_done+n_shots.

        Closed-form geometric sum, so long runs need no per-shot arrays.
        """
        if n_shots <= 0:
            return self.fidelity(self.elapsed(shots_done + 1))
        if not self.accumulate:
            return self.fidelity(self.gates_per_shot)
        a = self.b0 * self.gates_per_shot
        if a == 0.0:
            return 1.0
        # sum_{k=s+1}^{s+n} exp(-a k) = exp(-a(s+1)) (1 - exp(-a n)) / (1 - exp(-a))
        total = math.exp(-a * (shots_done + 1)) * math.expm1(-a * n_shots) / math.expm1(-a)
        return 0.5 * (1.0 + total / n_shots)


NoiseModel = Union[ConstantNoise, TimeIncreasingNoise]


# ── Bias correction ───────────────────────────────────────────────────────────


class BiasCorrector:
    """
    Maps raw averages of noisy readings to bias-corrected estimates.

    Args:
        epsilon: Smallest allowed |q - 0.5|. Closer fidelities raise
                 DegenerateNoise since (2q - 1)^2 -> 0.
    """

    def __init__(self, epsilon: float = 1e-3) -> None:
        if not (math.isfinite(epsilon) and 0.0 < epsilon < 0.5):
            raise InvalidParameter(f"epsilon must lie in (0, 0.5), got {epsilon!r}")
        self.epsilon = epsilon

    def check(self, q: float) -> None:
        if abs(q - 0.5) < self.epsilon:
            raise DegenerateNoise(q, self.epsilon)

    def correct(self, z_bar: float, q: float) -> float:
        """Bias-corrected p̂ = (z̄ - (1 - q)) / (2q - 1)."""
        self.check(q)
        return (z_bar - (1.0 - q)) / (2.0 * q - 1.0)

    def shot_variance(self, p: float, q: float) -> float:
        """Per-shot variance of the corrected estimator at p (clipped to [0, 1])."""
        self.check(q)
        p = min(max(p, 0.0), 1.0)
        return (p + q - 2 * p * q) * (1 - p - q + 2 * p * q) / (2 * q - 1) ** 2

    def variance(self, p: float, q: float, n: int) -> float:
        """V(p̂) = (p + q - 2pq)(1 - p - q + 2pq) / (N (2q - 1)^2)."""
        return self.shot_variance(p, q) / n

    @staticmethod
    def biased_mean(p: float, q: float) -> float:
        """Limit of the uncorrected average: p(2q - 1) + (1 - q)."""
        return p * (2 * q - 1) + (1 - q)

    def __repr__(self) -> str:
        return f"BiasCorrector(epsilon={self.epsilon:g})"
