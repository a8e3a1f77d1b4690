"""
Precision constants for the sequential stopping rule.

For a target absolute error Δ and failure probability γ:

    z         = Φ⁻¹(1 - γ/2)                       (inverse normal CDF)
    H(γ, Δ)   = (z / Δ)^(2/3)
    N_min     = ceil( log(1 - γ) / log(1 - Δ) )

Sampling stops once N >= (S·F)^(1/3) · H(γ, Δ), which is the cube-root form of
N >= p̂(1 - p̂) · (z/Δ)² with p̂ = S/N.

N_min guards against short degenerate runs: if p = Δ (or 1 - Δ), a run of N
identical outcomes has probability (1 - Δ)^N, and the rule must not claim
p = 0 (or 1) with probability above 1 - γ.

Example (Δ = 0.0001, γ = 0.05):
    >>> req = PrecisionRequest(delta=1e-4, gamma=0.05)
    >>> round(req.h)
    727
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from scipy import stats

from .errors import InvalidParameter


def _validate(delta: float, gamma: float) -> None:
    if not (math.isfinite(delta) and 0.0 < delta < 1.0):
        raise InvalidParameter(f"delta must lie in (0, 1), got {delta!r}")
    if not (math.isfinite(gamma) and 0.0 < gamma < 1.0):
        raise InvalidParameter(f"gamma must lie in (0, 1), got {gamma!r}")


# ── Pure functions ────────────────────────────────────────────────────────────


def z_value(gamma: float) -> float:
    """Two-sided normal quantile z = Φ⁻¹(1 - γ/2)."""
    if not (math.isfinite(gamma) and 0.0 < gamma < 1.0):
        raise InvalidParameter(f"gamma must lie in (0, 1), got {gamma!r}")
    return float(stats.norm.ppf(1.0 - gamma / 2.0))


def h_constant(delta: float, gamma: float) -> float:
    """H(γ, Δ) = (z / Δ)^(2/3)."""
    _validate(delta, gamma)
    return (z_value(gamma) / delta) ** (2.0 / 3.0)


def minimum_samples(delta: float, gamma: float) -> int:
    """Degenerate-run floor N_min = ceil(log(1 - γ) / log(1 - Δ)), at least 1."""
    _validate(delta, gamma)
    return max(1, math.ceil(math.log1p(-gamma) / math.log1p(-delta)))


# ── Immutable request ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PrecisionRequest:
    """
    Target precision: |estimate - truth| <= delta with probability >= 1 - gamma.

    Attributes:
        delta:  Absolute error Δ, in (0, 1).
        gamma:  Failure probability γ, in (0, 1).
    """

    delta: float
    gamma: float

    def __post_init__(self) -> None:
        _validate(self.delta, self.gamma)

    @property
    def z(self) -> float:
        return z_value(self.gamma)

    @property
    def h(self) -> float:
        return h_constant(self.delta, self.gamma)

    @property
    def n_min(self) -> int:
        return minimum_samples(self.delta, self.gamma)

    def split(self, n_outcomes: int) -> "PrecisionRequest":
        """
        Bonferroni split of the failure probability across n_outcomes estimates.

        Returns a request with gamma / n_outcomes and the same delta.
        """
        if n_outcomes < 1:
            raise InvalidParameter(f"n_outcomes must be >= 1, got {n_outcomes}")
        return PrecisionRequest(self.delta, self.gamma / n_outcomes)

    def __repr__(self) -> str:
        return (
            f"PrecisionRequest(delta={self.delta:g}, gamma={self.gamma:g}, "
            f"z={self.z:.4f}, H={self.h:.2f}, n_min={self.n_min})"
        )
