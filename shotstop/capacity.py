"""
Offline sample-count planning for the sequential stopping rule.

Nothing here draws shots. For a request (Δ, γ):

    N_worst = (z / 2Δ)^2                 fixed-size bound at p = 1/2
    N_min   = ceil(log(1 - γ) / log(1 - Δ))

and the expected stopping point of the sequential rule at a given p follows
from S·F ≈ N² p(1 - p):

    N = (N² p(1 - p))^(1/3) · H   =>   N = p(1 - p) · H^3

so p = 1/2 stops near H^3 / 4 (= N_worst) and p = 1/4 near 3 H^3 / 16.

For K measured qubits the per-state risk is γ / 2^K (Bonferroni).

Published tables round z down to two decimals (z = 1.95 for γ = 0.05, giving
N_worst = 95,062,500 at Δ = 0.0001); pass z_decimals=2 to reproduce them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .errors import InvalidParameter
from .precision import PrecisionRequest


def _request(delta: float, gamma: float, n_outcomes: int) -> PrecisionRequest:
    if n_outcomes < 2:
        raise InvalidParameter(f"n_outcomes must be >= 2, got {n_outcomes}")
    req = PrecisionRequest(delta, gamma)
    return req.split(n_outcomes) if n_outcomes > 2 else req


def _z(req: PrecisionRequest, z_decimals: int | None) -> float:
    z = req.z
    if z_decimals is None:
        return z
    scale = 10**z_decimals
    return math.floor(z * scale) / scale


# ── Pure functions ────────────────────────────────────────────────────────────


def worst_case_samples(
    delta: float,
    gamma: float,
    n_outcomes: int = 2,
    z_decimals: int | None = None,
) -> float:
    """Fixed-size worst case (z / 2Δ)^2, with γ / L for L > 2 outcomes."""
    req = _request(delta, gamma, n_outcomes)
    return (_z(req, z_decimals) / (2.0 * delta)) ** 2


def sample_size(delta: float, gamma: float, n_qubits: int = 1) -> int:
    """
    Shots needed, without adaptation, so that every one of the 2^K state
    proportions is within delta of its amplitude squared with probability
    at least 1 - gamma.
    """
    if n_qubits < 1:
        raise InvalidParameter(f"n_qubits must be >= 1, got {n_qubits}")
    return math.ceil(worst_case_samples(delta, gamma, n_outcomes=2**n_qubits))


def expected_samples(
    delta: float,
    gamma: float,
    p: float,
    n_outcomes: int = 2,
    z_decimals: int | None = None,
) -> float:
    """Typical stopping point p(1 - p) · H^3, never below N_min."""
    if not 0.0 <= p <= 1.0:
        raise InvalidParameter(f"p must lie in [0, 1], got {p!r}")
    req = _request(delta, gamma, n_outcomes)
    h = (_z(req, z_decimals) / delta) ** (2.0 / 3.0)
    return max(float(req.n_min), p * (1.0 - p) * h**3)


# ── Report ────────────────────────────────────────────────────────────────────


@dataclass
class Scenario:
    """Expected cost of one assumed p."""

    p: float
    n_expected: float
    fraction_of_worst: float
    seconds: float | None = None


@dataclass
class CapacityReport:
    """
    Planning figures for one (delta, gamma).

    Attributes:
        delta, gamma:   Requested precision.
        n_outcomes:     L = 2^K joint states.
        z:              Normal quantile at the per-outcome risk.
        h:              H(γ_L, Δ).
        n_min:          Degenerate-run floor.
        n_worst:        Fixed-size worst case.
        worst_seconds:  n_worst · shot_time, if shot_time was given.
        scenarios:      One Scenario per assumed p.
    """

    delta: float
    gamma: float
    n_outcomes: int
    z: float
    h: float
    n_min: int
    n_worst: float
    worst_seconds: float | None = None
    scenarios: tuple[Scenario, ...] = field(default_factory=tuple)

    def format(self) -> str:
        lines = [
            f"Sample size report: delta={self.delta:g}, gamma={self.gamma:g}, "
            f"outcomes={self.n_outcomes}",
            f"  z = {self.z:.4f}",
            f"  H = {self.h:.2f}",
            f"  minimum shots (degenerate-run floor) = {self.n_min:,}",
            f"  worst case, fixed sample size        = {self.n_worst:,.0f}"
            + _duration(self.worst_seconds),
        ]
        for s in self.scenarios:
            lines.append(
                f"  expected at p={s.p:<6g}                = {s.n_expected:,.0f}"
                f"  ({100 * s.fraction_of_worst:.1f}% of worst)" + _duration(s.seconds)
            )
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


def _duration(seconds: float | None) -> str:
    if seconds is None:
        return ""
    hours, rem = divmod(seconds, 3600.0)
    minutes, secs = divmod(rem, 60.0)
    return f"  ~{int(hours)}h{int(minutes):02d}m{secs:05.2f}s"


def capacity_report(
    delta: float,
    gamma: float,
    assumed_p=(0.5, 0.25),
    shot_time: float | None = None,
    n_qubits: int = 1,
    z_decimals: int | None = None,
) -> CapacityReport:
    """
    Report worst-case and typical shot counts without sampling.

    Args:
        delta, gamma:  Requested precision.
        assumed_p:     Proportions to report expected stopping points for.
                       With K > 1 qubits, p is the proportion of the most
                       balanced state.
        shot_time:     Seconds per shot; adds wall-clock estimates.
        n_qubits:      K; the risk is split over 2^K states.
        z_decimals:    Truncate z to this many decimals (tabulated values).

    Returns:
        CapacityReport.
    """
    if n_qubits < 1:
        raise InvalidParameter(f"n_qubits must be >= 1, got {n_qubits}")
    if shot_time is not None and not (math.isfinite(shot_time) and shot_time >= 0):
        raise InvalidParameter(f"shot_time must be >= 0, got {shot_time!r}")
    L = 2**n_qubits
    req = _request(delta, gamma, L)
    z = _z(req, z_decimals)
    n_worst = worst_case_samples(delta, gamma, L, z_decimals)

    scenarios = []
    for p in assumed_p:
        n_exp = expected_samples(delta, gamma, float(p), L, z_decimals)
        scenarios.append(
            Scenario(
                p=float(p),
                n_expected=n_exp,
                fraction_of_worst=n_exp / n_worst,
                seconds=None if shot_time is None else n_exp * shot_time,
            )
        )
    return CapacityReport(
        delta=delta,
        gamma=gamma,
        n_outcomes=L,
        z=z,
        h=(z / delta) ** (2.0 / 3.0),
        n_min=req.n_min,
        n_worst=n_worst,
        worst_seconds=None if shot_time is None else n_worst * shot_time,
        scenarios=tuple(scenarios),
    )
