"""
Validation examples for the sequential stopping rule.

Each example runs a sequential estimate against a backend whose true
proportion is known analytically, then reports:
  1. The exact value (ground truth).
  2. The sequential estimate, its standard error and the shots consumed.

Run with:
    python -m shotstop.example
"""

from __future__ import annotations

import os
import sys

import numpy as np

# ── Make the package importable when run as a script ─────────────────────────
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import stim
from shotstop import (
    BernoulliBackend,
    ConstantNoise,
    DerivedFunction,
    MultinomialBackend,
    StimBackend,
    TimeIncreasingNoise,
    capacity_report,
    sequential_estimate,
)


# ── Formatting ────────────────────────────────────────────────────────────────

def print_result(name: str, exact, result, delta: float) -> None:
    err = np.max(np.abs(np.asarray(result.estimate) - np.asarray(exact)))
    status = "PASS" if err <= delta else "MISS"
    print(f"[{status}] {name}")
    print(f"       exact={np.round(exact, 6)}  est={np.round(result.estimate, 6)}"
          f"  |err|={err:.2e}  delta={delta:g}")
    print(f"       shots={result.n_shots:,}  batches={result.n_batches}"
          f"  n_min={result.n_min}  target={result.n_target:,.0f}")
    print()


# ── Examples ──────────────────────────────────────────────────────────────────

def example_single_qubit(p: float = 0.3, delta: float = 0.005, gamma: float = 0.05, seed: int = 0):
    """Simulated qubit with P(0) = p, estimate p directly."""
    result = sequential_estimate(
        BernoulliBackend(p, seed=seed), None, delta=delta, gamma=gamma
    )
    print_result(f"Bernoulli p={p}", p, result, delta)
    return result


def example_stim_rotation(theta: float = np.pi / 3, delta: float = 0.005, gamma: float = 0.05, seed: int = 1):
    """
    Circuit: |0> -RX(theta)- M, built from Clifford + noise in Stim as
    |0> -X_ERROR(sin^2(theta/2))- M, so P(0) = cos^2(theta/2).

    Estimates the amplitude alpha = sqrt(P(0)) = |cos(theta/2)|.
    """
    p_flip = float(np.sin(theta / 2) ** 2)
    sc = stim.Circuit(f"X_ERROR({p_flip}) 0\nM 0")
    exact = abs(np.cos(theta / 2))
    result = sequential_estimate(
        StimBackend(seed=seed), sc, DerivedFunction(np.sqrt, name="alpha"),
        delta=delta, gamma=gamma,
    )
    print_result(f"Stim amplitude alpha=|cos({theta:.4f}/2)|", exact, result, delta)
    return result


def example_bell_pair(delta: float = 0.01, gamma: float = 0.05, seed: int = 2):
    """
    Noisy Bell pair, four joint states, Bonferroni gamma/4.

    Circuit: H 0; CX 0 1; X_ERROR(p) 1; M 0 1
    P(00) = P(11) = (1-p)/2, P(01) = P(10) = p/2.
    """
    p = 0.1
    sc = stim.Circuit(f"H 0\nCX 0 1\nX_ERROR({p}) 1\nM 0 1")
    exact = np.array([(1 - p) / 2, p / 2, p / 2, (1 - p) / 2])
    result = sequential_estimate(
        StimBackend(seed=seed), sc, delta=delta, gamma=gamma, n_qubits=2
    )
    print_result("Noisy Bell pair, joint states", exact, result, delta)
    print(f"       {result.states}")
    print()
    return result


def example_parity(delta: float = 0.01, gamma: float = 0.05, seed: int = 3):
    """Function of several proportions: <ZZ> = p00 - p01 - p10 + p11."""
    probs = np.array([0.4, 0.1, 0.2, 0.3])
    signs = np.array([1.0, -1.0, -1.0, 1.0])
    zz = DerivedFunction(lambda p: float(signs @ p), derivative=lambda p: signs, name="<ZZ>")
    result = sequential_estimate(
        MultinomialBackend(probs, seed=seed), None, zz,
        delta=delta, gamma=gamma, n_qubits=2,
    )
    print_result("<ZZ> from joint states", float(signs @ probs), result, delta)
    return result


def example_constant_noise(p: float = 0.2, q: float = 0.9, delta: float = 0.01, gamma: float = 0.05, seed: int = 4):
    """Readout flips with probability 1 - q; estimate is bias-corrected."""
    noise = ConstantNoise(q)
    result = sequential_estimate(
        BernoulliBackend(p, noise=noise, seed=seed), None,
        delta=delta, gamma=gamma, noise=noise,
    )
    raw = result.proportions[0]
    print_result(f"Constant noise q={q}", p, result, delta)
    print(f"       uncorrected average={raw:.4f}  (biased toward {p * (2 * q - 1) + (1 - q):.4f})")
    print()
    return result


def example_time_noise(p: float = 0.2, b0: float = 1e-6, delta: float = 0.01, gamma: float = 0.05, seed: int = 5):
    """Readout noise growing with elapsed gate count, accumulated across the run."""
    noise = TimeIncreasingNoise(b0=b0, gates_per_shot=10)
    result = sequential_estimate(
        BernoulliBackend(p, noise=noise, seed=seed), None,
        delta=delta, gamma=gamma, noise=noise,
    )
    print_result(f"Time-increasing noise B0={b0:g}", p, result, delta)
    return result


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print("=" * 64)
    print("shotstop: sequential stopping rule validation")
    print("=" * 64)
    print()

    print(capacity_report(1e-4, 0.05, shot_time=1e-4))
    print()

    example_single_qubit()
    example_single_qubit(p=0.02)
    example_stim_rotation()
    example_bell_pair()
    example_parity()

    print("── Noise examples ──────────────────────────────────────────────")
    print()
    example_constant_noise()
    example_time_noise()

    print("Done.")
