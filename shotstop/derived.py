"""
Functions of the estimated proportion(s) and delta-method variance.

If f is continuously differentiable near the true p,

    V(f(p̂))        ≈ f'(p)^2 · V(p̂)                       (scalar)
    V(f(p̂_1..p̂_L)) ≈ sum_l (∂f/∂p_l)^2 · V(p̂_l)           (vector)

When no derivative is supplied it is estimated by a centered finite
difference with step Δ:

    D = (f(p̂ + Δ) - f(p̂ - Δ)) / 2Δ

Evaluation points are clipped to [0, 1] (f is often undefined outside, e.g.
sqrt), and the divisor is the actual distance between the two points.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

from .errors import InvalidParameter


def _finite(value, what: str) -> float:
    out = float(value)
    if not math.isfinite(out):
        raise InvalidParameter(f"{what} returned a non-finite value ({out!r})")
    return out


@dataclass(frozen=True)
class DerivedFunction:
    """
    Capability object for a derived quantity f(p).

    Attributes:
        func:        f: R -> R (single qubit) or R^L -> R (joint states).
        derivative:  Optional f'(p), or gradient vector for R^L input.
                     None -> centered finite difference.
        name:        Label used in reports.

    Example:
        >>> amp = DerivedFunction(np.sqrt, name="alpha")
        >>> round(amp.slope(0.25, step=1e-4), 4)
        1.0
    """

    func: Callable
    derivative: Callable | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if not callable(self.func):
            raise InvalidParameter("func must be callable")
        if self.derivative is not None and not callable(self.derivative):
            raise InvalidParameter("derivative must be callable or None")

    @property
    def label(self) -> str:
        if self.name is not None:
            return self.name
        return getattr(self.func, "__name__", "f")

    def apply(self, p) -> float:
        return _finite(self.func(p), self.label)

    # ── Derivatives ───────────────────────────────────────────────────────────

    def slope(self, p: float, step: float) -> float:
        """f'(p), analytic if available, else centered difference."""
        if self.derivative is not None:
            return _finite(self.derivative(p), f"{self.label}'")
        lo = max(p - step, 0.0)
        hi = min(p + step, 1.0)
        return (self.apply(hi) - self.apply(lo)) / (hi - lo)

    def gradient(self, p: np.ndarray, step: float) -> np.ndarray:
        """∇f(p) over the L proportions."""
        p = np.asarray(p, dtype=np.float64)
        if self.derivative is not None:
            grad = np.asarray(self.derivative(p), dtype=np.float64)
            if grad.shape != p.shape:
                raise InvalidParameter(
                    f"gradient of {self.label} has shape {grad.shape}, expected {p.shape}"
                )
            if not np.all(np.isfinite(grad)):
                raise InvalidParameter(f"gradient of {self.label} is not finite")
            return grad
        grad = np.empty_like(p)
        for l in range(p.size):
            up = p.copy()
            down = p.copy()
            up[l] = min(p[l] + step, 1.0)
            down[l] = max(p[l] - step, 0.0)
            grad[l] = (self.apply(up) - self.apply(down)) / (up[l] - down[l])
        return grad

    # ── Delta method ──────────────────────────────────────────────────────────

    def variance(self, p, variances, step: float) -> float:
        """
        First-order variance of f(p̂).

        Args:
            p:          p̂ (float) or p̂ vector.
            variances:  V(p̂) (float) or per-outcome V(p̂_l) vector.
            step:       Finite-difference step (Δ).
        """
        if np.ndim(p) == 0:
            return self.slope(float(p), step) ** 2 * float(variances)
        grad = self.gradient(p, step)
        return float(np.sum(grad**2 * np.asarray(variances, dtype=np.float64)))

    def __repr__(self) -> str:
        kind = "analytic" if self.derivative is not None else "finite-difference"
        return f"DerivedFunction({self.label}, derivative={kind})"


def as_derived(func) -> DerivedFunction | None:
    """Normalise None / bare callable / DerivedFunction."""
    if func is None or isinstance(func, DerivedFunction):
        return func
    if callable(func):
        return DerivedFunction(func)
    raise InvalidParameter(f"expected a callable or DerivedFunction, got {type(func).__name__}")
