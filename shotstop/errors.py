"""
Exceptions and warnings raised by shotstop.

    InvalidParameter   Bad Δ, γ, noise model or option. Raised before any
                       shot is requested.
    BackendError       The sampling backend failed or broke its contract
                       (wrong batch length, outcome out of range). Fatal to
                       the current run; never retried here.
    DegenerateNoise    The channel fidelity q is too close to 0.5 for the
                       bias correction to be usable.

Degenerate tallies (N = 0, S = 0, S = N) are expected inputs and are never
reported through these classes.
"""

from __future__ import annotations


class ShotstopError(Exception):
    """Base class for all shotstop errors."""


class InvalidParameter(ShotstopError, ValueError):
    """A precision, noise or engine parameter is out of range."""


class BackendError(ShotstopError, RuntimeError):
    """The sampling backend raised or returned a malformed batch."""


class DegenerateNoise(ShotstopError, ArithmeticError):
    """
    Channel fidelity q within epsilon of 0.5.

    The bias correction divides by (2q - 1)^2, so the requested precision is
    not reachable at the current noise level.
    """

    def __init__(self, q: float, epsilon: float) -> None:
        self.q = q
        self.epsilon = epsilon
        super().__init__(
            f"Channel fidelity q={q:.6g} is within {epsilon:g} of 0.5; "
            f"precision is not achievable at this noise level."
        )


class DegenerateNoiseWarning(UserWarning):
    """Bias correction skipped; the estimate is the uncorrected average."""


class PrecisionWarning(UserWarning):
    """The run ended (max_shots) before the stopping rule was satisfied."""
