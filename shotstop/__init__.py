"""
shotstop: sequential shot-count control for estimating measured proportions.

Draws shots from a sampling backend until the estimate of p = P(outcome 0)
(or of all 2^K joint-state proportions, or of a differentiable f of them)
is within Δ of the truth with probability at least 1 - γ:

    - Stopping rule N >= max(N_min, (S·F)^(1/3) · H(γ, Δ)), H = (z/Δ)^(2/3).
    - Degenerate-run floor N_min = ceil(log(1-γ)/log(1-Δ)).
    - Derived quantities f(p̂) via the delta method (analytic or
      finite-difference derivative).
    - Bonferroni split γ/L for L = 2^K joint states.
    - Bias correction for symmetric readout noise, constant or growing
      with elapsed gate count.
    - Offline capacity report (worst-case and typical shot counts).

Simulated qubit:
    >>> from shotstop import BernoulliBackend, sequential_estimate
    >>> result = sequential_estimate(BernoulliBackend(p=0.3, seed=0), None,
    ...                              delta=0.01, gamma=0.1)

Stim circuit, amplitude alpha = sqrt(p):
    >>> import numpy as np, stim
    >>> from shotstop import StimBackend
    >>> sc = stim.Circuit("H 0\\nM 0")
    >>> result = sequential_estimate(StimBackend(seed=1), sc, np.sqrt,
    ...                              delta=0.01, gamma=0.05)

Planning:
    >>> from shotstop import capacity_report
    >>> print(capacity_report(1e-4, 0.05, shot_time=1e-4))
"""

from .errors import (
    ShotstopError,
    InvalidParameter,
    BackendError,
    DegenerateNoise,
    DegenerateNoiseWarning,
    PrecisionWarning,
)
from .precision import PrecisionRequest, z_value, h_constant, minimum_samples
from .tally import OutcomeTally, StatesProportions, state_labels
from .noise import ConstantNoise, TimeIncreasingNoise, BiasCorrector
from .derived import DerivedFunction, as_derived
from .capacity import (
    CapacityReport,
    Scenario,
    capacity_report,
    expected_samples,
    sample_size,
    worst_case_samples,
)
from .engine import (
    EngineState,
    SequentialEstimator,
    StoppingConfig,
    StoppingDecision,
    StoppingResult,
    sequential_estimate,
)
from .backends import BernoulliBackend, MultinomialBackend, StimBackend, bits_to_outcomes

__all__ = [
    # Errors
    "ShotstopError",
    "InvalidParameter",
    "BackendError",
    "DegenerateNoise",
    "DegenerateNoiseWarning",
    "PrecisionWarning",
    # Precision constants
    "PrecisionRequest",
    "z_value",
    "h_constant",
    "minimum_samples",
    # Tally
    "OutcomeTally",
    "StatesProportions",
    "state_labels",
    # Noise
    "ConstantNoise",
    "TimeIncreasingNoise",
    "BiasCorrector",
    # Derived quantities
    "DerivedFunction",
    "as_derived",
    # Capacity report
    "CapacityReport",
    "Scenario",
    "capacity_report",
    "expected_samples",
    "sample_size",
    "worst_case_samples",
    # Stopping rule
    "EngineState",
    "SequentialEstimator",
    "StoppingConfig",
    "StoppingDecision",
    "StoppingResult",
    "sequential_estimate",
    # Backends
    "BernoulliBackend",
    "MultinomialBackend",
    "StimBackend",
    "bits_to_outcomes",
]
