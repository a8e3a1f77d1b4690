"""
Sequential stopping rule: draw shots until |estimate - truth| <= Δ holds with
probability >= 1 - γ.

State machine (one instance per estimation run):

    NOT_STARTED ─▶ SAMPLING ─▶ DECIDING ─┬─▶ CONTINUE ─▶ SAMPLING ...
                                         └─▶ STOPPED

Stopping predicate after every batch, with S = #outcome-0, F = N - S:

    single qubit        N >= max(N_min(Δ, γ),  (S·F)^(1/3) · H(γ, Δ))
    with f(p)           N >= max(N_min(Δ, γ),  D^(2/3) (S·F)^(1/3) · H(γ, Δ))
                        D = f'(p̂) or (f(p̂+Δ) - f(p̂-Δ)) / 2Δ
    with readout noise  (S·F) is replaced by N²·v, v the per-shot variance of
                        the bias-corrected estimator
    L = 2^K states      γ_L = γ/L (Bonferroni),
                        N >= max(N_min(Δ, γ_L), max_l (S_l·F_l)^(1/3) · H(γ_L, Δ))
    L states with f     N >= max(N_min(Δ, γ_L), (N² Σ_l g_l² p̂_l(1-p̂_l))^(1/3) · H(γ, Δ))

Below N_min shots are drawn unconditionally. Coarser batches can overshoot
the target but never stop below it.

The sampling backend is any callable ``backend(circuit, n_shots)`` returning
n_shots integer outcomes in [0, L - 1]. Anything else (an exception, a short
or long batch, out-of-range outcomes) is a BackendError: the run moves to
STOPPED with ``error`` set and the failed batch is not counted.

Example:
    >>> from shotstop import StoppingConfig, SequentialEstimator, BernoulliBackend
    >>> cfg = StoppingConfig(delta=0.01, gamma=0.1)
    >>> result = SequentialEstimator(cfg).run(BernoulliBackend(p=0.3, seed=0), None)
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .capacity import worst_case_samples
from .derived import DerivedFunction, as_derived
from .errors import (
    BackendError,
    DegenerateNoise,
    DegenerateNoiseWarning,
    InvalidParameter,
    PrecisionWarning,
)
from .noise import BiasCorrector, ConstantNoise, NoiseModel, TimeIncreasingNoise
from .precision import PrecisionRequest
from .tally import OutcomeTally, StatesProportions


DEFAULT_MAX_BATCH = 100_000
DEFAULT_DEGENERATE_EPSILON = 1e-3


# ── Configuration ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StoppingConfig:
    """
    Immutable parameters of one estimation run.

    Attributes:
        delta:              Target absolute error Δ.
        gamma:              Tolerated failure probability γ.
        n_qubits:           K measured qubits; L = 2^K joint outcomes.
                            K = 1 is the single-proportion case.
        noise:              ConstantNoise / TimeIncreasingNoise, or None.
                            Single-qubit runs only.
        batch_size:         Fixed shots per backend call. None -> adaptive:
                            fill up to N_min, then request the shortfall
                            ceil(N_target - N), capped at max_batch.
        max_batch:          Cap on adaptive batch sizes.
        max_shots:          Optional hard limit; reaching it ends the run with
                            forced_stop=True.
        degenerate_epsilon: Smallest allowed |q - 0.5| for bias correction.
        allow_uncorrected:  On DegenerateNoise, warn and fall back to the
                            uncorrected average instead of failing.
        verbose:            Print planning constants and per-batch progress.
    """

    delta: float
    gamma: float
    n_qubits: int = 1
    noise: NoiseModel | None = None
    batch_size: int | None = None
    max_batch: int = DEFAULT_MAX_BATCH
    max_shots: int | None = None
    degenerate_epsilon: float = DEFAULT_DEGENERATE_EPSILON
    allow_uncorrected: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        PrecisionRequest(self.delta, self.gamma)
        if not isinstance(self.n_qubits, int) or self.n_qubits < 1:
            raise InvalidParameter(f"n_qubits must be a positive integer, got {self.n_qubits!r}")
        if self.noise is not None:
            if not isinstance(self.noise, (ConstantNoise, TimeIncreasingNoise)):
                raise InvalidParameter(
                    f"noise must be ConstantNoise or TimeIncreasingNoise, "
                    f"got {type(self.noise).__name__}"
                )
            if self.n_qubits > 1:
                raise InvalidParameter(
                    "readout-noise correction is only defined for a single qubit"
                )
        if self.batch_size is not None and self.batch_size < 1:
            raise InvalidParameter(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_batch < 1:
            raise InvalidParameter(f"max_batch must be >= 1, got {self.max_batch}")
        if self.max_shots is not None and self.max_shots < 1:
            raise InvalidParameter(f"max_shots must be >= 1, got {self.max_shots}")
        if not 0.0 < self.degenerate_epsilon < 0.5:
            raise InvalidParameter(
                f"degenerate_epsilon must lie in (0, 0.5), got {self.degenerate_epsilon}"
            )

    @property
    def n_outcomes(self) -> int:
        return 2**self.n_qubits

    @property
    def precision(self) -> PrecisionRequest:
        return PrecisionRequest(self.delta, self.gamma)


class EngineState(Enum):
    NOT_STARTED = "not_started"
    SAMPLING = "sampling"
    DECIDING = "deciding"
    CONTINUE = "continue"
    STOPPED = "stopped"


# ── Result dataclasses ────────────────────────────────────────────────────────


@dataclass
class StoppingDecision:
    """
    Outcome of evaluating the stopping predicate at a batch boundary.

    Attributes:
        stop:        True once N >= max(n_min, n_target).
        n:           Shots so far.
        counts:      int64 array of shape (L,).
        estimate:    f(p̂) if a function is set; else p̂ (single qubit) or the
                     p̂ vector (L states). None before the first shot.
        proportion:  Outcome-0 proportion (bias-corrected when noise is set);
                     None for L > 2 or N = 0.
        variance:    Estimated variance of ``estimate`` (scalar or vector).
        derivative:  f'(p̂) or ∇f(p̂) used for the bound; None without f.
        corrected:   True if the readout-noise correction was applied.
        n_min:       Degenerate-run floor.
        n_target:    Adaptive bound at the current tally.
    """

    stop: bool
    n: int
    counts: np.ndarray
    estimate: float | np.ndarray | None
    proportion: float | None
    variance: float | np.ndarray | None
    derivative: float | np.ndarray | None
    corrected: bool
    n_min: int
    n_target: float

    def __repr__(self) -> str:
        return (
            f"StoppingDecision(stop={self.stop}, n={self.n}, "
            f"n_min={self.n_min}, n_target={self.n_target:.1f})"
        )


@dataclass
class StoppingResult:
    """
    Final state of a sequential estimation run.

    Attributes:
        estimate:     f(p̂), p̂, or the p̂ vector (see StoppingDecision).
        proportion:   Outcome-0 proportion (bias-corrected if noise is set);
                      None for L > 2.
        proportions:  Raw observed proportion of each of the L outcomes.
        counts:       int64 array of shape (L,).
        n_shots:      Total shots consumed.
        n_batches:    Backend calls made by run().
        variance:     Estimated variance of ``estimate``.
        derivative:   f'(p̂) / ∇f(p̂) at the end, or None.
        corrected:    Readout-noise correction applied.
        n_min:        Degenerate-run floor.
        n_target:     Adaptive bound at the final tally.
        forced_stop:  True if max_shots ended the run before the rule held.
        states:       Labelled per-state proportions.
    """

    estimate: float | np.ndarray
    proportion: float | None
    proportions: np.ndarray
    counts: np.ndarray
    n_shots: int
    n_batches: int
    variance: float | np.ndarray
    derivative: float | np.ndarray | None
    corrected: bool
    n_min: int
    n_target: float
    forced_stop: bool
    states: StatesProportions

    @property
    def std_error(self) -> float | np.ndarray:
        return np.sqrt(self.variance)

    def __repr__(self) -> str:
        if np.ndim(self.estimate) == 0:
            value = f"{float(self.estimate):.6f} ± {float(self.std_error):.6f}"
        else:
            value = np.array2string(np.asarray(self.estimate), precision=4)
        return (
            f"StoppingResult(estimate={value}, n_shots={self.n_shots}, "
            f"n_batches={self.n_batches}, forced_stop={self.forced_stop})"
        )


# ── Engine ────────────────────────────────────────────────────────────────────


class SequentialEstimator:
    """
    Stopping-rule engine for one estimation run.

    Args:
        config:  StoppingConfig.
        func:    Optional derived quantity: a callable or DerivedFunction.
        counts:  Optional tally persisted from an earlier run of the same
                 circuit; the shots are taken as the first N of the run (this
                 fixes the elapsed time K for TimeIncreasingNoise).

    Use run(backend, circuit) for the full loop, or observe(outcomes) to feed
    externally drawn batches one at a time.
    """

    def __init__(
        self,
        config: StoppingConfig,
        func: DerivedFunction | None = None,
        counts=None,
    ) -> None:
        self.config = config
        self.func = as_derived(func)
        self._precision = config.precision
        self._multinomial = config.n_qubits > 1
        L = config.n_outcomes
        # Per-outcome request: Bonferroni split for L > 2.
        self.outcome_precision = (
            self._precision.split(L) if self._multinomial else self._precision
        )
        self.n_min = self.outcome_precision.n_min

        self._tally = OutcomeTally(L, counts)
        self._corrector = (
            BiasCorrector(config.degenerate_epsilon) if config.noise is not None else None
        )
        n = self._tally.n
        self._fidelity_sum = (
            n * config.noise.mean_fidelity(0, n) if config.noise is not None else 0.0
        )
        self._warned_uncorrected = False
        self._last: StoppingDecision | None = None
        self.n_batches = 0
        self.state = EngineState.NOT_STARTED
        self.error: Exception | None = None

    # ── Inspection ────────────────────────────────────────────────────────────

    @property
    def tally(self) -> OutcomeTally:
        return self._tally

    @property
    def elapsed(self) -> int:
        """Elapsed gate count K at the last shot (0 without time-dependent noise)."""
        noise = self.config.noise
        if isinstance(noise, TimeIncreasingNoise) and self._tally.n > 0:
            return noise.elapsed(self._tally.n)
        return 0

    @property
    def mean_fidelity(self) -> float | None:
        if self.config.noise is None or self._tally.n == 0:
            return None
        return self._fidelity_sum / self._tally.n

    # ── Predicate ─────────────────────────────────────────────────────────────

    def decide(self) -> StoppingDecision:
        """Evaluate the stopping predicate at the current tally."""
        n = self._tally.n
        if n == 0:
            return StoppingDecision(
                stop=False, n=0, counts=self._tally.counts, estimate=None,
                proportion=None, variance=None, derivative=None,
                corrected=False, n_min=self.n_min, n_target=math.inf,
            )
        if self._multinomial:
            decision = self._decide_joint()
        else:
            decision = self._decide_single()
        decision.stop = n >= self.n_min and n >= decision.n_target
        return decision

    def _corrected_proportion(self) -> tuple[float, float, bool]:
        """(p̂, per-shot variance, corrected) for the single-qubit case."""
        n = self._tally.n
        p_raw = self._tally.successes / n
        if self._corrector is not None:
            q = self._fidelity_sum / n
            try:
                p = self._corrector.correct(p_raw, q)
            except DegenerateNoise:
                if not self.config.allow_uncorrected:
                    raise
                if not self._warned_uncorrected:
                    warnings.warn(
                        f"Mean channel fidelity q={q:.6g} is too close to 0.5; "
                        f"reporting the uncorrected average.",
                        DegenerateNoiseWarning,
                        stacklevel=3,
                    )
                    self._warned_uncorrected = True
            else:
                p = min(max(p, 0.0), 1.0)
                return p, self._corrector.shot_variance(p, q), True
        return p_raw, p_raw * (1.0 - p_raw), False

    def _decide_single(self) -> StoppingDecision:
        n = self._tally.n
        h = self._precision.h
        p, shot_var, corrected = self._corrected_proportion()

        if corrected:
            spread = n * n * shot_var
        else:
            spread = float(self._tally.successes * self._tally.failures)

        if self.func is None:
            estimate, derivative, scale = p, None, 1.0
        else:
            estimate = self.func.apply(p)
            derivative = self.func.slope(p, self.config.delta)
            scale = abs(derivative) ** (2.0 / 3.0)

        n_target = scale * spread ** (1.0 / 3.0) * h
        variance = shot_var / n if derivative is None else derivative**2 * shot_var / n
        return StoppingDecision(
            stop=False, n=n, counts=self._tally.counts, estimate=estimate,
            proportion=p, variance=variance, derivative=derivative,
            corrected=corrected, n_min=self.n_min, n_target=n_target,
        )

    def _decide_joint(self) -> StoppingDecision:
        n = self._tally.n
        counts = self._tally.counts
        p = self._tally.proportions
        variances = self._tally.variances

        if self.func is None:
            spread = counts * (n - counts)
            n_target = float(np.max(np.cbrt(spread.astype(np.float64)))) * self.outcome_precision.h
            estimate, variance, derivative = p, variances, None
        else:
            derivative = self.func.gradient(p, self.config.delta)
            shot_var = float(np.sum(derivative**2 * p * (1.0 - p)))
            n_target = (n * n * shot_var) ** (1.0 / 3.0) * self._precision.h
            estimate = self.func.apply(p)
            variance = shot_var / n
        return StoppingDecision(
            stop=False, n=n, counts=counts, estimate=estimate, proportion=None,
            variance=variance, derivative=derivative, corrected=False,
            n_min=self.n_min, n_target=n_target,
        )

    # ── Transitions ───────────────────────────────────────────────────────────

    def _fail(self, exc: Exception) -> None:
        self.state = EngineState.STOPPED
        self.error = exc

    def _guarded_decide(self) -> StoppingDecision:
        """decide(), moving the run to STOPPED with ``error`` set if it raises."""
        try:
            return self.decide()
        except Exception as exc:
            self._fail(exc)
            raise

    def observe(self, outcomes) -> StoppingDecision:
        """
        Add one batch of outcomes and evaluate the stopping rule.

        Raises:
            BackendError:    empty or malformed batch (tally unchanged, run STOPPED).
            DegenerateNoise: q too close to 0.5 and allow_uncorrected=False.

        Any other exception from evaluating the predicate (e.g. raised by the
        derived function) also leaves the run STOPPED with ``error`` set.
        """
        if self.state is EngineState.STOPPED:
            raise RuntimeError("estimator has already stopped; start a new run")
        self.state = EngineState.SAMPLING
        n_before = self._tally.n
        try:
            if np.size(outcomes) == 0:
                raise BackendError("empty batch: the backend returned no outcomes")
            self._tally.update(outcomes)
        except BackendError as exc:
            self._fail(exc)
            raise
        n_new = self._tally.n - n_before
        if self.config.noise is not None and n_new > 0:
            self._fidelity_sum += n_new * self.config.noise.mean_fidelity(n_before, n_new)

        self.state = EngineState.DECIDING
        decision = self._guarded_decide()
        self._last = decision
        self.state = EngineState.STOPPED if decision.stop else EngineState.CONTINUE
        return decision

    def next_batch_size(self, decision: StoppingDecision | None = None) -> int:
        """Shots to request next under the batch policy."""
        cfg = self.config
        n = self._tally.n
        if cfg.batch_size is not None:
            size = cfg.batch_size
        elif n < self.n_min:
            size = min(self.n_min - n, cfg.max_batch)
        else:
            if decision is None:
                decision = self.decide()
            size = min(max(math.ceil(decision.n_target - n), 1), cfg.max_batch)
        if cfg.max_shots is not None:
            size = min(size, cfg.max_shots - n)
        return size

    # ── Main loop ─────────────────────────────────────────────────────────────

    def _draw(self, backend, circuit, n_shots: int) -> np.ndarray:
        """
        One backend call, checked against the batch contract.

        Only the backend call itself is wrapped: any Exception it raises
        becomes a BackendError chained to the original. BaseExceptions such
        as KeyboardInterrupt propagate unchanged.
        """
        try:
            raw = backend(circuit, n_shots)
        except Exception as exc:  # backend call only
            err = BackendError(f"sampling backend failed: {exc!r}")
            self._fail(err)
            raise err from exc
        outcomes = np.asarray(raw)
        if outcomes.ndim != 1 or outcomes.shape[0] != n_shots:
            err = BackendError(
                f"sampling backend returned shape {outcomes.shape} "
                f"for a request of {n_shots} shots"
            )
            self._fail(err)
            raise err
        return outcomes

    def run(self, backend, circuit) -> StoppingResult:
        """
        Sample from ``backend(circuit, n_shots)`` until the rule is met.

        Returns:
            StoppingResult with the final estimate and tally.
        """
        if self.state is EngineState.STOPPED:
            raise RuntimeError("estimator has already stopped; start a new run")
        cfg = self.config
        if cfg.verbose:
            self._print_header()

        decision = self._guarded_decide()
        forced = False
        if decision.stop:
            self.state = EngineState.STOPPED
        while not decision.stop:
            if cfg.max_shots is not None and self._tally.n >= cfg.max_shots:
                forced = True
                self.state = EngineState.STOPPED
                warnings.warn(
                    f"max_shots={cfg.max_shots} reached before the stopping rule "
                    f"held (n_target={decision.n_target:.0f}).",
                    PrecisionWarning,
                    stacklevel=2,
                )
                break
            n_shots = self.next_batch_size(decision)
            self.state = EngineState.SAMPLING
            outcomes = self._draw(backend, circuit, n_shots)
            decision = self.observe(outcomes)
            self.n_batches += 1
            if cfg.verbose:
                self._print_batch(decision)

        result = self._result(decision, forced)
        if cfg.verbose:
            print(f"stopped: {result}")
        return result

    def _result(self, decision: StoppingDecision, forced: bool) -> StoppingResult:
        tally = self._tally
        return StoppingResult(
            estimate=decision.estimate,
            proportion=decision.proportion,
            proportions=tally.proportions,
            counts=tally.counts,
            n_shots=tally.n,
            n_batches=self.n_batches,
            variance=decision.variance,
            derivative=decision.derivative,
            corrected=decision.corrected,
            n_min=self.n_min,
            n_target=decision.n_target,
            forced_stop=forced,
            states=tally.states_proportions(),
        )

    # ── Verbose output ────────────────────────────────────────────────────────

    def _print_header(self) -> None:
        cfg = self.config
        req = self.outcome_precision
        n_worst = worst_case_samples(cfg.delta, cfg.gamma, n_outcomes=cfg.n_outcomes)
        print(
            f"delta={cfg.delta:g}  gamma={cfg.gamma:g}  outcomes={cfg.n_outcomes}  "
            f"gamma_per_outcome={req.gamma:.4g}"
        )
        print(
            f"  z={req.z:.4f}  H={req.h:.2f}  n_min={self.n_min}  "
            f"worst-case fixed sample={n_worst:,.0f}"
        )

    def _print_batch(self, decision: StoppingDecision) -> None:
        if np.ndim(decision.estimate) == 0:
            est = f"{float(decision.estimate):.6f}"
        else:
            est = np.array2string(np.asarray(decision.estimate), precision=4)
        print(
            f"  batch {self.n_batches:>4d}: n={decision.n:,}  estimate={est}  "
            f"target={max(decision.n_target, decision.n_min):,.0f}"
        )


# ── Functional interface ──────────────────────────────────────────────────────


def sequential_estimate(
    backend,
    circuit,
    func=None,
    *,
    delta: float,
    gamma: float,
    noise: NoiseModel | None = None,
    verbose: bool = False,
    **options,
) -> StoppingResult:
    """
    Run ``circuit`` on ``backend`` until f(p̂) (or p̂) is within delta of the
    truth with probability at least 1 - gamma.

    Equivalent to
    ``SequentialEstimator(StoppingConfig(delta, gamma, noise=noise, verbose=verbose,
    **options), func).run(backend, circuit)``.

    Args:
        backend:  Callable ``backend(circuit, n_shots)`` -> n_shots outcomes.
        circuit:  Opaque descriptor passed through to the backend.
        func:     Optional derived quantity (callable or DerivedFunction).
        delta:    Target absolute error.
        gamma:    Failure probability.
        noise:    Optional readout-noise model.
        verbose:  Print progress.
        options:  Other StoppingConfig fields (n_qubits, batch_size, ...).

    Returns:
        StoppingResult.
    """
    config = StoppingConfig(
        delta=delta, gamma=gamma, noise=noise, verbose=verbose, **options
    )
    return SequentialEstimator(config, func).run(backend, circuit)
