"""
Running outcome counts and the plug-in proportion estimates built on them.

Single qubit (L = 2):  outcome 0 is a "success"; S = counts[0], F = N - S,
                       p̂ = S/N, V(p̂) = p̂(1 - p̂)/N.
K qubits (L = 2^K):    counts[l] for every joint state l; p̂_l = S_l/N,
                       V(p̂_l) = p̂_l(1 - p̂_l)/N.

A batch of outcomes is validated as a whole before any count moves, so
counts.sum() == n holds after every update.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import BackendError, InvalidParameter


def state_labels(n_qubits: int) -> tuple[str, ...]:
    """Bitstring label per joint state, first measured qubit leftmost."""
    return tuple(format(i, f"0{n_qubits}b") for i in range(2**n_qubits))


# ── Result dataclass ──────────────────────────────────────────────────────────


@dataclass
class StatesProportions:
    """
    Observed proportion of each joint measurement state.

    Attributes:
        labels:       Bitstring per state, e.g. ('00', '01', '10', '11').
        counts:       int64 array of shape (L,).
        proportions:  float64 array of shape (L,); NaN while n == 0.
        n:            Number of shots.
    """

    labels: tuple[str, ...]
    counts: np.ndarray
    proportions: np.ndarray
    n: int

    def as_dict(self) -> dict[str, float]:
        return {lab: float(p) for lab, p in zip(self.labels, self.proportions)}

    def __repr__(self) -> str:
        body = ", ".join(f"{lab}={p:.4f}" for lab, p in self.as_dict().items())
        return f"StatesProportions(n={self.n}, {body})"


# ── Tally ─────────────────────────────────────────────────────────────────────


class OutcomeTally:
    """
    Counts of each of L outcomes over all shots seen so far.

    Args:
        n_outcomes: L, number of distinct outcomes (2 for one qubit).
        counts:     Optional starting counts (e.g. restored from a previous
                    run). Must be non-negative integers of length L.

    Example:
        >>> t = OutcomeTally()
        >>> t.update([0, 1, 0, 0])
        >>> t.proportion
        0.75
    """

    def __init__(self, n_outcomes: int = 2, counts=None) -> None:
        if n_outcomes < 2:
            raise InvalidParameter(f"n_outcomes must be >= 2, got {n_outcomes}")
        self.n_outcomes = n_outcomes
        if counts is None:
            self._counts = np.zeros(n_outcomes, dtype=np.int64)
        else:
            arr = np.asarray(counts)
            if arr.shape != (n_outcomes,):
                raise InvalidParameter(
                    f"counts must have shape ({n_outcomes},), got {arr.shape}"
                )
            if not np.issubdtype(arr.dtype, np.integer) or np.any(arr < 0):
                raise InvalidParameter("counts must be non-negative integers")
            self._counts = arr.astype(np.int64)
        self._n = int(self._counts.sum())

    # ── Updates ───────────────────────────────────────────────────────────────

    def update(self, outcomes) -> None:
        """
        Add one batch of outcomes.

        Raises:
            BackendError: if the batch is not a flat sequence of integers in
                          [0, n_outcomes - 1]. The tally is left unchanged.
        """
        arr = np.asarray(outcomes)
        if arr.ndim != 1:
            raise BackendError(f"outcomes must be one-dimensional, got shape {arr.shape}")
        if arr.size == 0:
            return
        if arr.dtype == np.bool_:
            arr = arr.astype(np.int64)
        if not np.issubdtype(arr.dtype, np.integer):
            raise BackendError(f"outcomes must be integers, got dtype {arr.dtype}")
        if arr.min() < 0 or arr.max() >= self.n_outcomes:
            raise BackendError(
                f"outcomes must lie in [0, {self.n_outcomes - 1}], "
                f"got range [{arr.min()}, {arr.max()}]"
            )
        self._counts += np.bincount(arr, minlength=self.n_outcomes)
        self._n += int(arr.size)

    # ── Counts ────────────────────────────────────────────────────────────────

    @property
    def n(self) -> int:
        return self._n

    @property
    def counts(self) -> np.ndarray:
        return self._counts.copy()

    @property
    def successes(self) -> int:
        """S: number of outcome-0 shots."""
        return int(self._counts[0])

    @property
    def failures(self) -> int:
        """F = N - S."""
        return self._n - self.successes

    # ── Estimates ─────────────────────────────────────────────────────────────

    @property
    def proportion(self) -> float | None:
        """p̂ = S/N, or None before the first shot."""
        if self._n == 0:
            return None
        return self.successes / self._n

    @property
    def proportions(self) -> np.ndarray | None:
        if self._n == 0:
            return None
        return self._counts / self._n

    @property
    def variance(self) -> float | None:
        """Plug-in variance p̂(1 - p̂)/N of the outcome-0 proportion."""
        p = self.proportion
        if p is None:
            return None
        return p * (1.0 - p) / self._n

    @property
    def variances(self) -> np.ndarray | None:
        p = self.proportions
        if p is None:
            return None
        return p * (1.0 - p) / self._n

    def states_proportions(self) -> StatesProportions:
        n_qubits = int(np.log2(self.n_outcomes))
        if 2**n_qubits == self.n_outcomes:
            labels = state_labels(n_qubits)
        else:
            labels = tuple(str(i) for i in range(self.n_outcomes))
        props = self.proportions
        if props is None:
            props = np.full(self.n_outcomes, np.nan)
        return StatesProportions(
            labels=labels, counts=self.counts, proportions=props, n=self._n
        )

    def __repr__(self) -> str:
        return f"OutcomeTally(n={self._n}, counts={self._counts.tolist()})"
