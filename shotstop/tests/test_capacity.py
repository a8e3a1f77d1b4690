"""
Tests for the offline capacity report and its command-line front end.
"""

from __future__ import annotations

import math

import pytest

from shotstop import (
    InvalidParameter,
    capacity_report,
    expected_samples,
    h_constant,
    sample_size,
    worst_case_samples,
    z_value,
)
from shotstop.cli import main


# ── Pure functions ────────────────────────────────────────────────────────────


def test_worst_case_exact_z():
    assert worst_case_samples(1e-4, 0.05) == pytest.approx(96_036_470, abs=1000)


def test_worst_case_tabulated_z():
    """z truncated to 1.95 gives the tabulated 95,062,500."""
    assert worst_case_samples(1e-4, 0.05, z_decimals=2) == pytest.approx(95_062_500)


def test_expected_at_half_equals_worst_case():
    assert expected_samples(1e-4, 0.05, 0.5) == pytest.approx(worst_case_samples(1e-4, 0.05))


def test_expected_is_p_q_h_cubed():
    h = h_constant(0.01, 0.1)
    assert expected_samples(0.01, 0.1, 0.25) == pytest.approx(0.1875 * h**3)


def test_expected_never_below_floor():
    assert expected_samples(1e-4, 0.05, 0.0) == 513
    assert expected_samples(1e-4, 0.05, 1.0) == 513


def test_sample_size_splits_risk_over_states():
    assert sample_size(0.01, 0.05) == math.ceil((z_value(0.05) / 0.02) ** 2)
    assert sample_size(0.01, 0.05, n_qubits=2) == math.ceil((z_value(0.0125) / 0.02) ** 2)
    assert sample_size(0.01, 0.05, n_qubits=3) > sample_size(0.01, 0.05, n_qubits=2)


@pytest.mark.parametrize(
    "call",
    [
        lambda: sample_size(0.01, 0.05, n_qubits=0),
        lambda: expected_samples(0.01, 0.05, 1.5),
        lambda: worst_case_samples(0.01, 0.05, n_outcomes=1),
        lambda: worst_case_samples(0.0, 0.05),
        lambda: capacity_report(0.01, 0.05, shot_time=-1.0),
        lambda: capacity_report(0.01, 0.05, n_qubits=0),
    ],
)
def test_invalid_inputs(call):
    with pytest.raises(InvalidParameter):
        call()


# ── Report ────────────────────────────────────────────────────────────────────


def test_report_scenarios():
    report = capacity_report(1e-4, 0.05)
    assert report.n_min == 513
    assert report.n_outcomes == 2
    assert report.h == pytest.approx(727, abs=1)
    half, quarter = report.scenarios
    assert half.fraction_of_worst == pytest.approx(1.0)
    assert quarter.fraction_of_worst == pytest.approx(0.75)
    assert half.seconds is None


def test_report_with_shot_time():
    report = capacity_report(0.01, 0.05, assumed_p=(0.1,), shot_time=0.5)
    (s,) = report.scenarios
    assert s.seconds == pytest.approx(s.n_expected * 0.5)
    assert report.worst_seconds == pytest.approx(report.n_worst * 0.5)


def test_report_format():
    text = capacity_report(1e-4, 0.05, shot_time=1e-4, z_decimals=2).format()
    assert "95,062,500" in text
    assert "minimum shots (degenerate-run floor) = 513" in text
    assert "75.0% of worst" in text
    # 95,062,500 shots at 0.1 ms each is about 2h38m.
    assert "~2h38m" in text
    assert str(capacity_report(1e-4, 0.05)) == capacity_report(1e-4, 0.05).format()


# ── Command line ──────────────────────────────────────────────────────────────


def test_cli_prints_report(capsys):
    assert main(["--delta", "0.0001", "--gamma", "0.05", "--z-decimals", "2"]) == 0
    out = capsys.readouterr().out
    assert "95,062,500" in out
    assert "p=0.5" in out
    assert "p=0.25" in out


def test_cli_custom_proportions(capsys):
    main(["--delta", "0.01", "--gamma", "0.1", "--p", "0.1", "--qubits", "2"])
    out = capsys.readouterr().out
    assert "outcomes=4" in out
    assert "p=0.1" in out
    assert "p=0.25" not in out


def test_cli_rejects_invalid_delta(capsys):
    with pytest.raises(SystemExit) as info:
        main(["--delta", "0", "--gamma", "0.05"])
    assert info.value.code == 2
    assert "delta" in capsys.readouterr().err
