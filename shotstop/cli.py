"""
Command-line sample-size report.

    shotstop-report --delta 0.0001 --gamma 0.05 --p 0.5 --p 0.25 --shot-time 1e-4
"""

from __future__ import annotations

import argparse
import sys

from .capacity import capacity_report
from .errors import InvalidParameter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shotstop-report",
        description="Expected number of shots for a sequential estimate "
        "within delta of the truth with probability 1 - gamma.",
    )
    parser.add_argument("--delta", type=float, required=True, help="absolute precision")
    parser.add_argument("--gamma", type=float, required=True, help="failure probability")
    parser.add_argument(
        "--p",
        type=float,
        action="append",
        dest="assumed_p",
        help="assumed proportion (repeatable; default 0.5 and 0.25)",
    )
    parser.add_argument("--shot-time", type=float, default=None, help="seconds per shot")
    parser.add_argument("--qubits", type=int, default=1, help="number of measured qubits")
    parser.add_argument(
        "--z-decimals",
        type=int,
        default=None,
        help="truncate z to this many decimals (tabulated values)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    assumed_p = tuple(args.assumed_p) if args.assumed_p else (0.5, 0.25)
    try:
        report = capacity_report(
            args.delta,
            args.gamma,
            assumed_p=assumed_p,
            shot_time=args.shot_time,
            n_qubits=args.qubits,
            z_decimals=args.z_decimals,
        )
    except InvalidParameter as exc:
        parser.error(str(exc))
    print(report.format())
    return 0


if __name__ == "__main__":
    sys.exit(main())
