#!/usr/bin/env python3
"""Population viability analysis for a set of reintroduced populations.

Reads a YAML configuration (see configs/base.yaml), runs the growth-rate,
elasticity and extinction-sweep analysis for every population and prints a
summary table. With --out, the full per-population results (including the
extinction curves) are written as JSON.

Usage:
  python3 experiments/run_viability.py --config configs/base.yaml
  python3 experiments/run_viability.py --config configs/base.yaml \\
      --scenario configs/equal_survival.yaml --replicates 10000 --out pva.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from reintro_pva.config import load_config
from reintro_pva.pipeline import PopulationReport, run_analysis


def _print_summary(reports: List[PopulationReport], horizon: int) -> None:
    """Print growth rates and horizon extinction risk per population."""
    print("\n" + "=" * 80)
    print("VIABILITY SUMMARY")
    print("=" * 80)
    print(f"{'Population':<14s} {'λ':>7s} {'λ lower':>8s} {'λ upper':>8s} "
          f"{'ω(λ=1)':>8s} {'ω crit':>8s}  P(ext, {horizon} yr) by ω")
    print("-" * 80)

    for r in reports:
        lam = r.growth_rate
        omega_one = "—" if r.lambda_one_recruitment is None else f"{r.lambda_one_recruitment:.3f}"
        omega_crit = "—" if r.critical_recruitment is None else f"{r.critical_recruitment:.3f}"
        risks = " ".join(f"{omega:.2f}:{p:.2f}" for omega, p in r.terminal.items())
        print(f"  {r.name:<12s} {lam.median:>7.3f} {lam.lower:>8.3f} {lam.upper:>8.3f} "
              f"{omega_one:>8s} {omega_crit:>8s}  {risks}")

    print("\nElasticity of λ")
    for r in reports:
        elas = " ".join(f"{k}={v:.3f}" for k, v in r.elasticity.items())
        print(f"  {r.name:<12s} {elas}")


def main():
    parser = argparse.ArgumentParser(
        description='Growth rate, elasticity and extinction risk of reintroduced populations',
    )
    parser.add_argument('--config', required=True, help='Base YAML configuration')
    parser.add_argument('--scenario', default=None, help='Optional scenario override YAML')
    parser.add_argument(
        '--replicates', type=int, default=None,
        help='Override simulation.replicates',
    )
    parser.add_argument(
        '--cores', type=int, default=None,
        help='Override simulation.parallel_workers',
    )
    parser.add_argument('--out', default=None, help='Write JSON results to this file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s',
    )

    overrides = {'simulation': {}}
    if args.replicates is not None:
        overrides['simulation']['replicates'] = args.replicates
    if args.cores is not None:
        overrides['simulation']['parallel_workers'] = args.cores

    config = load_config(args.config, args.scenario, sweep_overrides=overrides)

    t0 = time.time()
    reports = run_analysis(config)
    print(f"Analyzed {len(reports)} populations in {time.time() - t0:.1f}s")

    _print_summary(reports, config.sweep.horizon)

    if args.out:
        with open(args.out, 'w') as f:
            json.dump([r.to_dict() for r in reports], f, indent=2)
        print(f"Results saved to {args.out}")


if __name__ == '__main__':
    main()
