"""Extinction-probability curves from replicate ensembles.

summarize() reduces an ensemble to the fraction of replicates extinct at each
year plus adult-abundance quantile bands. sweep() repeats the simulation over
a grid of recruitment probabilities; terminal_value() and
critical_recruitment() read off the quantities compared across populations
(e.g. the 50-year extinction probability and the recruitment probability at
which it crosses a management threshold).
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from reintro_pva.errors import InvalidParameterError, OutOfRangeError
from reintro_pva.rng import SeedLike, as_seed_sequence
from reintro_pva.simulation import run_simulation
from reintro_pva.types import (
    DEFAULT_FOUNDERS,
    ExtinctionCurve,
    Trajectory,
    VitalRateSet,
    founder_stage_vector,
)

logger = logging.getLogger(__name__)

DEFAULT_QUANTILES: Tuple[float, ...] = (0.025, 0.5, 0.975)


def summarize(
    trajectories: Sequence[Trajectory],
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    recruitment_probability: Optional[float] = None,
) -> ExtinctionCurve:
    """Extinction probability per year across an ensemble.

    Because extinction is absorbing in every trajectory, the returned
    probability is non-decreasing and lies in [0, 1].

    Raises:
        InvalidParameterError: Empty ensemble, trajectories of different
            lengths, or quantile levels outside [0, 1].
    """
    if len(trajectories) == 0:
        raise InvalidParameterError("cannot summarize an empty ensemble")
    lengths = {len(tr.extinct) for tr in trajectories}
    if len(lengths) != 1:
        raise InvalidParameterError(
            f"trajectories have different lengths: {sorted(lengths)}"
        )
    levels = tuple(float(q) for q in quantiles)
    if any(not (0.0 <= q <= 1.0) for q in levels):
        raise InvalidParameterError(f"quantiles must be in [0, 1], got {levels}")

    extinct = np.stack([tr.extinct for tr in trajectories])
    probability = extinct.mean(axis=0)

    bands = None
    if levels:
        adults = np.stack([tr.adult_abundance for tr in trajectories])
        bands = np.quantile(adults, levels, axis=0)

    return ExtinctionCurve(
        probability=probability,
        n_replicates=len(trajectories),
        recruitment_probability=recruitment_probability,
        quantile_levels=levels,
        abundance_quantiles=bands,
    )


def sweep(
    rates: VitalRateSet,
    recruitment_values: Sequence[float],
    steps: int,
    replicates: int,
    *,
    initial: Optional[Sequence[int]] = None,
    seed: SeedLike = None,
    workers: int = 1,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Dict[float, ExtinctionCurve]:
    """Extinction curves over a grid of recruitment probabilities.

    Every recruitment value reuses the same per-replicate seed streams, so
    a full sweep is reproducible from `seed` alone. `should_stop` is polled
    before each value; once it returns True the curves finished so far are
    returned.

    Returns:
        Dict mapping each recruitment value to its ExtinctionCurve, in the
        order given.
    """
    if initial is None:
        initial = founder_stage_vector(DEFAULT_FOUNDERS)
    # Fix the entropy once so every value sees the same replicate streams
    seed_seq = as_seed_sequence(seed)

    curves: Dict[float, ExtinctionCurve] = {}
    for omega in recruitment_values:
        if should_stop is not None and should_stop():
            logger.warning(
                "Sweep cancelled after %d of %d recruitment values",
                len(curves), len(recruitment_values),
            )
            break
        omega = float(omega)
        logger.info("Working on recruitment probability ω = %.3f", omega)
        trajectories = run_simulation(
            steps, initial, rates, replicates,
            recruitment_override=omega,
            seed=seed_seq,
            workers=workers,
        )
        curves[omega] = summarize(trajectories, quantiles, recruitment_probability=omega)
    return curves


def terminal_value(curve: ExtinctionCurve, at_step: int) -> float:
    """Extinction probability at year `at_step`.

    Raises:
        OutOfRangeError: at_step < 0 or beyond the curve's horizon.
    """
    if at_step < 0 or at_step > curve.steps:
        raise OutOfRangeError(
            f"step {at_step} outside curve horizon 0..{curve.steps}"
        )
    return float(curve.probability[at_step])


def terminal_values(
    curves: Dict[float, ExtinctionCurve],
    at_step: int,
) -> Dict[float, float]:
    """terminal_value() for every curve of a sweep."""
    return {omega: terminal_value(curve, at_step) for omega, curve in curves.items()}


def critical_recruitment(
    curves: Dict[float, ExtinctionCurve],
    at_step: int,
    threshold: float = 0.5,
) -> Optional[float]:
    """Smallest recruitment probability with extinction risk ≤ threshold.

    Linearly interpolates between the two sweep values that bracket the
    first crossing. Returns the smallest swept value if it already meets
    the threshold, and None if no swept value does.
    """
    if not (0.0 <= threshold <= 1.0):
        raise InvalidParameterError(f"threshold must be in [0, 1], got {threshold}")
    points: List[Tuple[float, float]] = sorted(terminal_values(curves, at_step).items())
    for i, (omega, risk) in enumerate(points):
        if risk > threshold:
            continue
        if i == 0:
            return omega
        omega_prev, risk_prev = points[i - 1]
        frac = (risk_prev - threshold) / (risk_prev - risk)
        return float(omega_prev + frac * (omega - omega_prev))
    return None
