"""Stochastic stage-structured simulation of reintroduced populations.

Annual cycle for one replicate, given stage vector n(t):
  1. Year-specific adult survival: s_R ~ Beta(μR·φ, (1−μR)·φ) and
     s_T ~ Beta(μT·φ, (1−μT)·φ). Shared by every adult in the class
     (environmental stochasticity).
  2. Binomial survival of every class (demographic stochasticity):
     pre-adults advance one class with stage_survival[i], subadults
     advance into RECRUITED_ADULT, adults stay with s_R / s_T.
  3. Recruits from the adults present at the start of the year:
     mean = adults × fecundity × ω_t, negative binomial with size
     φ_ω × adults (the sum of one NB(size φ_ω) draw per adult), or Poisson.
     Recruits enter TADPOLE_1.
  4. Extinction is absorbing: an all-zero vector stays all-zero, so the
     remaining years are filled without further draws.

Every replicate owns a PCG64 stream derived from (seed, replicate index),
so results are identical whether replicates run serially or in a pool.
"""

from __future__ import annotations

import logging
from multiprocessing import Pool
from typing import List, Optional, Sequence

import numpy as np

from reintro_pva.errors import InvalidParameterError
from reintro_pva.estimates import resolve_recruited_survival
from reintro_pva.rng import SeedLike, make_generator, replicate_seed_sequences
from reintro_pva.types import (
    N_PREADULT,
    N_STAGES,
    ReproductionMode,
    Stage,
    Trajectory,
    VitalRateSet,
    as_stage_vector,
    is_extinct,
)

logger = logging.getLogger(__name__)

_R = int(Stage.RECRUITED_ADULT)
_T = int(Stage.TRANSLOCATED_ADULT)


# ═══════════════════════════════════════════════════════════════════════
# RANDOM DRAWS
# ═══════════════════════════════════════════════════════════════════════

def draw_survival_probability(
    mean: float,
    dispersion: float,
    rng: np.random.Generator,
) -> float:
    """Beta draw with mean `mean` and inverse dispersion `dispersion`.

    Means of exactly 0 or 1 have no beta representation and are returned
    as-is.
    """
    if mean <= 0.0 or mean >= 1.0:
        return float(mean)
    return float(rng.beta(mean * dispersion, (1.0 - mean) * dispersion))


def draw_recruits(
    adults: int,
    per_adult_mean: float,
    rates: VitalRateSet,
    rng: np.random.Generator,
) -> int:
    """Number of new recruits produced by `adults` reproducing adults."""
    mean = adults * per_adult_mean
    if mean <= 0.0:
        return 0
    if rates.reproduction_mode is ReproductionMode.POISSON:
        return int(rng.poisson(mean))
    size = rates.recruitment_dispersion * adults
    return int(rng.negative_binomial(size, size / (size + mean)))


# ═══════════════════════════════════════════════════════════════════════
# SINGLE REPLICATE
# ═══════════════════════════════════════════════════════════════════════

def _simulate(
    steps: int,
    initial: np.ndarray,
    rates: VitalRateSet,
    recruitment_rates: np.ndarray,
    rng: np.random.Generator,
) -> Trajectory:
    """Core loop. Inputs are assumed validated and resolved."""
    states = np.zeros((steps + 1, N_STAGES), dtype=np.int64)
    recruits = np.zeros(steps, dtype=np.int64)
    extinct = np.zeros(steps + 1, dtype=np.int8)
    stage_survival = np.asarray(rates.stage_survival, dtype=np.float64)
    phi = rates.survival_dispersion

    n = initial.copy()
    states[0] = n
    if is_extinct(n):
        extinct[:] = 1
        return Trajectory(states, recruits, extinct, recruitment_rates.copy())

    for t in range(steps):
        s_r = draw_survival_probability(rates.recruited_survival, phi, rng)
        s_t = draw_survival_probability(rates.translocated_survival, phi, rng)

        advanced = rng.binomial(n[:N_PREADULT], stage_survival)
        stayed_r = rng.binomial(n[_R], s_r)
        stayed_t = rng.binomial(n[_T], s_t)

        adults = int(n[_R] + n[_T])
        born = draw_recruits(adults, rates.fecundity * recruitment_rates[t], rates, rng)

        nxt = np.empty(N_STAGES, dtype=np.int64)
        nxt[0] = born
        nxt[1:N_PREADULT] = advanced[:-1]
        nxt[_R] = advanced[-1] + stayed_r
        nxt[_T] = stayed_t

        n = nxt
        states[t + 1] = n
        recruits[t] = born
        if is_extinct(n):
            extinct[t + 1:] = 1
            break

    return Trajectory(states, recruits, extinct, recruitment_rates.copy())


def _check_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or int(value) != value or value <= 0:
        raise InvalidParameterError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def recruitment_schedule(
    steps: int,
    rates: VitalRateSet,
    recruitment_override: Optional[float] = None,
    recruitment_trajectory: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Per-year recruitment probability ω_t, shape (steps,).

    Precedence: explicit per-year trajectory, then override, then
    rates.recruitment_probability.
    """
    if recruitment_trajectory is not None:
        schedule = np.asarray(recruitment_trajectory, dtype=np.float64)
        if schedule.shape != (steps,):
            raise InvalidParameterError(
                f"recruitment_trajectory must have {steps} values, "
                f"got shape {schedule.shape}"
            )
        if np.any(~np.isfinite(schedule)) or np.any((schedule < 0) | (schedule > 1)):
            raise InvalidParameterError(
                "recruitment_trajectory values must be in [0, 1]"
            )
        return schedule

    omega = rates.recruitment_probability
    if recruitment_override is not None:
        if not (0.0 <= recruitment_override <= 1.0):
            raise InvalidParameterError(
                f"recruitment_override must be in [0, 1], got {recruitment_override}"
            )
        omega = recruitment_override
    return np.full(steps, float(omega), dtype=np.float64)


def simulate_replicate(
    steps: int,
    initial: Sequence[int],
    rates: VitalRateSet,
    rng: np.random.Generator,
    recruitment_override: Optional[float] = None,
    recruitment_trajectory: Optional[Sequence[float]] = None,
) -> Trajectory:
    """Run one replicate with a caller-supplied generator."""
    steps = _check_positive_int("steps", steps)
    initial = as_stage_vector(initial)
    rates.validate()
    rates = resolve_recruited_survival(rates)
    schedule = recruitment_schedule(
        steps, rates, recruitment_override, recruitment_trajectory
    )
    return _simulate(steps, initial, rates, schedule, rng)


# ═══════════════════════════════════════════════════════════════════════
# REPLICATE ENSEMBLE
# ═══════════════════════════════════════════════════════════════════════

def _simulate_task(args) -> Trajectory:
    """Pool entry point: (steps, initial, rates, schedule, seed_seq)."""
    steps, initial, rates, schedule, seed_seq = args
    return _simulate(steps, initial, rates, schedule, make_generator(seed_seq))


def run_simulation(
    steps: int,
    initial: Sequence[int],
    rates: VitalRateSet,
    replicates: int,
    recruitment_override: Optional[float] = None,
    *,
    seed: SeedLike = None,
    recruitment_trajectory: Optional[Sequence[float]] = None,
    workers: int = 1,
) -> List[Trajectory]:
    """Simulate `replicates` independent trajectories of `steps` years.

    Args:
        steps: Number of annual steps (> 0).
        initial: Initial StageVector (N_STAGES non-negative counts).
        rates: Vital rates; an unusable recruited survival is replaced by
            translocated survival before any draw.
        replicates: Number of replicate trajectories (> 0).
        recruitment_override: Recruitment probability to use instead of
            rates.recruitment_probability (for sweeps).
        seed: Master seed. Replicate k uses child stream k.
        recruitment_trajectory: Optional per-year recruitment probabilities,
            length `steps`; takes precedence over the override.
        workers: Number of worker processes (1 = serial). Output does not
            depend on this value.

    Returns:
        List of Trajectory, in replicate order.

    Raises:
        InvalidParameterError: Invalid steps, replicates, workers, initial
            vector, rates or recruitment settings.
    """
    steps = _check_positive_int("steps", steps)
    replicates = _check_positive_int("replicates", replicates)
    workers = _check_positive_int("workers", workers)
    initial = as_stage_vector(initial)
    rates.validate()
    rates = resolve_recruited_survival(rates)
    schedule = recruitment_schedule(
        steps, rates, recruitment_override, recruitment_trajectory
    )
    seed_seqs = replicate_seed_sequences(seed, replicates)

    logger.debug(
        "Simulating %d replicates × %d years (ω=%.4g, workers=%d)",
        replicates, steps, schedule[0], workers,
    )

    if workers == 1:
        return [
            _simulate(steps, initial, rates, schedule, make_generator(ss))
            for ss in seed_seqs
        ]

    tasks = [(steps, initial, rates, schedule, ss) for ss in seed_seqs]
    chunksize = max(1, replicates // (4 * workers))
    with Pool(processes=workers) as pool:
        return pool.map(_simulate_task, tasks, chunksize=chunksize)
