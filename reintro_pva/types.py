"""Core data types for reintro_pva.

This module is the SINGLE SOURCE OF TRUTH for:
  - Stage and ReproductionMode enumerations
  - Default demographic constants (pre-adult survival, fecundity, dispersion)
  - StageVector helpers (length-7 int64 count arrays)
  - VitalRateSet: the per-population demographic inputs
  - Trajectory and ExtinctionCurve: simulation outputs

All modules import these types from here. No other module defines stage
indices.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Sequence, Tuple

import numpy as np

from reintro_pva.errors import InvalidParameterError


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Stage(IntEnum):
    """Life-stage classes, youngest first.

    Pre-adult classes are one year of age each and always advance:
      TADPOLE_1 → TADPOLE_2 → TADPOLE_3 → JUVENILE → SUBADULT → RECRUITED_ADULT
    Adult classes are terminal and only survive in place. Founders
    (translocated adults) never receive new members.
    """
    TADPOLE_1          = 0   # Recruits; youngest counted stage
    TADPOLE_2          = 1
    TADPOLE_3          = 2
    JUVENILE           = 3   # First year post-metamorphosis
    SUBADULT           = 4
    RECRUITED_ADULT    = 5   # Born in the recipient habitat
    TRANSLOCATED_ADULT = 6   # Founders moved in from elsewhere


class ReproductionMode(str, Enum):
    """Distribution of the yearly recruit count."""
    NEGATIVE_BINOMIAL = "negative_binomial"
    POISSON = "poisson"


N_STAGES = len(Stage)
N_PREADULT = int(Stage.RECRUITED_ADULT)           # 5 advancing classes
ADULT_STAGES = (Stage.RECRUITED_ADULT, Stage.TRANSLOCATED_ADULT)


# ═══════════════════════════════════════════════════════════════════════
# DEFAULT DEMOGRAPHIC CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

# Annual advancement probability of each pre-adult class
DEFAULT_STAGE_SURVIVAL: Tuple[float, ...] = (0.5, 0.5, 0.6, 0.7, 0.8)

# Expected first-year tadpoles per adult per year, before the recruitment filter
DEFAULT_FECUNDITY = 12.0

DEFAULT_RECRUITMENT_PROBABILITY = 0.3
DEFAULT_SURVIVAL_DISPERSION = 10000.0   # large ⇒ no inter-annual survival noise
DEFAULT_RECRUITMENT_DISPERSION = 2.0
DEFAULT_FOUNDERS = 40

# A credible interval at least this wide cannot tell a survival estimate apart
# from [0, 1]
DEFAULT_DEGENERATE_INTERVAL_WIDTH = 0.9


# ═══════════════════════════════════════════════════════════════════════
# STAGE VECTORS
# ═══════════════════════════════════════════════════════════════════════

def as_stage_vector(values: Sequence[int]) -> np.ndarray:
    """Validate and convert counts to a StageVector.

    Args:
        values: N_STAGES non-negative integer counts, youngest stage first.

    Returns:
        New int64 array of shape (N_STAGES,).

    Raises:
        InvalidParameterError: Wrong length, non-integer or negative counts.
    """
    arr = np.asarray(values)
    if arr.shape != (N_STAGES,):
        raise InvalidParameterError(
            f"stage vector must have {N_STAGES} entries, got shape {arr.shape}"
        )
    if not np.all(np.isfinite(arr)) or not np.all(np.equal(np.mod(arr, 1), 0)):
        raise InvalidParameterError(
            f"stage vector entries must be integer counts, got {arr.tolist()}"
        )
    if np.any(arr < 0):
        raise InvalidParameterError(
            f"stage vector entries must be >= 0, got {arr.tolist()}"
        )
    return arr.astype(np.int64)


def founder_stage_vector(n_founders: int = DEFAULT_FOUNDERS) -> np.ndarray:
    """StageVector holding only translocated adults."""
    vec = np.zeros(N_STAGES, dtype=np.int64)
    vec[Stage.TRANSLOCATED_ADULT] = n_founders
    return as_stage_vector(vec)


def is_extinct(stage_vector: np.ndarray) -> bool:
    return not np.any(stage_vector)


# ═══════════════════════════════════════════════════════════════════════
# VITAL RATES
# ═══════════════════════════════════════════════════════════════════════

def _is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, numbers.Real) and math.isnan(value))


def _check_probability(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        raise InvalidParameterError(f"{name} must be in [0, 1], got {value}")


def _check_interval(name: str, interval: Optional[Tuple[float, float]]) -> None:
    if interval is None:
        return
    if len(interval) != 2:
        raise InvalidParameterError(
            f"{name} must be (lower, upper), got {interval}"
        )
    lower, upper = interval
    _check_probability(f"{name}[0]", lower)
    _check_probability(f"{name}[1]", upper)
    if lower > upper:
        raise InvalidParameterError(
            f"{name} lower bound {lower} exceeds upper bound {upper}"
        )


@dataclass(frozen=True)
class VitalRateSet:
    """Demographic inputs for one population and one analysis run.

    recruited_survival may be None (or NaN) when no distinct estimate for
    locally recruited adults exists; estimates.resolve_recruited_survival
    substitutes translocated_survival in that case, and also when the
    recruited credible interval is at least degenerate_interval_width wide.
    """
    translocated_survival: float
    recruited_survival: Optional[float] = None
    recruitment_probability: float = DEFAULT_RECRUITMENT_PROBABILITY
    survival_dispersion: float = DEFAULT_SURVIVAL_DISPERSION
    recruitment_dispersion: float = DEFAULT_RECRUITMENT_DISPERSION
    fecundity: float = DEFAULT_FECUNDITY
    stage_survival: Tuple[float, ...] = DEFAULT_STAGE_SURVIVAL
    reproduction_mode: ReproductionMode = ReproductionMode.NEGATIVE_BINOMIAL
    translocated_interval: Optional[Tuple[float, float]] = None
    recruited_interval: Optional[Tuple[float, float]] = None
    degenerate_interval_width: float = DEFAULT_DEGENERATE_INTERVAL_WIDTH

    @property
    def has_recruited_survival(self) -> bool:
        return not _is_missing(self.recruited_survival)

    def validate(self) -> None:
        """Check every domain constraint. Raises InvalidParameterError."""
        _check_probability("translocated_survival", self.translocated_survival)
        if self.has_recruited_survival:
            _check_probability("recruited_survival", self.recruited_survival)
        _check_probability("recruitment_probability", self.recruitment_probability)

        if len(self.stage_survival) != N_PREADULT:
            raise InvalidParameterError(
                f"stage_survival must have {N_PREADULT} elements (one per "
                f"pre-adult stage), got {len(self.stage_survival)}"
            )
        for i, s in enumerate(self.stage_survival):
            _check_probability(f"stage_survival[{i}]", s)

        for name in ("survival_dispersion", "recruitment_dispersion"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidParameterError(
                    f"{name} must be finite and > 0, got {value}"
                )
        if not (0.0 < self.degenerate_interval_width <= 1.0):
            raise InvalidParameterError(
                f"degenerate_interval_width must be in (0, 1], "
                f"got {self.degenerate_interval_width}"
            )
        if not (math.isfinite(self.fecundity) and self.fecundity >= 0):
            raise InvalidParameterError(
                f"fecundity must be finite and >= 0, got {self.fecundity}"
            )
        if not isinstance(self.reproduction_mode, ReproductionMode):
            raise InvalidParameterError(
                f"reproduction_mode must be a ReproductionMode, "
                f"got {self.reproduction_mode!r}"
            )

        _check_interval("translocated_interval", self.translocated_interval)
        _check_interval("recruited_interval", self.recruited_interval)


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION OUTPUTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Trajectory:
    """One simulated replicate.

    Index 0 of `states` and `extinct` is the initial condition; index t is
    the state after t simulated years.
    """
    states: np.ndarray             # (steps+1, N_STAGES) int64
    recruits: np.ndarray           # (steps,) int64, recruits produced in year t
    extinct: np.ndarray            # (steps+1,) int8, absorbing indicator
    recruitment_rates: np.ndarray  # (steps,) float64, omega used in year t

    @property
    def steps(self) -> int:
        return len(self.recruits)

    @property
    def adult_abundance(self) -> np.ndarray:
        return self.states[:, list(ADULT_STAGES)].sum(axis=1)

    @property
    def total_abundance(self) -> np.ndarray:
        return self.states.sum(axis=1)


@dataclass
class ExtinctionCurve:
    """Extinction probability by year for one parameter configuration."""
    probability: np.ndarray                       # (steps+1,) in [0, 1]
    n_replicates: int
    recruitment_probability: Optional[float] = None
    quantile_levels: Tuple[float, ...] = ()
    abundance_quantiles: Optional[np.ndarray] = None  # (len(levels), steps+1)

    @property
    def steps(self) -> int:
        return len(self.probability) - 1

    @property
    def time(self) -> np.ndarray:
        return np.arange(self.steps + 1)
