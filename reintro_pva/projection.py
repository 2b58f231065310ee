"""Deterministic stage-transition model built from a VitalRateSet.

The projection matrix A maps the stage vector in year t to its expectation
in year t+1:

    A[i+1, i] = stage_survival[i]           pre-adult advancement (i = 0..4)
    A[5, 5]   = recruited_survival          recruited adults stay
    A[6, 6]   = translocated_survival       founders stay
    A[0, 5] = A[0, 6] = fecundity × recruitment_probability

Founders receive no inflow, so A is reducible: its spectrum is
{translocated_survival} ∪ spectrum of the 6×6 recruited life cycle.
Used for eigen-analysis only; the simulator draws from the VitalRateSet
directly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Tuple

import numpy as np

from reintro_pva.errors import InvalidParameterError
from reintro_pva.estimates import resolve_recruited_survival
from reintro_pva.types import (
    N_PREADULT,
    N_STAGES,
    Stage,
    VitalRateSet,
    as_stage_vector,
)


# Parameters reported by sensitivity/elasticity analysis
FREE_PARAMETERS = (
    "translocated_survival",
    "recruited_survival",
    "recruitment_probability",
    "fecundity",
)

_R = int(Stage.RECRUITED_ADULT)
_T = int(Stage.TRANSLOCATED_ADULT)


@dataclass(frozen=True)
class ProjectionModel:
    """Per-stage transition probabilities plus the reproduction rule."""
    stage_survival: Tuple[float, ...]
    recruited_survival: float
    translocated_survival: float
    fecundity: float
    recruitment_probability: float

    @property
    def n_stages(self) -> int:
        return N_STAGES

    @property
    def per_capita_recruitment(self) -> float:
        """Expected recruits per adult per year."""
        return self.fecundity * self.recruitment_probability

    def matrix(self) -> np.ndarray:
        A = np.zeros((N_STAGES, N_STAGES), dtype=np.float64)
        for i, s in enumerate(self.stage_survival):
            A[i + 1, i] = s
        A[_R, _R] = self.recruited_survival
        A[_T, _T] = self.translocated_survival
        A[0, _R] = self.per_capita_recruitment
        A[0, _T] = self.per_capita_recruitment
        return A

    def parameters(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in FREE_PARAMETERS}

    def with_parameter(self, name: str, value: float) -> "ProjectionModel":
        """Copy with one free parameter replaced (no validation)."""
        if name not in FREE_PARAMETERS:
            raise InvalidParameterError(
                f"unknown parameter {name!r}; expected one of {FREE_PARAMETERS}"
            )
        return replace(self, **{name: value})

    def parameter_derivative(self, name: str) -> np.ndarray:
        """dA/dθ for one free parameter. Every entry is linear in θ."""
        if name not in FREE_PARAMETERS:
            raise InvalidParameterError(
                f"unknown parameter {name!r}; expected one of {FREE_PARAMETERS}"
            )
        dA = np.zeros((N_STAGES, N_STAGES), dtype=np.float64)
        if name == "recruited_survival":
            dA[_R, _R] = 1.0
        elif name == "translocated_survival":
            dA[_T, _T] = 1.0
        elif name == "recruitment_probability":
            dA[0, _R] = dA[0, _T] = self.fecundity
        else:
            dA[0, _R] = dA[0, _T] = self.recruitment_probability
        return dA

    def expected_recruits(self, stage_vector: np.ndarray) -> float:
        adults = float(np.sum(stage_vector[N_PREADULT:]))
        return adults * self.per_capita_recruitment

    def project(self, initial, steps: int) -> np.ndarray:
        """Expected stage vectors for years 0..steps, shape (steps+1, N_STAGES)."""
        if steps < 0:
            raise InvalidParameterError(f"steps must be >= 0, got {steps}")
        n = as_stage_vector(initial).astype(np.float64)
        A = self.matrix()
        out = np.empty((steps + 1, N_STAGES), dtype=np.float64)
        out[0] = n
        for t in range(steps):
            n = A @ n
            out[t + 1] = n
        return out


def build_projection_model(rates: VitalRateSet) -> ProjectionModel:
    """Build the deterministic model for one VitalRateSet.

    Raises:
        InvalidParameterError: Probability outside [0, 1], non-positive
            dispersion, or malformed stage survival.
    """
    rates.validate()
    rates = resolve_recruited_survival(rates)
    return ProjectionModel(
        stage_survival=tuple(float(s) for s in rates.stage_survival),
        recruited_survival=float(rates.recruited_survival),
        translocated_survival=float(rates.translocated_survival),
        fecundity=float(rates.fecundity),
        recruitment_probability=float(rates.recruitment_probability),
    )
