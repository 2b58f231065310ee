"""Deterministic analysis of a ProjectionModel.

Implements the standard matrix-population-model quantities:
  - λ, the dominant eigenvalue (asymptotic growth rate per year)
  - Entry sensitivities ∂λ/∂a_ij = v_i w_j / <v, w>   (Caswell 2001, Eq. 9.10)
  - Entry elasticities (a_ij / λ) ∂λ/∂a_ij, which sum to 1 because λ is
    homogeneous of degree 1 in the entries of A (Euler's theorem)
  - Lower-level sensitivities by the chain rule Σ_ij ∂λ/∂a_ij ∂a_ij/∂θ,
    cross-checked against centered finite differences of λ(θ)

w and v are the right and left eigenvectors of the dominant eigenvalue.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg
from scipy.optimize import brentq

from reintro_pva.errors import AnalysisFailedError, InvalidParameterError
from reintro_pva.estimates import rates_at_bound
from reintro_pva.projection import (
    FREE_PARAMETERS,
    ProjectionModel,
    build_projection_model,
)
from reintro_pva.types import VitalRateSet


# Two eigenvalues closer than this (relative to λ) are treated as repeated
SIMPLE_EIGENVALUE_TOL = 1e-8

FD_STEP = 1e-6

SENSITIVITY_METHODS = ("analytic", "finite_difference")


# ═══════════════════════════════════════════════════════════════════════
# EIGEN-ANALYSIS
# ═══════════════════════════════════════════════════════════════════════

def _dominant_index(eigvals: np.ndarray) -> int:
    """Index of the Perron root: maximum modulus, then maximum real part.

    An imprimitive life cycle (e.g. recruited survival 0) has several
    eigenvalues on the spectral circle; the real positive one is wanted.
    """
    moduli = np.abs(eigvals)
    top = moduli.max()
    on_circle = np.flatnonzero(moduli >= top * (1.0 - SIMPLE_EIGENVALUE_TOL))
    return int(on_circle[np.argmax(eigvals[on_circle].real)])


def _eig(A: np.ndarray, vectors: bool):
    try:
        if vectors:
            result = scipy.linalg.eig(A, left=True, right=True)
        else:
            result = scipy.linalg.eigvals(A)
    except (np.linalg.LinAlgError, ValueError) as err:
        raise AnalysisFailedError(f"eigen-decomposition failed: {err}") from err
    eigvals = result[0] if vectors else result
    if not np.all(np.isfinite(eigvals)):
        raise AnalysisFailedError("eigen-decomposition returned non-finite values")
    return result


def growth_rate(model: ProjectionModel) -> float:
    """Asymptotic growth rate λ (dominant eigenvalue modulus).

    λ < 1: long-run decline; λ = 1: stationary; λ > 1: growth.

    Raises:
        AnalysisFailedError: Decomposition failure or a nilpotent model
            (no survival and no recruitment, λ = 0).
    """
    eigvals = _eig(model.matrix(), vectors=False)
    lam = float(np.abs(eigvals[_dominant_index(eigvals)]))
    if not lam > 0:
        raise AnalysisFailedError(
            "projection matrix has no positive dominant eigenvalue "
            "(every individual dies out deterministically)"
        )
    return lam


def _dominant_eigenvectors(model: ProjectionModel) -> Tuple[float, np.ndarray, np.ndarray]:
    """Return (λ, w, v) with w summing to 1 and <v, w> = 1."""
    eigvals, vl, vr = _eig(model.matrix(), vectors=True)
    idx = _dominant_index(eigvals)
    lam_c = eigvals[idx]
    lam = float(lam_c.real)
    if not lam > 0:
        raise AnalysisFailedError("projection matrix has no positive dominant eigenvalue")

    n_close = int(np.sum(np.abs(eigvals - lam_c) <= SIMPLE_EIGENVALUE_TOL * lam))
    if n_close > 1:
        raise AnalysisFailedError(
            f"dominant eigenvalue {lam:.6g} is repeated ({n_close} copies); "
            f"sensitivities are undefined"
        )

    w = np.real(vr[:, idx])
    w = w / w.sum()
    v = np.real(vl[:, idx])
    vw = float(v @ w)
    if abs(vw) < 1e-12:
        raise AnalysisFailedError("left and right eigenvectors are orthogonal")
    v = v / vw
    return lam, w, v


def entry_sensitivities(model: ProjectionModel) -> np.ndarray:
    """∂λ/∂a_ij for every matrix entry, shape (n_stages, n_stages)."""
    _, w, v = _dominant_eigenvectors(model)
    return np.outer(v, w)


def entry_elasticities(model: ProjectionModel) -> np.ndarray:
    """(a_ij / λ) ∂λ/∂a_ij for every matrix entry. Sums to 1."""
    lam, w, v = _dominant_eigenvectors(model)
    return np.outer(v, w) * model.matrix() / lam


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER SENSITIVITY & ELASTICITY
# ═══════════════════════════════════════════════════════════════════════

def _finite_difference_sensitivity(
    model: ProjectionModel, step: float
) -> Dict[str, float]:
    sens = {}
    for name, theta in model.parameters().items():
        h = step * max(1.0, abs(theta))
        up = growth_rate(model.with_parameter(name, theta + h))
        down = growth_rate(model.with_parameter(name, theta - h))
        sens[name] = (up - down) / (2.0 * h)
    return sens


def sensitivity(
    model: ProjectionModel,
    method: str = "analytic",
    step: float = FD_STEP,
) -> Dict[str, float]:
    """∂λ/∂θ for each free parameter (FREE_PARAMETERS order).

    method="analytic" uses eigenvector sensitivities and the chain rule;
    method="finite_difference" uses centered differences of growth_rate.
    """
    if method == "analytic":
        S = entry_sensitivities(model)
        return {
            name: float(np.sum(S * model.parameter_derivative(name)))
            for name in FREE_PARAMETERS
        }
    if method == "finite_difference":
        return _finite_difference_sensitivity(model, step)
    raise InvalidParameterError(
        f"method must be one of {SENSITIVITY_METHODS}, got {method!r}"
    )


def elasticity(
    model: ProjectionModel,
    method: str = "analytic",
    step: float = FD_STEP,
) -> Dict[str, float]:
    """Proportional sensitivity (θ / λ) ∂λ/∂θ for each free parameter.

    recruitment_probability and fecundity enter A only through their
    product, so their elasticities are identical.
    """
    lam = growth_rate(model)
    sens = sensitivity(model, method=method, step=step)
    params = model.parameters()
    return {name: sens[name] * params[name] / lam for name in FREE_PARAMETERS}


# ═══════════════════════════════════════════════════════════════════════
# DERIVED SUMMARIES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GrowthRateInterval:
    """λ at the point estimates and at the credible bounds of survival."""
    median: float
    lower: float
    upper: float

    def as_dict(self) -> Dict[str, float]:
        return {"median": self.median, "lower": self.lower, "upper": self.upper}


def growth_rate_interval(rates: VitalRateSet) -> GrowthRateInterval:
    """λ evaluated with both adult survivals at median, lower and upper bounds."""
    values = {
        bound: growth_rate(build_projection_model(rates_at_bound(rates, bound)))
        for bound in ("median", "lower", "upper")
    }
    return GrowthRateInterval(**values)


def growth_rate_surface(
    rates: VitalRateSet,
    survival_values: Sequence[float],
    recruitment_values: Sequence[float],
) -> np.ndarray:
    """λ over a grid of adult survival × recruitment probability.

    Both adult classes share the survival value. Returns an array of shape
    (len(survival_values), len(recruitment_values)).
    """
    surface = np.empty((len(survival_values), len(recruitment_values)))
    for i, surv in enumerate(survival_values):
        for j, omega in enumerate(recruitment_values):
            cell = replace(
                rates,
                translocated_survival=float(surv),
                recruited_survival=float(surv),
                recruitment_probability=float(omega),
            )
            surface[i, j] = growth_rate(build_projection_model(cell))
    return surface


def critical_recruitment_probability(model: ProjectionModel) -> Optional[float]:
    """Recruitment probability at which λ = 1.

    Returns 0.0 if adult survival alone already sustains the population and
    None if λ stays below 1 even with recruitment_probability = 1.
    """
    # At omega = 0 the spectrum is the adult diagonal
    adult_only = max(model.recruited_survival, model.translocated_survival)
    if adult_only >= 1.0:
        return 0.0

    def excess(omega: float) -> float:
        if omega == 0.0:
            return adult_only - 1.0
        return growth_rate(model.with_parameter("recruitment_probability", omega)) - 1.0

    if excess(1.0) < 0:
        return None
    return float(brentq(excess, 0.0, 1.0, xtol=1e-12))
