"""Survival estimates and their credible intervals.

The Bayesian survival model upstream delivers, per population, a point
estimate and a credible interval for translocated-adult survival and, where
enough locally recruited adults were marked, for recruited-adult survival.
Some populations have no recruited estimate at all, and some have one whose
interval spans nearly all of [0, 1]. Both cases are treated the same way:
the recruited estimate is unusable and translocated survival stands in for it.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Tuple

from reintro_pva.errors import DegenerateEstimateError, InvalidParameterError
from reintro_pva.types import (
    DEFAULT_DEGENERATE_INTERVAL_WIDTH,
    ReproductionMode,
    VitalRateSet,
)

if TYPE_CHECKING:
    from reintro_pva.config import DemographySection, PopulationEntry


DEGENERATE_INTERVAL_WIDTH = DEFAULT_DEGENERATE_INTERVAL_WIDTH

BOUNDS = ("median", "lower", "upper")


def check_survival_estimate(
    point: Optional[float],
    interval: Optional[Tuple[float, float]] = None,
    max_width: float = DEGENERATE_INTERVAL_WIDTH,
) -> float:
    """Return the point estimate if it is usable.

    Raises:
        DegenerateEstimateError: Estimate missing/NaN, or interval width
            >= max_width.
    """
    if point is None or math.isnan(point):
        raise DegenerateEstimateError("no survival estimate available")
    if interval is not None:
        width = interval[1] - interval[0]
        if width >= max_width:
            raise DegenerateEstimateError(
                f"credible interval ({interval[0]:.3f}, {interval[1]:.3f}) "
                f"has width {width:.3f} >= {max_width}"
            )
    return float(point)


def resolve_recruited_survival(
    rates: VitalRateSet,
    max_width: Optional[float] = None,
) -> VitalRateSet:
    """Substitute translocated survival for an unusable recruited estimate.

    max_width defaults to rates.degenerate_interval_width, so rates built
    with a configured width resolve the same way wherever they are used.

    Returns `rates` unchanged when the recruited estimate is usable,
    otherwise a copy with recruited_survival (and its interval) taken from
    the translocated estimate. A UserWarning records the substitution.
    """
    if max_width is None:
        max_width = rates.degenerate_interval_width
    try:
        check_survival_estimate(
            rates.recruited_survival, rates.recruited_interval, max_width
        )
    except DegenerateEstimateError as err:
        warnings.warn(
            f"Recruited-adult survival unusable ({err}); using translocated "
            f"survival {rates.translocated_survival:.4f}",
            UserWarning,
            stacklevel=2,
        )
        return replace(
            rates,
            recruited_survival=rates.translocated_survival,
            recruited_interval=rates.translocated_interval,
        )
    return rates


def rates_at_bound(rates: VitalRateSet, bound: str) -> VitalRateSet:
    """Replace both adult survivals by their lower or upper credible bound.

    `bound` is one of BOUNDS; "median" returns the (resolved) point
    estimates. A missing interval leaves the point estimate in place.
    """
    if bound not in BOUNDS:
        raise InvalidParameterError(f"bound must be one of {BOUNDS}, got {bound!r}")
    rates = resolve_recruited_survival(rates)
    if bound == "median":
        return rates

    idx = 0 if bound == "lower" else 1
    mu_t = rates.translocated_survival
    if rates.translocated_interval is not None:
        mu_t = rates.translocated_interval[idx]
    mu_r = rates.recruited_survival
    if rates.recruited_interval is not None:
        mu_r = rates.recruited_interval[idx]
    return replace(rates, translocated_survival=mu_t, recruited_survival=mu_r)


def build_vital_rates(
    population: "PopulationEntry",
    demography: "DemographySection",
) -> VitalRateSet:
    """Combine a population's survival estimates with shared demography.

    The configured degenerate width travels with the returned rates, so
    later resolution in the builder or simulator agrees with this one.
    """
    rates = VitalRateSet(
        translocated_survival=population.translocated_survival,
        recruited_survival=population.recruited_survival,
        recruitment_probability=demography.recruitment_probability,
        survival_dispersion=demography.survival_dispersion,
        recruitment_dispersion=demography.recruitment_dispersion,
        fecundity=demography.fecundity,
        stage_survival=tuple(demography.stage_survival),
        reproduction_mode=ReproductionMode(demography.reproduction_mode),
        translocated_interval=_as_interval(population.translocated_interval),
        recruited_interval=_as_interval(population.recruited_interval),
        degenerate_interval_width=demography.degenerate_interval_width,
    )
    rates.validate()
    return resolve_recruited_survival(rates)


def _as_interval(values) -> Optional[Tuple[float, float]]:
    if values is None:
        return None
    return (float(values[0]), float(values[1]))
