"""Per-population viability analysis driver.

For each configured population:
  1. Build the VitalRateSet (recruited survival resolved by fallback)
  2. λ at the median and credible bounds of survival
  3. Sensitivity and elasticity of λ, and the ω at which λ = 1
  4. Extinction curves over the recruitment-probability sweep, the
     extinction risk at the horizon and the ω at which it crosses the
     configured threshold

Populations get independent seed streams (child i of simulation.seed), so
adding a population does not change the results of the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from reintro_pva.analysis import (
    GrowthRateInterval,
    critical_recruitment_probability,
    elasticity,
    growth_rate_interval,
    sensitivity,
)
from reintro_pva.config import AnalysisConfig, PopulationEntry
from reintro_pva.estimates import build_vital_rates
from reintro_pva.extinction import critical_recruitment, sweep, terminal_values
from reintro_pva.projection import build_projection_model
from reintro_pva.rng import SeedLike, child_seed_sequence
from reintro_pva.types import (
    ExtinctionCurve,
    VitalRateSet,
    as_stage_vector,
    founder_stage_vector,
)

logger = logging.getLogger(__name__)


@dataclass
class PopulationReport:
    """Everything computed for one population."""
    name: str
    rates: VitalRateSet
    growth_rate: GrowthRateInterval
    sensitivity: Dict[str, float]
    elasticity: Dict[str, float]
    lambda_one_recruitment: Optional[float]    # ω with λ = 1
    curves: Dict[float, ExtinctionCurve] = field(default_factory=dict)
    terminal: Dict[float, float] = field(default_factory=dict)
    critical_recruitment: Optional[float] = None  # ω with risk = threshold

    def survival_comparison(self) -> Dict[str, float]:
        """Recruited vs translocated survival with credible bounds."""
        r = self.rates
        rec_lo, rec_hi = r.recruited_interval or (r.recruited_survival,) * 2
        tra_lo, tra_hi = r.translocated_interval or (r.translocated_survival,) * 2
        return {
            "recruited": r.recruited_survival,
            "recruited_lower": rec_lo,
            "recruited_upper": rec_hi,
            "translocated": r.translocated_survival,
            "translocated_lower": tra_lo,
            "translocated_upper": tra_hi,
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable summary (curves as plain lists)."""
        return {
            "name": self.name,
            "growth_rate": self.growth_rate.as_dict(),
            "sensitivity": dict(self.sensitivity),
            "elasticity": dict(self.elasticity),
            "lambda_one_recruitment": self.lambda_one_recruitment,
            "survival": self.survival_comparison(),
            "extinction_curves": {
                str(omega): curve.probability.tolist()
                for omega, curve in self.curves.items()
            },
            "terminal_extinction": {str(k): v for k, v in self.terminal.items()},
            "critical_recruitment": self.critical_recruitment,
        }


def initial_vector(population: PopulationEntry, config: AnalysisConfig):
    if population.initial is not None:
        return as_stage_vector(population.initial)
    return founder_stage_vector(config.simulation.initial_founders)


def analyze_population(
    population: PopulationEntry,
    config: AnalysisConfig,
    seed: SeedLike = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> PopulationReport:
    """Deterministic and stochastic analysis of one population.

    `seed` defaults to config.simulation.seed. The projection-matrix
    quantities are computed first so an AnalysisFailedError surfaces before
    any replicate is simulated.
    """
    rates = build_vital_rates(population, config.demography)
    model = build_projection_model(rates)
    growth = growth_rate_interval(rates)
    sens = sensitivity(model)
    elas = elasticity(model)
    lambda_one = critical_recruitment_probability(model)

    sim = config.simulation
    sw = config.sweep
    curves = sweep(
        rates,
        sw.recruitment_values,
        sim.steps,
        sim.replicates,
        initial=initial_vector(population, config),
        seed=sim.seed if seed is None else seed,
        workers=sim.parallel_workers,
        quantiles=sw.quantiles,
        should_stop=should_stop,
    )
    terminal = terminal_values(curves, sw.horizon)

    return PopulationReport(
        name=population.name,
        rates=rates,
        growth_rate=growth,
        sensitivity=sens,
        elasticity=elas,
        lambda_one_recruitment=lambda_one,
        curves=curves,
        terminal=terminal,
        critical_recruitment=critical_recruitment(
            curves, sw.horizon, sw.extinction_threshold
        ),
    )


def run_analysis(
    config: AnalysisConfig,
    should_stop: Optional[Callable[[], bool]] = None,
) -> List[PopulationReport]:
    """analyze_population() for every configured population, in order.

    should_stop is polled between populations and between sweep values.
    """
    reports = []
    for i, population in enumerate(config.populations):
        if should_stop is not None and should_stop():
            logger.warning(
                "Analysis cancelled after %d of %d populations",
                len(reports), len(config.populations),
            )
            break
        logger.info("Working on population %s", population.name)
        seed = child_seed_sequence(config.simulation.seed, i)
        reports.append(analyze_population(population, config, seed, should_stop))
    return reports
