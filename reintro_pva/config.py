"""Configuration system for reintro_pva.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Sections map 1:1 to YAML top-level keys; unknown keys are ignored.
Populations are a top-level list, one entry per reintroduced population,
holding the survival estimates delivered by the upstream survival model.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from reintro_pva.errors import InvalidParameterError
from reintro_pva.types import (
    DEFAULT_FECUNDITY,
    DEFAULT_FOUNDERS,
    DEFAULT_RECRUITMENT_DISPERSION,
    DEFAULT_RECRUITMENT_PROBABILITY,
    DEFAULT_STAGE_SURVIVAL,
    DEFAULT_SURVIVAL_DISPERSION,
    N_PREADULT,
    N_STAGES,
    ReproductionMode,
)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Monte Carlo control."""
    seed: int = 42
    steps: int = 50               # Years simulated
    replicates: int = 1000        # Trajectories per configuration
    parallel_workers: int = 1     # Worker processes (1 = serial)
    initial_founders: int = DEFAULT_FOUNDERS  # Default release size (translocated adults)


@dataclass
class DemographySection:
    """Vital rates shared by all populations."""
    stage_survival: List[float] = field(
        default_factory=lambda: list(DEFAULT_STAGE_SURVIVAL)
    )
    fecundity: float = DEFAULT_FECUNDITY
    recruitment_probability: float = DEFAULT_RECRUITMENT_PROBABILITY
    survival_dispersion: float = DEFAULT_SURVIVAL_DISPERSION
    recruitment_dispersion: float = DEFAULT_RECRUITMENT_DISPERSION
    reproduction_mode: str = "negative_binomial"  # 'negative_binomial' | 'poisson'
    degenerate_interval_width: float = 0.9        # Recruited-survival fallback trigger


@dataclass
class SweepSection:
    """Recruitment-probability sweep and summary horizon."""
    recruitment_values: List[float] = field(
        default_factory=lambda: [0.15, 0.2, 0.25, 0.3, 0.35, 0.4]
    )
    horizon: int = 50                    # Year at which extinction risk is compared
    extinction_threshold: float = 0.5    # Risk level defining the critical ω
    quantiles: List[float] = field(default_factory=lambda: [0.025, 0.5, 0.975])


@dataclass
class PopulationEntry:
    """Survival estimates for one reintroduced population.

    recruited_survival is None when no locally recruited adults were
    marked. initial=None releases simulation.initial_founders founders.
    """
    name: str
    translocated_survival: float
    translocated_interval: Optional[Tuple[float, float]] = None
    recruited_survival: Optional[float] = None
    recruited_interval: Optional[Tuple[float, float]] = None
    initial: Optional[List[int]] = None


@dataclass
class AnalysisConfig:
    """Complete analysis configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    demography: DemographySection = field(default_factory=DemographySection)
    sweep: SweepSection = field(default_factory=SweepSection)
    populations: List[PopulationEntry] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists) are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> AnalysisConfig:
    """Convert a merged YAML dict to an AnalysisConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'demography': DemographySection,
        'sweep': SweepSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    populations = []
    if 'populations' in data and isinstance(data['populations'], list):
        for entry in data['populations']:
            if isinstance(entry, dict):
                entry = dict(entry)  # don't mutate original
                entry['name'] = str(entry.get('name', len(populations)))
                for key in ('translocated_interval', 'recruited_interval'):
                    if isinstance(entry.get(key), list):
                        entry[key] = tuple(entry[key])
                populations.append(_dict_to_section(PopulationEntry, entry))
    sections['populations'] = populations

    return AnalysisConfig(**sections)


def config_to_dict(config: AnalysisConfig) -> Dict:
    """Plain-dict form of a config (tuples as lists), suitable for yaml.dump."""
    data = dataclasses.asdict(config)
    for entry in data['populations']:
        for key in ('translocated_interval', 'recruited_interval'):
            if entry[key] is not None:
                entry[key] = list(entry[key])
    return data


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _in_unit(value) -> bool:
    return value is not None and 0.0 <= value <= 1.0


def _check_interval(label: str, interval) -> None:
    if interval is None:
        return
    if (len(interval) != 2 or not _in_unit(interval[0]) or not _in_unit(interval[1])
            or interval[0] > interval[1]):
        raise InvalidParameterError(
            f"{label} must be (lower, upper) with 0 <= lower <= upper <= 1, "
            f"got {interval}"
        )


def validate_config(config: AnalysisConfig) -> None:
    """Validate configuration constraints. Raises InvalidParameterError.

    Checks:
      - Positive step, replicate, worker and founder counts
      - Demographic probabilities in [0, 1], dispersions > 0
      - Sweep values in [0, 1], horizon within the simulated years
      - Population estimates and initial vectors well formed
    """
    sim = config.simulation
    if sim.seed < 0:
        raise InvalidParameterError("simulation.seed must be non-negative")
    for name in ('steps', 'replicates', 'parallel_workers'):
        if getattr(sim, name) < 1:
            raise InvalidParameterError(
                f"simulation.{name} must be >= 1, got {getattr(sim, name)}"
            )
    if sim.initial_founders < 0:
        raise InvalidParameterError(
            f"simulation.initial_founders must be >= 0, got {sim.initial_founders}"
        )

    demo = config.demography
    if len(demo.stage_survival) != N_PREADULT:
        raise InvalidParameterError(
            f"demography.stage_survival must have {N_PREADULT} elements "
            f"(one per pre-adult stage), got {len(demo.stage_survival)}"
        )
    for i, s in enumerate(demo.stage_survival):
        if not _in_unit(s):
            raise InvalidParameterError(
                f"demography.stage_survival[{i}] must be in [0, 1], got {s}"
            )
    if not _in_unit(demo.recruitment_probability):
        raise InvalidParameterError(
            f"demography.recruitment_probability must be in [0, 1], "
            f"got {demo.recruitment_probability}"
        )
    if demo.fecundity < 0 or not math.isfinite(demo.fecundity):
        raise InvalidParameterError("demography.fecundity must be finite and >= 0")
    for name in ("survival_dispersion", "recruitment_dispersion"):
        value = getattr(demo, name)
        if not (math.isfinite(value) and value > 0):
            raise InvalidParameterError(
                f"demography.{name} must be finite and > 0, got {value}"
            )
    valid_modes = {m.value for m in ReproductionMode}
    if demo.reproduction_mode not in valid_modes:
        raise InvalidParameterError(
            f"demography.reproduction_mode must be one of {valid_modes}, "
            f"got '{demo.reproduction_mode}'"
        )
    if not (0.0 < demo.degenerate_interval_width <= 1.0):
        raise InvalidParameterError(
            "demography.degenerate_interval_width must be in (0, 1]"
        )

    sw = config.sweep
    for omega in sw.recruitment_values:
        if not _in_unit(omega):
            raise InvalidParameterError(
                f"sweep.recruitment_values must be in [0, 1], got {omega}"
            )
    if not (0 <= sw.horizon <= sim.steps):
        raise InvalidParameterError(
            f"sweep.horizon ({sw.horizon}) must be within 0..simulation.steps "
            f"({sim.steps})"
        )
    if not _in_unit(sw.extinction_threshold):
        raise InvalidParameterError("sweep.extinction_threshold must be in [0, 1]")
    for q in sw.quantiles:
        if not _in_unit(q):
            raise InvalidParameterError(f"sweep.quantiles must be in [0, 1], got {q}")

    names = set()
    for i, pop in enumerate(config.populations):
        if pop.name in names:
            raise InvalidParameterError(f"duplicate population name '{pop.name}'")
        names.add(pop.name)
        if not _in_unit(pop.translocated_survival):
            raise InvalidParameterError(
                f"populations[{i}].translocated_survival must be in [0, 1], "
                f"got {pop.translocated_survival}"
            )
        if (pop.recruited_survival is not None
                and not math.isnan(pop.recruited_survival)
                and not _in_unit(pop.recruited_survival)):
            raise InvalidParameterError(
                f"populations[{i}].recruited_survival must be in [0, 1], "
                f"got {pop.recruited_survival}"
            )
        _check_interval(f"populations[{i}].translocated_interval",
                        pop.translocated_interval)
        _check_interval(f"populations[{i}].recruited_interval",
                        pop.recruited_interval)
        if pop.initial is not None:
            if len(pop.initial) != N_STAGES or any(c < 0 for c in pop.initial):
                raise InvalidParameterError(
                    f"populations[{i}].initial must have {N_STAGES} "
                    f"non-negative counts, got {pop.initial}"
                )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> AnalysisConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path, or a given scenario_path, doesn't exist.
        InvalidParameterError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> AnalysisConfig:
    """Return an AnalysisConfig with all default values and no populations."""
    config = AnalysisConfig()
    validate_config(config)
    return config
