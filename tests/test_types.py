"""Tests for reintro_pva.types — enums, stage vectors, vital rates, outputs."""

import dataclasses
import math

import numpy as np
import pytest

from reintro_pva.errors import InvalidParameterError
from reintro_pva.types import (
    ADULT_STAGES,
    DEFAULT_STAGE_SURVIVAL,
    N_PREADULT,
    N_STAGES,
    ExtinctionCurve,
    ReproductionMode,
    Stage,
    Trajectory,
    VitalRateSet,
    as_stage_vector,
    founder_stage_vector,
    is_extinct,
)


# ── Enum tests ────────────────────────────────────────────────────────

class TestStageEnum:
    def test_values(self):
        assert Stage.TADPOLE_1 == 0
        assert Stage.SUBADULT == 4
        assert Stage.RECRUITED_ADULT == 5
        assert Stage.TRANSLOCATED_ADULT == 6

    def test_count(self):
        assert len(Stage) == 7
        assert N_STAGES == 7
        assert N_PREADULT == 5

    def test_adults_are_oldest(self):
        assert ADULT_STAGES == (Stage.RECRUITED_ADULT, Stage.TRANSLOCATED_ADULT)

    def test_integer_compatible(self):
        arr = np.zeros(N_STAGES)
        arr[Stage.TRANSLOCATED_ADULT] = 1.0
        assert arr[6] == 1.0


class TestReproductionMode:
    def test_from_string(self):
        assert ReproductionMode("negative_binomial") is ReproductionMode.NEGATIVE_BINOMIAL
        assert ReproductionMode("poisson") is ReproductionMode.POISSON

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            ReproductionMode("lottery")


# ── Stage vectors ─────────────────────────────────────────────────────

class TestStageVector:
    def test_conversion(self):
        vec = as_stage_vector([0, 0, 0, 0, 0, 0, 40])
        assert vec.dtype == np.int64
        assert vec.tolist() == [0, 0, 0, 0, 0, 0, 40]

    def test_float_counts_accepted_if_integral(self):
        vec = as_stage_vector([1.0, 0, 0, 0, 0, 0, 2.0])
        assert vec.tolist() == [1, 0, 0, 0, 0, 0, 2]

    def test_returns_copy(self):
        src = np.array([0, 0, 0, 0, 0, 0, 5])
        vec = as_stage_vector(src)
        vec[6] = 0
        assert src[6] == 5

    @pytest.mark.parametrize("values", [
        [0, 0, 0, 0, 0, 40],            # too short
        [0, 0, 0, 0, 0, 0, 0, 40],      # too long
        [0, 0, 0, 0, 0, -1, 40],        # negative
        [0, 0, 0, 0, 0, 0.5, 40],       # fractional
    ])
    def test_invalid(self, values):
        with pytest.raises(InvalidParameterError):
            as_stage_vector(values)

    def test_founders(self):
        vec = founder_stage_vector(40)
        assert vec[Stage.TRANSLOCATED_ADULT] == 40
        assert vec.sum() == 40

    def test_is_extinct(self):
        assert is_extinct(np.zeros(N_STAGES, dtype=np.int64))
        assert not is_extinct(founder_stage_vector(1))


# ── Vital rates ───────────────────────────────────────────────────────

class TestVitalRateSet:
    def test_defaults_valid(self):
        rates = VitalRateSet(translocated_survival=0.8)
        rates.validate()
        assert rates.stage_survival == DEFAULT_STAGE_SURVIVAL
        assert rates.reproduction_mode is ReproductionMode.NEGATIVE_BINOMIAL

    def test_missing_recruited(self):
        assert not VitalRateSet(0.8).has_recruited_survival
        assert not VitalRateSet(0.8, recruited_survival=math.nan).has_recruited_survival
        assert VitalRateSet(0.8, recruited_survival=0.6).has_recruited_survival

    def test_nan_recruited_passes_validation(self):
        VitalRateSet(0.8, recruited_survival=math.nan).validate()

    def test_numpy_nan_recruited_is_missing(self):
        rates = VitalRateSet(0.8, recruited_survival=np.float32("nan"))
        assert not rates.has_recruited_survival
        rates.validate()

    def test_frozen(self):
        rates = VitalRateSet(0.8)
        with pytest.raises(dataclasses.FrozenInstanceError):
            rates.translocated_survival = 0.5

    @pytest.mark.parametrize("kwargs", [
        {"translocated_survival": 1.2},
        {"translocated_survival": -0.1},
        {"recruited_survival": 1.01},
        {"recruitment_probability": 1.5},
        {"survival_dispersion": 0.0},
        {"recruitment_dispersion": -2.0},
        {"survival_dispersion": math.inf},
        {"recruitment_dispersion": math.inf},
        {"recruitment_dispersion": math.nan},
        {"degenerate_interval_width": 0.0},
        {"degenerate_interval_width": 1.5},
        {"fecundity": -1.0},
        {"fecundity": math.inf},
        {"stage_survival": (0.5, 0.5, 0.6, 0.7)},
        {"stage_survival": (0.5, 0.5, 0.6, 0.7, 1.3)},
        {"translocated_interval": (0.9, 0.7)},
        {"recruited_interval": (0.1, 1.2)},
        {"reproduction_mode": "nbd"},
    ])
    def test_invalid(self, kwargs):
        params = {"translocated_survival": 0.8}
        params.update(kwargs)
        with pytest.raises(InvalidParameterError):
            VitalRateSet(**params).validate()

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            VitalRateSet(translocated_survival=2.0).validate()


# ── Outputs ───────────────────────────────────────────────────────────

class TestTrajectory:
    def _traj(self):
        states = np.array([
            [0, 0, 0, 0, 0, 0, 10],
            [20, 0, 0, 0, 0, 0, 8],
            [15, 10, 0, 0, 0, 1, 6],
        ], dtype=np.int64)
        return Trajectory(
            states=states,
            recruits=np.array([20, 15]),
            extinct=np.zeros(3, dtype=np.int8),
            recruitment_rates=np.array([0.3, 0.3]),
        )

    def test_steps(self):
        assert self._traj().steps == 2

    def test_adult_abundance(self):
        np.testing.assert_array_equal(self._traj().adult_abundance, [10, 8, 7])

    def test_total_abundance(self):
        np.testing.assert_array_equal(self._traj().total_abundance, [10, 28, 32])


class TestExtinctionCurve:
    def test_steps_and_time(self):
        curve = ExtinctionCurve(probability=np.array([0.0, 0.1, 0.2]), n_replicates=10)
        assert curve.steps == 2
        np.testing.assert_array_equal(curve.time, [0, 1, 2])
