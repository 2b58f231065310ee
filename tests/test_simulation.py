"""Tests for reintro_pva.simulation — stochastic replicate trajectories."""

import warnings

import numpy as np
import pytest

from reintro_pva.errors import InvalidParameterError
from reintro_pva.rng import child_seed_sequence, make_generator
from reintro_pva.simulation import (
    draw_recruits,
    draw_survival_probability,
    recruitment_schedule,
    run_simulation,
    simulate_replicate,
)
from reintro_pva.types import (
    N_STAGES,
    ReproductionMode,
    Stage,
    VitalRateSet,
    founder_stage_vector,
    is_extinct,
)

FOUNDERS = founder_stage_vector(40)


def _rates(**kwargs):
    params = dict(translocated_survival=0.75, recruited_survival=0.7)
    params.update(kwargs)
    return VitalRateSet(**params)


# ── Random draws ──────────────────────────────────────────────────────

class TestDraws:
    def test_survival_boundaries(self):
        rng = np.random.default_rng(0)
        assert draw_survival_probability(0.0, 10.0, rng) == 0.0
        assert draw_survival_probability(1.0, 10.0, rng) == 1.0

    def test_survival_mean(self):
        rng = np.random.default_rng(0)
        draws = [draw_survival_probability(0.7, 20.0, rng) for _ in range(5000)]
        assert np.mean(draws) == pytest.approx(0.7, abs=0.01)
        assert all(0.0 <= d <= 1.0 for d in draws)

    def test_large_dispersion_removes_noise(self):
        rng = np.random.default_rng(0)
        draws = [draw_survival_probability(0.7, 1e6, rng) for _ in range(200)]
        assert np.std(draws) < 1e-3

    def test_no_adults_no_recruits(self):
        rng = np.random.default_rng(0)
        assert draw_recruits(0, 3.6, _rates(), rng) == 0
        assert draw_recruits(10, 0.0, _rates(), rng) == 0

    def test_recruit_mean(self):
        rng = np.random.default_rng(1)
        draws = [draw_recruits(40, 3.6, _rates(), rng) for _ in range(4000)]
        assert np.mean(draws) == pytest.approx(144.0, abs=3.0)

    def test_negative_binomial_overdispersed(self):
        rng = np.random.default_rng(2)
        nb = [draw_recruits(40, 3.6, _rates(), rng) for _ in range(4000)]
        pois_rates = _rates(reproduction_mode=ReproductionMode.POISSON)
        pois = [draw_recruits(40, 3.6, pois_rates, rng) for _ in range(4000)]
        # NB variance = m + m²/(φω·adults) ≈ 403; Poisson variance = m = 144
        assert np.var(pois) == pytest.approx(144.0, rel=0.15)
        assert np.var(nb) > 1.5 * np.var(pois)


# ── Recruitment schedule ──────────────────────────────────────────────

class TestRecruitmentSchedule:
    def test_default(self):
        np.testing.assert_array_equal(
            recruitment_schedule(3, _rates(recruitment_probability=0.2)), [0.2] * 3
        )

    def test_override(self):
        np.testing.assert_array_equal(recruitment_schedule(3, _rates(), 0.4), [0.4] * 3)

    def test_trajectory_takes_precedence(self):
        sched = recruitment_schedule(3, _rates(), 0.4, [0.1, 0.2, 0.3])
        np.testing.assert_array_equal(sched, [0.1, 0.2, 0.3])

    def test_invalid_override(self):
        with pytest.raises(InvalidParameterError):
            recruitment_schedule(3, _rates(), 1.5)

    def test_invalid_trajectory(self):
        with pytest.raises(InvalidParameterError):
            recruitment_schedule(3, _rates(), None, [0.1, 0.2])
        with pytest.raises(InvalidParameterError):
            recruitment_schedule(2, _rates(), None, [0.1, -0.2])


# ── Single replicate ──────────────────────────────────────────────────

class TestSimulateReplicate:
    def test_shapes(self):
        traj = simulate_replicate(10, FOUNDERS, _rates(), np.random.default_rng(0))
        assert traj.states.shape == (11, N_STAGES)
        assert traj.recruits.shape == (10,)
        assert traj.extinct.shape == (11,)
        assert traj.recruitment_rates.shape == (10,)
        np.testing.assert_array_equal(traj.states[0], FOUNDERS)

    def test_counts_non_negative(self):
        traj = simulate_replicate(30, FOUNDERS, _rates(), np.random.default_rng(3))
        assert np.all(traj.states >= 0)
        assert np.all(traj.recruits >= 0)

    def test_recruits_enter_first_stage(self):
        traj = simulate_replicate(20, FOUNDERS, _rates(), np.random.default_rng(4))
        np.testing.assert_array_equal(traj.states[1:, Stage.TADPOLE_1], traj.recruits)

    def test_founders_never_increase(self):
        traj = simulate_replicate(30, FOUNDERS, _rates(), np.random.default_rng(5))
        assert np.all(np.diff(traj.states[:, Stage.TRANSLOCATED_ADULT]) <= 0)

    def test_deterministic_advancement(self):
        """With certain survival a cohort moves one class per year."""
        rates = _rates(stage_survival=(1.0, 1.0, 1.0, 1.0, 1.0))
        initial = [100, 0, 0, 0, 0, 0, 0]
        traj = simulate_replicate(5, initial, rates, np.random.default_rng(0))
        for t in range(5):
            assert traj.states[t, t] == 100
            assert traj.states[t].sum() == 100
        np.testing.assert_array_equal(traj.states[5], [0, 0, 0, 0, 0, 100, 0])
        assert not traj.recruits.any()

    def test_no_recruitment(self):
        traj = simulate_replicate(
            20, FOUNDERS, _rates(), np.random.default_rng(0), recruitment_override=0.0
        )
        assert not traj.recruits.any()
        assert not traj.states[:, :Stage.RECRUITED_ADULT + 1].any()

    def test_extinction_absorbing(self):
        rates = _rates(translocated_survival=0.3, recruited_survival=0.3)
        traj = simulate_replicate(
            40, founder_stage_vector(3), rates, np.random.default_rng(0),
            recruitment_override=0.0,
        )
        assert traj.extinct[-1] == 1
        first = int(np.argmax(traj.extinct))
        assert np.all(traj.extinct[first:] == 1)
        assert not traj.states[first:].any()
        assert traj.states[first - 1].any()

    def test_extinct_flag_tracks_empty_states(self):
        rates = _rates(translocated_survival=0.5, recruited_survival=0.5)
        trajs = run_simulation(30, founder_stage_vector(4), rates, 50,
                               recruitment_override=0.05, seed=3)
        for traj in trajs:
            expected = [is_extinct(row) for row in traj.states]
            np.testing.assert_array_equal(traj.extinct.astype(bool), expected)

    def test_empty_start_is_extinct(self):
        traj = simulate_replicate(5, np.zeros(N_STAGES), _rates(),
                                  np.random.default_rng(0))
        assert np.all(traj.extinct == 1)

    def test_recruitment_trajectory_recorded(self):
        schedule = [0.0, 0.0, 0.5, 0.5]
        traj = simulate_replicate(
            4, FOUNDERS, _rates(), np.random.default_rng(0),
            recruitment_trajectory=schedule,
        )
        np.testing.assert_array_equal(traj.recruitment_rates, schedule)
        assert traj.recruits[0] == traj.recruits[1] == 0

    @pytest.mark.parametrize("steps", [0, -1, 2.5])
    def test_invalid_steps(self, steps):
        with pytest.raises(InvalidParameterError):
            simulate_replicate(steps, FOUNDERS, _rates(), np.random.default_rng(0))

    def test_invalid_initial(self):
        with pytest.raises(InvalidParameterError):
            simulate_replicate(5, [0, 0, 0, 0, 0, -1, 40], _rates(),
                               np.random.default_rng(0))

    def test_invalid_rates(self):
        with pytest.raises(InvalidParameterError):
            simulate_replicate(5, FOUNDERS, _rates(survival_dispersion=0.0),
                               np.random.default_rng(0))

    @pytest.mark.parametrize("name", ["survival_dispersion", "recruitment_dispersion"])
    def test_infinite_dispersion_rejected(self, name):
        with pytest.raises(InvalidParameterError):
            run_simulation(5, FOUNDERS, _rates(**{name: float("inf")}), 2, seed=0)


# ── Replicate ensemble ────────────────────────────────────────────────

class TestRunSimulation:
    def test_count_and_order(self):
        trajs = run_simulation(5, FOUNDERS, _rates(), 7, seed=42)
        assert len(trajs) == 7
        for k, traj in enumerate(trajs):
            rng = make_generator(child_seed_sequence(42, k))
            expected = simulate_replicate(5, FOUNDERS, _rates(), rng)
            np.testing.assert_array_equal(traj.states, expected.states)

    def test_reproducible(self):
        a = run_simulation(20, FOUNDERS, _rates(), 10, seed=42)
        b = run_simulation(20, FOUNDERS, _rates(), 10, seed=42)
        for x, y in zip(a, b):
            np.testing.assert_array_equal(x.states, y.states)
            np.testing.assert_array_equal(x.recruits, y.recruits)

    def test_different_seeds_differ(self):
        a = run_simulation(20, FOUNDERS, _rates(), 5, seed=1)
        b = run_simulation(20, FOUNDERS, _rates(), 5, seed=2)
        assert any(not np.array_equal(x.states, y.states) for x, y in zip(a, b))

    def test_replicates_independent_of_count(self):
        a = run_simulation(15, FOUNDERS, _rates(), 4, seed=9)
        b = run_simulation(15, FOUNDERS, _rates(), 12, seed=9)
        for x, y in zip(a, b[:4]):
            np.testing.assert_array_equal(x.states, y.states)

    @pytest.mark.parametrize("kwargs", [
        {"steps": 0},
        {"replicates": 0},
        {"workers": 0},
        {"initial": [0, 0, 0, 0, 0, 40]},
        {"recruitment_override": -0.1},
    ])
    def test_invalid(self, kwargs):
        params = dict(steps=5, initial=FOUNDERS, rates=_rates(), replicates=3)
        params.update(kwargs)
        with pytest.raises(InvalidParameterError):
            run_simulation(seed=0, **params)

    def test_missing_recruited_survival_matches_explicit(self):
        """Unset μR behaves exactly as μR = μT."""
        with pytest.warns(UserWarning):
            implicit = run_simulation(25, FOUNDERS, VitalRateSet(0.8), 20, seed=5)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            explicit = run_simulation(
                25, FOUNDERS, VitalRateSet(0.8, recruited_survival=0.8), 20, seed=5
            )
        for x, y in zip(implicit, explicit):
            np.testing.assert_array_equal(x.states, y.states)

    def test_survival_only_matches_binomial(self):
        """40 founders, no recruitment: P(extinct by year 10) = (1 − 0.8¹⁰)⁴⁰."""
        rates = VitalRateSet(0.8, recruited_survival=0.8, survival_dispersion=1e8)
        trajs = run_simulation(10, FOUNDERS, rates, 10000,
                               recruitment_override=0.0, seed=2024)
        observed = np.mean([tr.extinct[10] for tr in trajs])
        expected = (1.0 - 0.8 ** 10) ** 40
        assert observed == pytest.approx(expected, abs=0.005)

    def test_survival_only_mean_abundance(self):
        rates = VitalRateSet(0.8, recruited_survival=0.8)
        trajs = run_simulation(10, FOUNDERS, rates, 2000,
                               recruitment_override=0.0, seed=11)
        mean_final = np.mean([tr.adult_abundance[10] for tr in trajs])
        assert mean_final == pytest.approx(40 * 0.8 ** 10, rel=0.05)
