"""
Tests for the latent-logistic ordinal simulator in ordinal_po/simulate.py.

Covers categorization against effective thresholds, reproducibility from an
explicit generator, exposure handling, zero-padding of the non-proportional
adjustment, and rejection of crossing thresholds.

Run: pytest tests/test_simulate.py -v
"""

import numpy as np
import pandas as pd
import pytest

from ordinal_po.config import GRADE_PROBS, ScenarioConfig
from ordinal_po.errors import InvalidInput
from ordinal_po.simulate import (
    assign_exposure,
    categorize,
    pad_np_adjustment,
    simulate_ordinal,
    simulate_scenario,
    subject_thresholds,
)
from ordinal_po.thresholds import derive_thresholds


# ── categorize() ─────────────────────────────────────────────────────────────


class TestCategorize:
    """category = 1 + number of effective thresholds exceeded."""

    def test_hand_checked(self):
        eff = np.tile([-1.0, 1.0], (4, 1))
        latent = np.array([-10.0, 0.0, 10.0, -1.0])
        assert categorize(latent, eff).tolist() == [1, 2, 3, 1]

    def test_per_subject_thresholds(self):
        eff = np.array([[0.0, 1.0], [-5.0, -4.0]])
        latent = np.array([0.5, 0.5])
        assert categorize(latent, eff).tolist() == [2, 3]


# ── subject_thresholds() / padding ───────────────────────────────────────────


class TestSubjectThresholds:
    def test_proportional_shift(self):
        theta = np.array([-1.0, 0.0, 1.0])
        eff = subject_thresholds(theta, np.array([0.0, 0.7]), np.array([0, 1]))
        np.testing.assert_allclose(eff[0], theta)
        np.testing.assert_allclose(eff[1], theta - 0.7)

    def test_np_adjustment_only_for_exposed(self):
        theta = np.array([-1.0, 0.0, 1.0])
        eff = subject_thresholds(theta, np.zeros(2), np.array([0, 1]), [0.0, 0.5])
        np.testing.assert_allclose(eff[0], theta)
        np.testing.assert_allclose(eff[1], [-1.0, 0.5, 1.0])

    def test_crossing_rejected(self):
        theta = np.array([-1.0, 0.0, 1.0])
        with pytest.raises(InvalidInput):
            subject_thresholds(theta, np.zeros(2), np.array([0, 1]), [0.0, -2.0])

    def test_crossing_ignored_when_nobody_exposed(self):
        theta = np.array([-1.0, 0.0, 1.0])
        eff = subject_thresholds(theta, np.zeros(2), np.array([0, 0]), [0.0, -2.0])
        np.testing.assert_allclose(eff, np.tile(theta, (2, 1)))


class TestPadNpAdjustment:
    def test_none_is_zero(self):
        assert pad_np_adjustment(None, 4).tolist() == [0.0] * 4

    def test_shorter_is_zero_padded(self):
        assert pad_np_adjustment([0.0, 0.0, -1.0], 4).tolist() == [0.0, 0.0, -1.0, 0.0]

    def test_longer_rejected(self):
        with pytest.raises(InvalidInput):
            pad_np_adjustment([0.1] * 5, 4)

    def test_non_finite_rejected(self):
        with pytest.raises(InvalidInput):
            pad_np_adjustment([np.inf], 4)


# ── assign_exposure() ────────────────────────────────────────────────────────


class TestAssignExposure:
    def test_binary_and_ratio(self):
        e = assign_exposure(20000, 0.3, np.random.default_rng(1))
        assert set(np.unique(e).tolist()) <= {0, 1}
        assert e.mean() == pytest.approx(0.3, abs=0.02)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.2, 1.5])
    def test_bad_ratio(self, p):
        with pytest.raises(InvalidInput):
            assign_exposure(10, p, np.random.default_rng(0))

    def test_bad_n(self):
        with pytest.raises(InvalidInput):
            assign_exposure(0, 0.5, np.random.default_rng(0))


# ── simulate_ordinal() ───────────────────────────────────────────────────────


class TestSimulateOrdinal:
    def test_columns_and_range(self):
        df = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), n_subjects=500)
        assert list(df.columns) == ["exposed", "latent", "category"]
        assert len(df) == 500
        assert df["category"].between(1, 5).all()

    def test_reproducible_from_seed(self):
        a = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(42), n_subjects=300)
        b = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(42), n_subjects=300)
        pd.testing.assert_frame_equal(a, b)

    def test_different_seeds_differ(self):
        a = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(1), n_subjects=300)
        b = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(2), n_subjects=300)
        assert not a["latent"].equals(b["latent"])

    def test_category_matches_latent_draw(self):
        df = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(3), n_subjects=1000)
        theta = derive_thresholds(GRADE_PROBS)
        eff = theta[None, :] - 0.7 * df["exposed"].to_numpy()[:, None]
        expected = 1 + (df["latent"].to_numpy()[:, None] > eff).sum(axis=1)
        assert df["category"].tolist() == expected.tolist()

    def test_no_effect_reproduces_baseline(self):
        """beta = 0: category frequencies match the input probabilities."""
        df = simulate_ordinal(GRADE_PROBS, beta=0.0, rng=np.random.default_rng(5), n_subjects=25000)
        freq = df["category"].value_counts(normalize=True).sort_index().to_numpy()
        np.testing.assert_allclose(freq, GRADE_PROBS, atol=0.01)

    def test_positive_beta_shifts_exposed_up(self):
        df = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(6), n_subjects=20000)
        means = df.groupby("exposed")["category"].mean()
        assert means[1] > means[0]

    def test_explicit_exposure(self):
        exposed = [0, 1] * 50
        df = simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), exposed=exposed)
        assert df["exposed"].tolist() == exposed

    def test_exposure_must_be_binary(self):
        with pytest.raises(InvalidInput):
            simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), exposed=[0, 2, 1])

    def test_needs_size_or_exposure(self):
        with pytest.raises(InvalidInput):
            simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0))

    def test_extra_covariates_drawn(self):
        df = simulate_ordinal(
            GRADE_PROBS,
            beta=0.7,
            rng=np.random.default_rng(0),
            n_subjects=400,
            covariate_effects={"age": 0.3},
        )
        assert list(df.columns) == ["exposed", "age", "latent", "category"]
        assert abs(df["age"].mean()) < 0.2

    def test_supplied_covariates_used(self):
        cov = pd.DataFrame({"age": np.linspace(-1.0, 1.0, 50)})
        df = simulate_ordinal(
            GRADE_PROBS,
            beta=0.7,
            rng=np.random.default_rng(0),
            n_subjects=50,
            covariates=cov,
            covariate_effects={"age": 0.3},
        )
        np.testing.assert_allclose(df["age"].to_numpy(), cov["age"].to_numpy())

    @pytest.mark.parametrize("name", ["exposed", "latent", "category"])
    def test_effect_on_reserved_name_rejected(self, name):
        with pytest.raises(InvalidInput, match="reserved"):
            simulate_ordinal(
                GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), n_subjects=20, covariate_effects={name: 0.3}
            )

    def test_supplied_reserved_column_rejected(self):
        cov = pd.DataFrame({"category": np.zeros(20)})
        with pytest.raises(InvalidInput, match="reserved"):
            simulate_ordinal(GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), n_subjects=20, covariates=cov)

    def test_adjustment_too_long(self):
        with pytest.raises(InvalidInput):
            simulate_ordinal(
                GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), n_subjects=10, np_adjustment=[0.0] * 5
            )

    def test_crossing_adjustment(self):
        """-3.0 at threshold 3 drops it below threshold 2 for exposed subjects."""
        with pytest.raises(InvalidInput):
            simulate_ordinal(
                GRADE_PROBS, beta=0.7, rng=np.random.default_rng(0), n_subjects=100, np_adjustment=[0.0, 0.0, -3.0]
            )

    def test_non_proportional_moves_third_split(self, npo_subjects):
        """Exposed log cumulative odds at threshold 3 drop by beta + 1.0."""
        df = npo_subjects
        theta = derive_thresholds(GRADE_PROBS)
        p_exp = (df.loc[df["exposed"] == 1, "category"] <= 3).mean()
        assert np.log(p_exp / (1 - p_exp)) == pytest.approx(theta[2] - 1.7, abs=0.1)


class TestSimulateScenario:
    def test_seeded_from_config(self):
        cfg = ScenarioConfig(n_subjects=200, seed=11)
        pd.testing.assert_frame_equal(simulate_scenario(cfg), simulate_scenario(cfg))

    def test_explicit_rng_overrides_seed(self):
        cfg = ScenarioConfig(n_subjects=200, seed=11)
        a = simulate_scenario(cfg, rng=np.random.default_rng(11))
        pd.testing.assert_frame_equal(a, simulate_scenario(cfg))
