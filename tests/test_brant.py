"""
Tests for the Brant parallel-slopes test in ordinal_po/brant.py.

Covers the per-threshold binary fits (sign convention and ordering), the
stacked covariance, contrast construction, degrees of freedom, and the
behavior on proportional vs non-proportional simulated data.

Run: pytest tests/test_brant.py -v
"""

import numpy as np
import pandas as pd
import pytest

from ordinal_po.brant import (
    OMNIBUS,
    binary_split_counts,
    brant_covariance,
    brant_test,
    contrast_matrix,
    fit_threshold_logits,
)
from ordinal_po.config import GRADE_PROBS
from ordinal_po.cumlogit import fit_cumulative_logit
from ordinal_po.errors import InvalidInput
from ordinal_po.simulate import simulate_ordinal


@pytest.fixture(scope="module")
def po_result(po_fit, po_subjects):
    return brant_test(po_fit, po_subjects["category"], po_subjects[["exposed"]])


@pytest.fixture(scope="module")
def npo_result(npo_fit, npo_subjects):
    return brant_test(npo_fit, npo_subjects["category"], npo_subjects[["exposed"]])


@pytest.fixture(scope="module")
def two_covariate():
    rng = np.random.default_rng(31)
    df = simulate_ordinal(
        [0.15, 0.25, 0.35, 0.25], beta=0.5, rng=rng, n_subjects=6000, covariate_effects={"x": 0.4}
    )
    X = df[["exposed", "x"]]
    fit = fit_cumulative_logit(df["category"], X)
    return fit, df["category"].to_numpy(), X


# ── contrast_matrix() ────────────────────────────────────────────────────────


class TestContrastMatrix:
    def test_single_covariate(self):
        D = contrast_matrix(3, 1)
        np.testing.assert_array_equal(D, [[1, -1, 0], [1, 0, -1]])

    def test_two_covariates(self):
        D = contrast_matrix(3, 2)
        expected = [
            [1, 0, -1, 0, 0, 0],
            [0, 1, 0, -1, 0, 0],
            [1, 0, 0, 0, -1, 0],
            [0, 1, 0, 0, 0, -1],
        ]
        np.testing.assert_array_equal(D, expected)

    def test_needs_two_thresholds(self):
        with pytest.raises(InvalidInput):
            contrast_matrix(1, 1)


# ── fit_threshold_logits() ───────────────────────────────────────────────────


class TestThresholdLogits:
    def test_one_fit_per_threshold_in_order(self, po_result):
        assert [tf.threshold for tf in po_result.threshold_fits] == [1, 2, 3, 4]

    def test_slopes_negated(self, po_result):
        for tf in po_result.threshold_fits:
            assert tf.slopes["exposed"] == pytest.approx(-tf.params["exposed"])

    def test_slopes_on_cumulative_logit_scale(self, po_result):
        """Upward shift => positive slope at every split."""
        for tf in po_result.threshold_fits:
            assert tf.slopes["exposed"] > 0

    def test_well_populated_splits_recover_beta(self, po_result):
        by_threshold = {tf.threshold: tf for tf in po_result.threshold_fits}
        assert by_threshold[3].slopes["exposed"] == pytest.approx(0.7, abs=0.15)
        assert by_threshold[4].slopes["exposed"] == pytest.approx(0.7, abs=0.15)

    def test_split_counts(self):
        tab = binary_split_counts([1, 1, 2, 3, 3, 3], 3)
        assert tab["n_below"].tolist() == [2, 3]
        assert tab["n_above"].tolist() == [4, 3]

    def test_binary_fit_matches_marginal_log_odds_ratio(self):
        """With one binary covariate the binary logit slope is the 2x2 log odds ratio."""
        y = np.array([1] * 30 + [2] * 70 + [1] * 10 + [2] * 90)
        e = np.array([0] * 100 + [1] * 100, dtype=float)
        fits = fit_threshold_logits(y, pd.DataFrame({"exposed": e}))
        log_or = np.log((10 / 90) / (30 / 70))
        assert fits[0].slopes["exposed"] == pytest.approx(-log_or, abs=1e-5)

    def test_needs_a_covariate(self):
        with pytest.raises(InvalidInput):
            fit_threshold_logits([1, 2, 3], None)

    def test_sparse_split_warns(self):
        rng = np.random.default_rng(0)
        y = np.array([1] * 5 + [2] * 200 + [3] * 200)
        x = rng.standard_normal(y.size)
        with pytest.warns(RuntimeWarning, match="very few observations"):
            fit_threshold_logits(y, x)


# ── brant_covariance() ───────────────────────────────────────────────────────


class TestBrantCovariance:
    def test_shape_and_symmetry(self, two_covariate):
        _, y, X = two_covariate
        fits = fit_threshold_logits(y, X)
        V = brant_covariance(fits, X)
        assert V.shape == (6, 6)
        np.testing.assert_allclose(V, V.T, atol=1e-14)

    def test_diagonal_blocks_are_binary_fit_covariances(self, two_covariate):
        _, y, X = two_covariate
        fits = fit_threshold_logits(y, X)
        V = brant_covariance(fits, X)
        for m, tf in enumerate(fits):
            np.testing.assert_allclose(V[2 * m : 2 * m + 2, 2 * m : 2 * m + 2], tf.slope_cov)

    def test_positive_definite(self, two_covariate):
        _, y, X = two_covariate
        fits = fit_threshold_logits(y, X)
        assert np.linalg.eigvalsh(brant_covariance(fits, X)).min() > 0

    def test_adjacent_thresholds_positively_correlated(self, two_covariate):
        _, y, X = two_covariate
        fits = fit_threshold_logits(y, X)
        V = brant_covariance(fits, X)
        assert V[0, 2] > 0


# ── brant_test() ─────────────────────────────────────────────────────────────


class TestBrantTable:
    def test_layout(self, po_result):
        tab = po_result.table
        assert list(tab.columns) == ["term", "stat_chi2", "df", "p_value"]
        assert tab["term"].tolist() == [OMNIBUS, "exposed"]

    def test_degrees_of_freedom(self, po_result):
        assert po_result.table["df"].tolist() == [3, 3]

    def test_single_covariate_omnibus_equals_covariate_row(self, po_result):
        tab = po_result.table
        assert tab["stat_chi2"].iloc[0] == pytest.approx(tab["stat_chi2"].iloc[1], rel=1e-10)

    def test_two_covariates_df(self, two_covariate):
        fit, y, X = two_covariate
        res = brant_test(fit, y, X)
        assert res.table["term"].tolist() == [OMNIBUS, "exposed", "x"]
        assert res.table["df"].tolist() == [4, 2, 2]
        assert (res.table["p_value"].between(0.0, 1.0)).all()

    def test_pooled_slopes(self, po_result, po_fit):
        assert po_result.pooled_slopes["exposed"] == pytest.approx(po_fit.slopes["exposed"])

    def test_slope_comparison(self, po_result):
        wide = po_result.slope_comparison()
        assert list(wide.columns) == ["term", "pooled", "threshold_1", "threshold_2", "threshold_3", "threshold_4"]
        assert wide["term"].tolist() == ["exposed"]

    def test_threshold_slopes_long(self, po_result):
        long = po_result.threshold_slopes()
        assert len(long) == 4
        assert (long["se"] > 0).all()

    def test_summary_mentions_counts(self, po_result):
        text = po_result.summary()
        assert "Number of observations: 25000" in text
        assert "Number of outcome levels: 5" in text
        assert OMNIBUS in text


class TestBrantDecision:
    def test_proportional_not_rejected(self, po_result):
        assert po_result.omnibus["p_value"] > 0.05
        assert not bool(po_result.reject(0.05)[OMNIBUS])

    def test_non_proportional_rejected(self, npo_result):
        assert npo_result.omnibus["p_value"] < 0.05
        assert bool(npo_result.reject(0.05)[OMNIBUS])

    def test_non_proportional_third_split_slope(self, npo_result):
        """Exposed subjects lose an extra 1.0 at threshold 3 => slope 1.7 there."""
        tf = npo_result.threshold_fits[2]
        assert tf.slopes["exposed"] == pytest.approx(1.7, abs=0.15)

    def test_non_proportional_pooled_slope_biased(self, npo_fit):
        assert abs(npo_fit.slopes["exposed"] - 0.7) > 0.1

    def test_reject_is_per_term(self, po_result):
        dec = po_result.reject(0.05)
        assert list(dec.index) == [OMNIBUS, "exposed"]
        assert dec.dtype == bool

    def test_two_categories_not_testable(self):
        y = np.repeat([1, 2], [40, 60])
        x = np.random.default_rng(0).standard_normal(100)
        fit = fit_cumulative_logit(y, x)
        with pytest.raises(InvalidInput):
            brant_test(fit, y, x)

    def test_covariates_must_match_fit(self, po_fit, po_subjects):
        X = pd.DataFrame({"a": np.zeros(len(po_subjects)), "b": np.zeros(len(po_subjects))})
        with pytest.raises(InvalidInput):
            brant_test(po_fit, po_subjects["category"], X)
