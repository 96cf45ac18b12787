from __future__ import annotations

"""Brant-type test of the proportional-odds (parallel slopes) assumption.

For each threshold j = 1..J-1 a separate binary logit of I(Y <= j) on the
covariates is fitted. Under proportional odds the J-1 slope vectors agree
(with each other and with the cumulative-logit slope). Slopes of the binary
fits are negated so that they are on the cumulative-logit convention
logit P(Y <= j) = theta_j - x' beta.

The stacked slope vector b = (b_1', ..., b_{J-1}')' has the Brant (1990)
covariance with cross-threshold blocks (m < l)

    Cov(b_m, b_l) = [(X'W_m X)^{-1} X'W_ml X (X'W_l X)^{-1}]_slopes
    W_m  = diag(q_m (1 - q_m)),   W_ml = diag(q_m (1 - q_l))

where q_j are the fitted P(Y <= j) of the binary fit at threshold j. The
Wald statistic on the contrasts b_1 - b_j (j = 2..J-1) is chi-square with
(J-2) df per covariate and (J-2) K df overall.

Reference: Brant, R. (1990). Assessing proportionality in the proportional
odds model for ordinal logistic regression. Biometrics 46(4), 1171-1178.
"""

import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .cumlogit import Covariates, CumulativeLogitFit, as_design, validate_outcome
from .errors import InvalidInput
from .modeling import add_const
from .stats import fit_binom_glm, wald_contrast

OMNIBUS = "Omnibus"


@dataclass(frozen=True)
class ThresholdLogitFit:
    """Binary logit of I(Y <= threshold) on the covariates."""

    threshold: int
    params: pd.Series
    cov_params: np.ndarray
    fitted: np.ndarray
    llf: float
    n_obs: int
    n_below: int

    @property
    def exog_names(self) -> List[str]:
        return [c for c in self.params.index if c != "const"]

    @property
    def slopes(self) -> pd.Series:
        """Slopes on the cumulative-logit (negated) convention."""
        return -self.params.drop("const")

    @property
    def slope_cov(self) -> np.ndarray:
        return np.asarray(self.cov_params, dtype=float)[1:, 1:]

    @property
    def slope_se(self) -> pd.Series:
        return pd.Series(np.sqrt(np.clip(np.diag(self.slope_cov), 0.0, np.inf)), index=self.exog_names)


@dataclass(frozen=True)
class BrantTestResult:
    """Parallel-slopes test: one row per covariate plus an omnibus row (first)."""

    table: pd.DataFrame
    threshold_fits: List[ThresholdLogitFit]
    pooled_slopes: pd.Series
    n_obs: int
    n_categories: int

    @property
    def omnibus(self) -> pd.Series:
        return self.table.loc[self.table["term"] == OMNIBUS].iloc[0]

    def reject(self, alpha: float = 0.05) -> pd.Series:
        """Consumer-side decision rule: p < alpha rejects proportional odds."""
        return pd.Series((self.table["p_value"] < float(alpha)).to_numpy(), index=self.table["term"].to_numpy())

    def threshold_slopes(self) -> pd.DataFrame:
        """Long table of per-threshold slopes (cumulative-logit convention)."""
        rows = []
        for tf in self.threshold_fits:
            se = tf.slope_se
            for term, coef in tf.slopes.items():
                rows.append(
                    {
                        "threshold": tf.threshold,
                        "term": term,
                        "coef": float(coef),
                        "se": float(se[term]),
                        "n_below": tf.n_below,
                    }
                )
        return pd.DataFrame(rows)

    def slope_comparison(self) -> pd.DataFrame:
        """Wide table: pooled cumulative-logit slope next to each threshold's slope."""
        long = self.threshold_slopes()
        wide = long.pivot(index="term", columns="threshold", values="coef")
        wide.columns = [f"threshold_{int(c)}" for c in wide.columns]
        wide.insert(0, "pooled", self.pooled_slopes.reindex(wide.index).to_numpy(dtype=float))
        return wide.reindex(list(self.pooled_slopes.index)).reset_index().rename(columns={"index": "term"})

    def summary(self) -> str:
        header = [
            "Brant Test of Parallel Regression Assumption",
            "=" * 50,
            f"Number of observations: {self.n_obs}",
            f"Number of predictors: {len(self.pooled_slopes)}",
            f"Number of outcome levels: {self.n_categories}",
            "-" * 50,
        ]
        body = self.table.to_string(index=False, float_format=lambda x: f"{x:.4f}")
        footer = [
            "-" * 50,
            "H0: parallel regression (proportional odds) holds; p < 0.05 suggests a violation.",
        ]
        return "\n".join(header + [body] + footer)


def binary_split_counts(y: Sequence[int], n_categories: int) -> pd.DataFrame:
    """Observations at or below / above each threshold."""
    yv = np.asarray(y, dtype=int).reshape(-1)
    rows = []
    for j in range(1, int(n_categories)):
        below = int(np.sum(yv <= j))
        rows.append({"threshold": j, "n_below": below, "n_above": int(yv.size - below)})
    return pd.DataFrame(rows)


def fit_threshold_logits(
    y: Sequence[int],
    X: Covariates,
    *,
    n_categories: Optional[int] = None,
    min_side: int = 10,
) -> List[ThresholdLogitFit]:
    """Fit one binary logit per threshold; returned in threshold order.

    Raises
    ------
    InvalidInput, DegenerateCategory
        Malformed outcome or covariates.
    NonConvergence
        A binary fit is separated or fails to converge.
    """

    y0, J = validate_outcome(y, n_categories)
    yi = y0 + 1
    Xd = as_design(X, yi.size)
    if Xd.shape[1] == 0:
        raise InvalidInput("The parallel-slopes test needs at least one covariate.")
    Xc = add_const(Xd)

    fits: List[ThresholdLogitFit] = []
    for row in binary_split_counts(yi, J).itertuples(index=False):
        j = int(row.threshold)
        if min(row.n_below, row.n_above) < int(min_side):
            warnings.warn(
                f"Threshold {j} has very few observations on one side "
                f"({row.n_below} at or below, {row.n_above} above); the binary fit may be unstable.",
                RuntimeWarning,
            )
        z = (yi <= j).astype(float)
        res = fit_binom_glm(z, Xc)
        fits.append(
            ThresholdLogitFit(
                threshold=j,
                params=pd.Series(np.asarray(res.params, dtype=float), index=list(Xc.columns)),
                cov_params=np.asarray(res.cov_params(), dtype=float),
                fitted=np.asarray(res.fittedvalues, dtype=float),
                llf=float(res.llf),
                n_obs=int(yi.size),
                n_below=int(row.n_below),
            )
        )
    return fits


def brant_covariance(fits: Sequence[ThresholdLogitFit], X: Covariates) -> np.ndarray:
    """Covariance of the stacked per-threshold slope vectors ((J-1)K square)."""
    if not fits:
        raise InvalidInput("No threshold fits supplied.")
    Xc = add_const(as_design(X, fits[0].n_obs)).to_numpy(dtype=float)
    K = Xc.shape[1] - 1
    M = len(fits)

    V = np.zeros((M * K, M * K), dtype=float)
    # (X'W_j X)^{-1} for each binary fit; equals its model-based covariance.
    inv_info = [np.asarray(f.cov_params, dtype=float) for f in fits]

    for m in range(M):
        V[m * K : (m + 1) * K, m * K : (m + 1) * K] = fits[m].slope_cov
        for l in range(m + 1, M):
            q_m, q_l = fits[m].fitted, fits[l].fitted
            w_ml = q_m * (1.0 - q_l)
            mid = Xc.T @ (w_ml[:, None] * Xc)
            block = (inv_info[m] @ mid @ inv_info[l])[1:, 1:]
            V[m * K : (m + 1) * K, l * K : (l + 1) * K] = block
            V[l * K : (l + 1) * K, m * K : (m + 1) * K] = block.T
    return V


def contrast_matrix(n_thresholds: int, n_covariates: int = 1) -> np.ndarray:
    """Rows b_1 - b_j for j = 2..n_thresholds, for each covariate."""
    M, K = int(n_thresholds), int(n_covariates)
    if M < 2:
        raise InvalidInput("At least two thresholds (J >= 3) are needed to compare slopes.")
    eye = np.eye(K)
    D = np.zeros(((M - 1) * K, M * K), dtype=float)
    for r in range(M - 1):
        D[r * K : (r + 1) * K, 0:K] = eye
        D[r * K : (r + 1) * K, (r + 1) * K : (r + 2) * K] = -eye
    return D


def brant_test(fit: CumulativeLogitFit, y: Sequence[int], X: Covariates) -> BrantTestResult:
    """Test whether slopes are constant across thresholds.

    Parameters
    ----------
    fit:
        Cumulative-logit fit of the same data (supplies J and the pooled slopes).
    y, X:
        The outcome and covariates `fit` was estimated from.
    """

    J = int(fit.n_categories)
    if J < 3:
        raise InvalidInput(f"The parallel-slopes test needs at least 3 categories, got J={J}.")

    Xd = as_design(X, len(np.asarray(y).reshape(-1)))
    if isinstance(X, pd.DataFrame) and set(fit.exog_names).issubset(Xd.columns):
        Xd = Xd[fit.exog_names]
    if Xd.shape[1] != len(fit.exog_names):
        raise InvalidInput(f"Covariates {list(Xd.columns)} do not match the fitted model {fit.exog_names}.")
    K = int(Xd.shape[1])
    names = list(fit.exog_names)

    fits = fit_threshold_logits(y, Xd, n_categories=J)
    b = np.concatenate([f.slopes.to_numpy(dtype=float) for f in fits])
    V = brant_covariance(fits, Xd)
    M = len(fits)

    rows = []
    omni = wald_contrast(b, V, contrast_matrix(M, K))
    rows.append({"term": OMNIBUS, "stat_chi2": omni.stat_chi2, "df": omni.df, "p_value": omni.p_value})

    D1 = contrast_matrix(M, 1)
    for k, name in enumerate(names):
        idx = np.arange(k, M * K, K)
        wr = wald_contrast(b[idx], V[np.ix_(idx, idx)], D1)
        rows.append({"term": name, "stat_chi2": wr.stat_chi2, "df": wr.df, "p_value": wr.p_value})

    pooled = fit.slopes.copy()
    pooled.index = names
    return BrantTestResult(
        table=pd.DataFrame(rows),
        threshold_fits=fits,
        pooled_slopes=pooled,
        n_obs=int(fit.n_obs),
        n_categories=J,
    )
