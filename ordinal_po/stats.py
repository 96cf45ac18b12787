from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from .errors import InvalidInput, NonConvergence


@dataclass(frozen=True)
class WaldResult:
    stat_chi2: float
    df: int
    p_value: float


def fit_binom_glm(y: Iterable, X: pd.DataFrame, *, maxiter: int = 100):
    """Fit a binomial (logit) GLM under the working i.i.d. likelihood.

    Raises
    ------
    InvalidInput
        Empty design or a constant outcome.
    NonConvergence
        Perfect separation or IRLS not converging within `maxiter`.
    """
    y = np.asarray(y, dtype=float)
    X_ = X.astype(float)
    if y.size == 0 or X_.shape[0] == 0:
        raise InvalidInput("fit_binom_glm received an empty dataset (n_obs=0).")
    if y.size != X_.shape[0]:
        raise InvalidInput(f"fit_binom_glm: y has {y.size} rows but X has {X_.shape[0]}.")
    if np.all(y == y[0]):
        raise InvalidInput("fit_binom_glm: binary outcome is constant; slopes are not estimable.")

    model = sm.GLM(y, X_, family=sm.families.Binomial())
    try:
        with warnings.catch_warnings():
            # Newer statsmodels warn (rather than raise) on separation; promote it.
            warnings.filterwarnings("error", message=".*[Pp]erfect separation.*")
            res = model.fit(maxiter=int(maxiter))
    except (PerfectSeparationError, Warning) as e:
        raise NonConvergence(f"Binary logit did not converge: {e}") from e

    if not bool(getattr(res, "converged", True)):
        raise NonConvergence(f"Binary logit IRLS did not converge within {maxiter} iterations.")
    return res


def tidy_coef_table(res, cov: np.ndarray) -> pd.DataFrame:
    """Create a tidy coefficient table (Wald z and two-sided normal p-values)."""
    from scipy.stats import norm

    params = np.asarray(res.params, dtype=float)
    se = np.sqrt(np.clip(np.diag(cov), 0.0, np.inf))
    terms = list(res.params.index) if hasattr(res.params, "index") else [f"beta{i}" for i in range(len(params))]
    zvals = params / np.where(se == 0, np.nan, se)
    pvals = 2.0 * norm.sf(np.abs(zvals))
    return pd.DataFrame({"term": terms, "coef": params, "se": se, "z": zvals, "p_value": pvals})


def wald_contrast(b: np.ndarray, V: np.ndarray, D: np.ndarray) -> WaldResult:
    """Wald test of H0: D b = 0.

        W = (D b)' (D V D')^{-1} (D b),   df = rank(D)

    A pseudo-inverse is used so that near-singular contrast covariances still
    give a (conservative) statistic; a RuntimeWarning flags that case.
    """
    from scipy.stats import chi2

    b = np.asarray(b, dtype=float).reshape(-1)
    V = np.asarray(V, dtype=float)
    D = np.atleast_2d(np.asarray(D, dtype=float))

    Db = D @ b
    DVD = D @ V @ D.T
    DVD = 0.5 * (DVD + DVD.T)

    cond = np.linalg.cond(DVD)
    if not np.isfinite(cond) or cond > 1e12:
        warnings.warn(
            f"wald_contrast: contrast covariance is ill-conditioned (cond={cond:.3g}); "
            "using a Moore–Penrose pseudoinverse.",
            RuntimeWarning,
        )
    stat = float(Db.T @ np.linalg.pinv(DVD) @ Db)
    stat = max(stat, 0.0)
    df = int(np.linalg.matrix_rank(D))
    p = float(chi2.sf(stat, df))
    return WaldResult(stat_chi2=stat, df=df, p_value=p)


def lr_test(res_full, res_restr, *, df_diff: int) -> tuple[float, int, float]:
    """Likelihood-ratio test for nested models."""

    from scipy.stats import chi2

    llf_full = float(res_full.llf)
    llf_restr = float(res_restr.llf)

    lr = 2.0 * (llf_full - llf_restr)
    p = float(chi2.sf(max(lr, 0.0), int(df_diff)))
    return float(lr), int(df_diff), p


def bic_llf(llf: float, k: int, n: int) -> float:
    """BIC = -2 * llf + k * log(n) (lower is better)."""
    return -2.0 * float(llf) + int(k) * math.log(max(int(n), 1))


def wilson_ci(k: int, n: int, alpha: float = 0.05) -> tuple[float, float]:
    """Wilson binomial confidence interval."""
    if n <= 0:
        return (float("nan"), float("nan"))
    from scipy.stats import norm

    z = float(norm.ppf(1.0 - alpha / 2.0))
    phat = k / n
    denom = 1.0 + z**2 / n
    center = (phat + z**2 / (2 * n)) / denom
    half = z * math.sqrt(phat * (1 - phat) / n + z**2 / (4 * n**2)) / denom
    lo, hi = center - half, center + half
    return (max(min(lo, 1.0), 0.0), max(min(hi, 1.0), 0.0))
