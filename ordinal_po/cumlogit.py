from __future__ import annotations

"""Cumulative-logit (proportional-odds) model fitted by maximum likelihood.

Model
-----
For an ordinal outcome Y in {1, ..., J} and covariates x:

    logit P(Y <= j | x) = theta_j - x' beta,     j = 1, ..., J-1

with P(Y <= 0) = 0 and P(Y <= J) = 1. The slope enters with a negative sign,
so beta > 0 moves probability mass toward higher categories. This is the
same parameterization as statsmodels' ``OrderedModel`` and R's ``MASS::polr``.

Estimation
----------
The thresholds are optimized through

    u_1 = theta_1,   u_k = log(theta_k - theta_{k-1})  (k >= 2)

so every iterate keeps them strictly increasing. Score and Hessian are
analytic in (theta, beta) and mapped to (u, beta) by the chain rule; the
objective is the average negative log-likelihood. Standard errors come from
the inverse observed information in (theta, beta).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import minimize
from scipy.special import expit

from .errors import DegenerateCategory, InvalidInput, NonConvergence
from .stats import bic_llf, tidy_coef_table
from .thresholds import derive_thresholds

Covariates = Optional[Union[pd.DataFrame, pd.Series, np.ndarray, Sequence[Sequence[float]]]]


# ----------------------------
# Input handling
# ----------------------------

def as_design(X: Covariates, n_obs: int) -> pd.DataFrame:
    """Coerce covariates to a float DataFrame with `n_obs` rows (no intercept).

    ``None`` gives an empty design (thresholds-only model).
    """
    if X is None:
        return pd.DataFrame(index=np.arange(n_obs))
    if isinstance(X, pd.Series):
        df = X.to_frame(name=X.name if X.name is not None else "x1")
    elif isinstance(X, pd.DataFrame):
        df = X.copy()
    else:
        arr = np.asarray(X, dtype=float)
        if arr.ndim == 1:
            arr = arr[:, None]
        if arr.ndim != 2:
            raise InvalidInput("Covariates must be 1-D or 2-D.")
        df = pd.DataFrame(arr, columns=[f"x{i + 1}" for i in range(arr.shape[1])])

    if df.shape[0] != n_obs:
        raise InvalidInput(f"Covariates have {df.shape[0]} rows but the outcome has {n_obs}.")
    df = df.reset_index(drop=True).astype(float)
    df.columns = [str(c) for c in df.columns]
    if not np.isfinite(df.to_numpy()).all():
        raise InvalidInput("Covariates must be finite.")
    return df


def validate_outcome(y: Sequence[int], n_categories: Optional[int] = None) -> Tuple[np.ndarray, int]:
    """Return (0-based category codes, J) after checking 1..J coding and occupancy."""
    yv = np.asarray(y, dtype=float).reshape(-1)
    if yv.size == 0:
        raise InvalidInput("Outcome is empty.")
    if not np.isfinite(yv).all() or np.any(yv != np.round(yv)):
        raise InvalidInput("Ordinal outcome must be integer-coded 1..J.")
    yi = yv.astype(int)

    J = int(yi.max()) if n_categories is None else int(n_categories)
    if J < 2:
        raise InvalidInput(f"Need at least 2 ordinal categories, got J={J}.")
    if yi.min() < 1 or yi.max() > J:
        raise InvalidInput(f"Ordinal outcome must lie in 1..{J}; observed {yi.min()}..{yi.max()}.")

    counts = np.bincount(yi, minlength=J + 1)[1:]
    for j, c in enumerate(counts, start=1):
        if c == 0:
            raise DegenerateCategory(j, J)
    return yi - 1, J


# ----------------------------
# Likelihood
# ----------------------------

def _cell_probs(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    # F(a) - F(b), computed on whichever tail keeps precision.
    P = np.where(a + b > 0, expit(-b) - expit(-a), expit(a) - expit(b))
    return np.maximum(P, 1e-300)


def _loglike_grad_hess(
    theta: np.ndarray,
    beta: np.ndarray,
    y0: np.ndarray,
    X: np.ndarray,
) -> Tuple[float, np.ndarray, np.ndarray]:
    """(llf, score, Hessian) in natural (theta, beta) coordinates."""
    m = theta.size
    k = beta.size

    xb = X @ beta if k else np.zeros(y0.size, dtype=float)
    tpad = np.concatenate([[-np.inf], theta, [np.inf]])
    a = tpad[y0 + 1] - xb
    b = tpad[y0] - xb

    Fa, Fb = expit(a), expit(b)
    P = _cell_probs(a, b)
    fa, fb = Fa * (1.0 - Fa), Fb * (1.0 - Fb)
    dfa, dfb = fa * (1.0 - 2.0 * Fa), fb * (1.0 - 2.0 * Fb)

    llf = float(np.sum(np.log(P)))

    ga, gb = fa / P, fb / P
    s = ga - gb
    up = y0 < m
    lo = y0 >= 1
    both = up & lo

    # score
    g_theta = np.zeros(m, dtype=float)
    np.add.at(g_theta, y0[up], ga[up])
    np.add.at(g_theta, y0[lo] - 1, -gb[lo])
    g_beta = -(X.T @ s) if k else np.zeros(0, dtype=float)

    # theta-theta
    H_tt = np.zeros((m, m), dtype=float)
    np.add.at(H_tt, (y0[up], y0[up]), dfa[up] / P[up] - ga[up] ** 2)
    np.add.at(H_tt, (y0[lo] - 1, y0[lo] - 1), -dfb[lo] / P[lo] - gb[lo] ** 2)
    off = ga[both] * gb[both]
    np.add.at(H_tt, (y0[both], y0[both] - 1), off)
    np.add.at(H_tt, (y0[both] - 1, y0[both]), off)

    # theta-beta and beta-beta
    H_tb = np.zeros((m, k), dtype=float)
    if k:
        w_up = -(dfa / P - s * ga)
        w_lo = -(-dfb / P + s * gb)
        np.add.at(H_tb, y0[up], w_up[up, None] * X[up])
        np.add.at(H_tb, y0[lo] - 1, w_lo[lo, None] * X[lo])
        d = (dfa - dfb) / P - s * s
        H_bb = X.T @ (d[:, None] * X)
    else:
        H_bb = np.zeros((0, 0), dtype=float)

    score = np.concatenate([g_theta, g_beta])
    top = np.concatenate([H_tt, H_tb], axis=1)
    bot = np.concatenate([H_tb.T, H_bb], axis=1)
    H = np.concatenate([top, bot], axis=0)
    H = 0.5 * (H + H.T)
    return llf, score, H


def _theta_from_u(u: np.ndarray) -> np.ndarray:
    return u[0] + np.concatenate([[0.0], np.cumsum(np.exp(u[1:]))])


def _u_from_theta(theta: np.ndarray) -> np.ndarray:
    return np.concatenate([[theta[0]], np.log(np.diff(theta))])


def _jacobian_u(u: np.ndarray) -> np.ndarray:
    m = u.size
    scale = np.concatenate([[1.0], np.exp(u[1:])])
    return np.tril(np.ones((m, m), dtype=float)) * scale[None, :]


# ----------------------------
# Fit container
# ----------------------------

@dataclass(frozen=True)
class CumulativeLogitFit:
    """Fitted cumulative-logit model (read-only)."""

    params: pd.Series
    cov_params: np.ndarray
    llf: float
    n_obs: int
    n_categories: int
    exog_names: List[str]
    converged: bool
    message: str
    n_iter: int

    @property
    def n_thresholds(self) -> int:
        return self.n_categories - 1

    @property
    def thresholds(self) -> np.ndarray:
        return self.params.to_numpy(dtype=float)[: self.n_thresholds]

    @property
    def slopes(self) -> pd.Series:
        return self.params.iloc[self.n_thresholds :]

    @property
    def bse(self) -> pd.Series:
        se = np.sqrt(np.clip(np.diag(self.cov_params), 0.0, np.inf))
        return pd.Series(se, index=self.params.index, dtype=float)

    @property
    def n_params(self) -> int:
        return int(self.params.size)

    @property
    def aic(self) -> float:
        return -2.0 * self.llf + 2.0 * self.n_params

    @property
    def bic(self) -> float:
        return bic_llf(self.llf, self.n_params, self.n_obs)

    def coef_table(self) -> pd.DataFrame:
        return tidy_coef_table(self, self.cov_params)

    def linear_predictor(self, X: Covariates = None, n_obs: Optional[int] = None) -> np.ndarray:
        k = len(self.exog_names)
        if X is None:
            if k:
                raise InvalidInput("Covariates are required for a model with slopes.")
            return np.zeros(int(n_obs or 1), dtype=float)
        if isinstance(X, pd.DataFrame) and set(self.exog_names).issubset(map(str, X.columns)):
            X = X[self.exog_names]
        Xd = as_design(X, len(X))
        if Xd.shape[1] != k:
            raise InvalidInput(f"Expected {k} covariates {self.exog_names}, got {list(Xd.columns)}.")
        return Xd.to_numpy(dtype=float) @ self.slopes.to_numpy(dtype=float)

    def cumulative_probs(self, X: Covariates = None, n_obs: Optional[int] = None) -> np.ndarray:
        """(n, J-1) matrix of P(Y <= j | x)."""
        xb = self.linear_predictor(X, n_obs=n_obs)
        return expit(self.thresholds[None, :] - xb[:, None])

    def predict_probs(self, X: Covariates = None, n_obs: Optional[int] = None) -> np.ndarray:
        """(n, J) matrix of P(Y = j | x)."""
        cum = self.cumulative_probs(X, n_obs=n_obs)
        n = cum.shape[0]
        full = np.concatenate([np.zeros((n, 1)), cum, np.ones((n, 1))], axis=1)
        return np.diff(full, axis=1)


# ----------------------------
# Core MLE
# ----------------------------

def fit_cumulative_logit(
    y: Sequence[int],
    X: Covariates = None,
    *,
    n_categories: Optional[int] = None,
    maxiter: int = 600,
    gtol: float = 1e-8,
    min_information: float = 1e-7,
) -> CumulativeLogitFit:
    """Fit the cumulative-logit model by maximum likelihood.

    Parameters
    ----------
    y:
        Observed categories coded 1..J.
    X:
        Covariates (no intercept column). ``None`` fits thresholds only.
    n_categories:
        J. Defaults to ``max(y)``; every category 1..J must be observed.
    min_information:
        Smallest admissible eigenvalue of the per-observation information
        matrix, computed with every covariate rescaled to unit root mean
        square. Below it the likelihood is flat in some direction (typically
        separation) and the fit is reported as not converged.

    Raises
    ------
    InvalidInput, DegenerateCategory, NonConvergence
    """

    y0, J = validate_outcome(y, n_categories)
    n = int(y0.size)
    Xd = as_design(X, n)
    Xraw = Xd.to_numpy(dtype=float)
    m = J - 1
    k = int(Xraw.shape[1])

    # Work on unit-RMS covariates so the stopping rule and the information
    # check do not depend on the units a covariate is measured in.
    scale = np.sqrt(np.mean(Xraw**2, axis=0)) if k else np.ones(0, dtype=float)
    scale = np.where(scale > 0, scale, 1.0)
    Xv = Xraw / scale[None, :] if k else Xraw

    # Start from the marginal thresholds, slopes at zero.
    props = np.bincount(y0, minlength=J).astype(float) / n
    theta0 = derive_thresholds(props / props.sum())
    start = np.concatenate([_u_from_theta(theta0), np.zeros(k, dtype=float)])

    def _split(phi: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        u = phi[:m]
        return u, _theta_from_u(u), phi[m:]

    def nll(phi: np.ndarray) -> float:
        _, theta, beta = _split(phi)
        llf, _, _ = _loglike_grad_hess(theta, beta, y0, Xv)
        return -llf / n

    def grad(phi: np.ndarray) -> np.ndarray:
        u, theta, beta = _split(phi)
        _, score, _ = _loglike_grad_hess(theta, beta, y0, Xv)
        Jt = _jacobian_u(u)
        g = np.concatenate([Jt.T @ score[:m], score[m:]])
        return -g / n

    def hess(phi: np.ndarray) -> np.ndarray:
        u, theta, beta = _split(phi)
        _, score, H = _loglike_grad_hess(theta, beta, y0, Xv)
        Jt = _jacobian_u(u)
        H_uu = Jt.T @ H[:m, :m] @ Jt
        # second derivative of the increment map
        tail = np.cumsum(score[:m][::-1])[::-1]
        curv = np.concatenate([[0.0], np.exp(u[1:]) * tail[1:]])
        H_uu = H_uu + np.diag(curv)
        H_ub = Jt.T @ H[:m, m:]
        top = np.concatenate([H_uu, H_ub], axis=1)
        bot = np.concatenate([H_ub.T, H[m:, m:]], axis=1)
        Hu = np.concatenate([top, bot], axis=0)
        return -0.5 * (Hu + Hu.T) / n

    # Try second-order first; fallback to BFGS
    opt = minimize(
        nll,
        x0=start,
        jac=grad,
        hess=hess,
        method="trust-ncg",
        options={"gtol": float(gtol), "maxiter": int(maxiter), "disp": False},
    )
    n_iter = int(getattr(opt, "nit", 0))
    if not bool(getattr(opt, "success", False)):
        opt = minimize(
            nll,
            x0=np.asarray(opt.x, dtype=float),
            jac=grad,
            method="BFGS",
            options={"gtol": float(gtol) * 100.0, "maxiter": int(maxiter) * 2, "disp": False},
        )
        n_iter += int(getattr(opt, "nit", 0))

    if not bool(getattr(opt, "success", False)):
        raise NonConvergence(
            f"Cumulative-logit fit did not converge after {n_iter} iterations: {getattr(opt, 'message', '')}"
        )

    phi_hat = np.asarray(opt.x, dtype=float)
    _, theta_hat, beta_hat = _split(phi_hat)
    llf, _, H = _loglike_grad_hess(theta_hat, beta_hat, y0, Xv)

    info = -H
    eig_min = float(np.linalg.eigvalsh(info / n).min())
    if not np.isfinite(eig_min) or eig_min < float(min_information):
        raise NonConvergence(
            "Cumulative-logit information matrix is (near-)singular "
            f"(min eigenvalue per observation {eig_min:.3g}); "
            "the data may be separated or a covariate may be constant."
        )
    cov = np.linalg.inv(info)

    # back to the caller's covariate units
    back = np.concatenate([np.ones(m, dtype=float), 1.0 / scale])
    beta_hat = beta_hat / scale
    cov = cov * back[:, None] * back[None, :]
    cov = 0.5 * (cov + cov.T)

    names = [f"theta_{j}" for j in range(1, J)] + list(Xd.columns)
    params = pd.Series(np.concatenate([theta_hat, beta_hat]), index=names, dtype=float)

    return CumulativeLogitFit(
        params=params,
        cov_params=cov,
        llf=float(llf),
        n_obs=n,
        n_categories=J,
        exog_names=list(Xd.columns),
        converged=True,
        message=str(getattr(opt, "message", "")),
        n_iter=n_iter,
    )
