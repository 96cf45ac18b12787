from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .config import ScenarioConfig
from .errors import InvalidInput
from .thresholds import ArrayLike, derive_thresholds

# Output columns written by the simulator itself.
RESERVED_COLUMNS = ("exposed", "latent", "category")


def assign_exposure(n_subjects: int, p_exposed: float, rng: np.random.Generator) -> np.ndarray:
    """Independent Bernoulli(p_exposed) exposure indicators (0/1)."""
    if int(n_subjects) <= 0:
        raise InvalidInput(f"n_subjects must be positive, got {n_subjects}")
    if not (0.0 < float(p_exposed) < 1.0):
        raise InvalidInput(f"p_exposed must be in (0,1), got {p_exposed}")
    return (rng.random(int(n_subjects)) < float(p_exposed)).astype(int)


def pad_np_adjustment(np_adjustment: Optional[ArrayLike], n_thresholds: int) -> np.ndarray:
    """Zero-pad a per-threshold perturbation to length `n_thresholds`."""
    out = np.zeros(int(n_thresholds), dtype=float)
    if np_adjustment is None:
        return out
    adj = np.asarray(np_adjustment, dtype=float).reshape(-1)
    if adj.size > n_thresholds:
        raise InvalidInput(
            f"Non-proportional adjustment has {adj.size} entries but there are only {n_thresholds} thresholds."
        )
    if not np.isfinite(adj).all():
        raise InvalidInput("Non-proportional adjustment must be finite.")
    out[: adj.size] = adj
    return out


def subject_thresholds(
    thresholds: ArrayLike,
    linear_predictor: np.ndarray,
    exposed: np.ndarray,
    np_adjustment: Optional[ArrayLike] = None,
) -> np.ndarray:
    """Effective (n, J-1) thresholds: theta_j - z_i + delta_j * exposed_i.

    The linear predictor is folded into the thresholds so the latent noise
    stays standard logistic.
    """

    theta = np.asarray(thresholds, dtype=float).reshape(-1)
    z = np.asarray(linear_predictor, dtype=float).reshape(-1)
    e = np.asarray(exposed, dtype=float).reshape(-1)
    if z.shape != e.shape:
        raise InvalidInput("linear_predictor and exposed must have the same length.")

    delta = pad_np_adjustment(np_adjustment, theta.size)
    eff = theta[None, :] - z[:, None] + e[:, None] * delta[None, :]

    if theta.size > 1 and not np.all(np.diff(eff, axis=1) > 0):
        raise InvalidInput(
            "Non-proportional adjustment makes effective thresholds non-increasing "
            "for exposed subjects; category probabilities would be negative."
        )
    return eff


def categorize(latent: np.ndarray, eff_thresholds: np.ndarray) -> np.ndarray:
    """Category (1..J) = 1 + number of thresholds the latent value exceeds."""
    latent = np.asarray(latent, dtype=float).reshape(-1)
    return 1 + np.sum(latent[:, None] > eff_thresholds, axis=1).astype(int)


def simulate_ordinal(
    category_probs: ArrayLike,
    *,
    beta: float,
    rng: np.random.Generator,
    exposed: Optional[Sequence[int]] = None,
    n_subjects: Optional[int] = None,
    p_exposed: float = 0.5,
    np_adjustment: Optional[ArrayLike] = None,
    covariates: Optional[pd.DataFrame] = None,
    covariate_effects: Optional[Dict[str, float]] = None,
) -> pd.DataFrame:
    """Simulate ordinal outcomes from a latent standard-logistic variable.

    Parameters
    ----------
    category_probs:
        Baseline (unexposed, covariates at zero) category probabilities.
    beta:
        Proportional exposure effect on the cumulative-logit scale.
    rng:
        Random source. Pass a seeded ``numpy.random.Generator`` for
        reproducible draws; nothing here touches global random state.
    exposed:
        Explicit 0/1 exposure vector. If omitted, `n_subjects` Bernoulli draws
        with probability `p_exposed` are made from `rng`.
    np_adjustment:
        Per-threshold perturbation for exposed subjects (zero-padded).
    covariates, covariate_effects:
        Additional covariate columns and their proportional effects. Missing
        columns are drawn as independent standard normals.

    Returns
    -------
    DataFrame with one row per subject: ``exposed``, any covariate columns,
    ``latent`` and ``category`` (1..J).
    """

    theta = derive_thresholds(category_probs)

    if exposed is None:
        if n_subjects is None:
            raise InvalidInput("Pass either `exposed` or `n_subjects`.")
        e = assign_exposure(int(n_subjects), p_exposed, rng)
    else:
        e = np.asarray(exposed, dtype=int).reshape(-1)
        if e.size == 0:
            raise InvalidInput("`exposed` is empty.")
        if not np.isin(e, [0, 1]).all():
            raise InvalidInput("`exposed` must contain only 0/1.")
        if n_subjects is not None and int(n_subjects) != e.size:
            raise InvalidInput("n_subjects does not match the length of `exposed`.")
    n = int(e.size)

    effects = dict(covariate_effects or {})
    clash = sorted(set(effects) & set(RESERVED_COLUMNS))
    if covariates is not None:
        clash = sorted(set(clash) | (set(map(str, covariates.columns)) & set(RESERVED_COLUMNS)))
    if clash:
        raise InvalidInput(f"Covariate names {clash} are reserved for simulator output columns.")
    cov = pd.DataFrame(index=np.arange(n))
    if covariates is not None:
        if len(covariates) != n:
            raise InvalidInput("covariates must have one row per subject.")
        cov = covariates.reset_index(drop=True).astype(float)
    for name in effects:
        if name not in cov.columns:
            cov[name] = rng.standard_normal(n)

    z = float(beta) * e.astype(float)
    for name, b in effects.items():
        z = z + float(b) * cov[name].to_numpy(dtype=float)

    eff = subject_thresholds(theta, z, e, np_adjustment)
    latent = rng.logistic(loc=0.0, scale=1.0, size=n)
    category = categorize(latent, eff)

    out = pd.DataFrame({"exposed": e})
    for c in cov.columns:
        out[c] = cov[c].to_numpy(dtype=float)
    out["latent"] = latent
    out["category"] = category
    return out


def simulate_scenario(cfg: ScenarioConfig, rng: Optional[np.random.Generator] = None) -> pd.DataFrame:
    """Simulate the subjects described by a scenario config."""
    if rng is None:
        rng = np.random.default_rng(cfg.seed)
    return simulate_ordinal(
        cfg.category_probs,
        beta=cfg.beta,
        rng=rng,
        n_subjects=cfg.n_subjects,
        p_exposed=cfg.p_exposed,
        np_adjustment=cfg.np_adjustment,
        covariate_effects=cfg.covariate_effects,
    )
