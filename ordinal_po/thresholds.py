from __future__ import annotations

from typing import Sequence, Union

import numpy as np
from scipy.special import expit

from .errors import InvalidInput

ArrayLike = Union[Sequence[float], np.ndarray]


def validate_category_probs(probs: ArrayLike, *, tol: float = 1e-6) -> np.ndarray:
    """Return `probs` as a float array after checking it is a valid distribution.

    Requires at least two categories, every entry finite and strictly positive,
    and a total within `tol` of 1.
    """

    p = np.asarray(probs, dtype=float).reshape(-1)
    if p.size < 2:
        raise InvalidInput(f"Need at least 2 categories, got {p.size}.")
    if not np.isfinite(p).all():
        raise InvalidInput("Category probabilities must be finite.")
    if np.any(p <= 0.0):
        raise InvalidInput("Category probabilities must be strictly positive.")
    total = float(p.sum())
    if abs(total - 1.0) > tol:
        raise InvalidInput(f"Category probabilities must sum to 1, got {total:.6g}.")
    return p


def logistic_cdf(x: ArrayLike) -> np.ndarray:
    return expit(np.asarray(x, dtype=float))


def logistic_pdf(x: ArrayLike) -> np.ndarray:
    F = expit(np.asarray(x, dtype=float))
    return F * (1.0 - F)


def cumulative_probs(probs: ArrayLike) -> np.ndarray:
    """P(Y <= j) for j = 1..J-1 (the trailing 1.0 is dropped)."""
    p = validate_category_probs(probs)
    return np.cumsum(p)[:-1]


def derive_thresholds(probs: ArrayLike) -> np.ndarray:
    """Cut-points on the standard logistic scale for baseline category probabilities.

    For boundary i the mass at or below category i (num) and above it (den)
    give

        threshold[i] = ln(num / den)

    i.e. the logistic quantile of the cumulative probability. The area under
    the standard logistic density between consecutive thresholds equals the
    corresponding category probability.

    Tail sums are taken separately (rather than as 1 - num) so that small
    upper-tail categories keep full precision.
    """

    p = validate_category_probs(probs)
    num = np.cumsum(p)[:-1]
    den = np.cumsum(p[::-1])[::-1][1:]
    theta = np.log(num) - np.log(den)
    if not np.all(np.diff(theta) > 0):
        raise InvalidInput("Derived thresholds are not strictly increasing.")
    return theta


def category_probs_from_thresholds(thresholds: ArrayLike, shift: float = 0.0) -> np.ndarray:
    """Category probabilities implied by `thresholds` for linear predictor `shift`.

    Uses the cumulative-logit convention P(Y <= j) = F(threshold_j - shift).
    """

    theta = np.asarray(thresholds, dtype=float).reshape(-1)
    if theta.size < 1:
        raise InvalidInput("Need at least one threshold.")
    if theta.size > 1 and not np.all(np.diff(theta) > 0):
        raise InvalidInput("Thresholds must be strictly increasing.")
    cum = np.concatenate([[0.0], expit(theta - float(shift)), [1.0]])
    return np.diff(cum)
