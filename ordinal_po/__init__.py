"""Ordinal logistic regression under (non-)proportional odds."""

from .brant import BrantTestResult, brant_test, fit_threshold_logits
from .cumlogit import CumulativeLogitFit, fit_cumulative_logit
from .errors import DegenerateCategory, InvalidInput, NonConvergence
from .simulate import simulate_ordinal
from .thresholds import derive_thresholds

__version__ = "0.1.0"
