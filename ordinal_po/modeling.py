from __future__ import annotations

from typing import List, Optional, Sequence

import pandas as pd
import statsmodels.api as sm

from .errors import InvalidInput

# Columns produced by the simulator that are not covariates.
NON_COVARIATE_COLS = ("category", "latent")


def covariate_columns(subjects: pd.DataFrame) -> List[str]:
    """Covariate columns of a subject table, in table order."""
    return [c for c in subjects.columns if c not in NON_COVARIATE_COLS]


def design_from_subjects(subjects: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Covariate design (no intercept) with stable column order."""
    cols = list(columns) if columns is not None else covariate_columns(subjects)
    missing = [c for c in cols if c not in subjects.columns]
    if missing:
        raise InvalidInput(f"Subject table is missing covariate columns: {missing}")
    return subjects[cols].reset_index(drop=True).astype(float)


def add_const(X: pd.DataFrame) -> pd.DataFrame:
    return sm.add_constant(X, has_constant="add").astype(float)
