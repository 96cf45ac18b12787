"""Shared simulated datasets for the test suite.

The large datasets (N = 25,000) are built once per session; every fixture uses
a fixed seed so results are reproducible.
"""

import numpy as np
import pytest

from ordinal_po.config import GRADE_PROBS
from ordinal_po.cumlogit import fit_cumulative_logit
from ordinal_po.simulate import simulate_ordinal

BETA = 0.7
N_LARGE = 25000


@pytest.fixture(scope="session")
def po_subjects():
    """Proportional-odds data: exposure shifts every threshold by BETA."""
    rng = np.random.default_rng(2024)
    return simulate_ordinal(GRADE_PROBS, beta=BETA, rng=rng, n_subjects=N_LARGE)


@pytest.fixture(scope="session")
def npo_subjects():
    """Exposed subjects get an extra -1.0 at the third threshold."""
    rng = np.random.default_rng(2025)
    return simulate_ordinal(
        GRADE_PROBS, beta=BETA, rng=rng, n_subjects=N_LARGE, np_adjustment=[0.0, 0.0, -1.0]
    )


@pytest.fixture(scope="session")
def po_fit(po_subjects):
    return fit_cumulative_logit(po_subjects["category"], po_subjects[["exposed"]], n_categories=5)


@pytest.fixture(scope="session")
def npo_fit(npo_subjects):
    return fit_cumulative_logit(npo_subjects["category"], npo_subjects[["exposed"]], n_categories=5)
