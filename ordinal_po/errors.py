from __future__ import annotations


class InvalidInput(ValueError):
    """Malformed probabilities, outcomes or covariates."""


class DegenerateCategory(InvalidInput):
    """An ordinal category has no observations, so its threshold is not estimable."""

    def __init__(self, category: int, n_categories: int):
        self.category = int(category)
        self.n_categories = int(n_categories)
        super().__init__(
            f"Category {self.category} of {self.n_categories} has zero observations; "
            "its threshold cannot be estimated."
        )


class NonConvergence(RuntimeError):
    """Maximum-likelihood optimizer failed to converge (e.g., separation)."""
