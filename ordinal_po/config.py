from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

# Letter-grade example used throughout: category 1 = F (lowest), category 5 = A.
GRADE_PROBS: List[float] = [0.01, 0.03, 0.32, 0.43, 0.21]
GRADE_LABELS: List[str] = ["F", "D", "C", "B", "A"]


@dataclass
class ScenarioConfig:
    """One data-generating process for the ordinal simulation.

    `beta` is the log cumulative odds ratio for exposure under the
    cumulative-logit convention logit P(Y <= j | x) = theta_j - x * beta, so a
    positive value moves exposed subjects toward higher categories.

    `np_adjustment` is added threshold-by-threshold for exposed subjects only;
    entries beyond its length are treated as zero. All zeros (or None) means
    the data satisfy proportional odds by construction.

    `covariate_effects` adds independent standard-normal covariates, each with
    its own proportional effect.
    """

    name: str = "proportional"
    category_probs: List[float] = None
    category_labels: List[str] = None
    n_subjects: int = 25000
    p_exposed: float = 0.5
    beta: float = 0.7
    np_adjustment: Optional[List[float]] = None
    covariate_effects: Dict[str, float] = None
    seed: int = 0

    def __post_init__(self):
        if self.category_probs is None:
            self.category_probs = list(GRADE_PROBS)
        if self.category_labels is None:
            if len(self.category_probs) == len(GRADE_LABELS):
                self.category_labels = list(GRADE_LABELS)
            else:
                self.category_labels = [str(j + 1) for j in range(len(self.category_probs))]
        if self.covariate_effects is None:
            self.covariate_effects = {}

    @property
    def n_categories(self) -> int:
        return len(self.category_probs)

    @property
    def is_proportional(self) -> bool:
        return not any(float(d) != 0.0 for d in (self.np_adjustment or []))


def scenario_definitions(
    *,
    n_subjects: int = 25000,
    beta: float = 0.7,
    np_shift: float = -1.0,
    np_threshold: int = 3,
    seed: int = 0,
) -> Dict[str, ScenarioConfig]:
    """Return the scenario catalog run by the pipeline.

    - "proportional": exposure shifts every threshold by the same amount.
    - "non_proportional": in addition, threshold `np_threshold` (1-based) is
      moved by `np_shift` for exposed subjects only.
    """

    if np_threshold < 1 or np_threshold > len(GRADE_PROBS) - 1:
        raise ValueError(f"np_threshold must be in 1..{len(GRADE_PROBS) - 1}, got {np_threshold}")

    np_adj = [0.0] * (np_threshold - 1) + [float(np_shift)]

    return {
        "proportional": ScenarioConfig(
            name="proportional",
            n_subjects=n_subjects,
            beta=beta,
            seed=seed,
        ),
        "non_proportional": ScenarioConfig(
            name="non_proportional",
            n_subjects=n_subjects,
            beta=beta,
            np_adjustment=np_adj,
            seed=seed,
        ),
    }
