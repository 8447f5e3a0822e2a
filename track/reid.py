"""Re-identification of features across captures.

Each current observation is paired with at most one tracked feature by
solving a rectangular minimum-cost assignment over a weighted cost of
surface distance, appearance distance and class mismatch.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Set, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.spatial.distance import cdist

from configs.settings import ReIdConfig
from contracts import (
    FeatureObservation,
    MatchOutcome,
    MatchResult,
    TrackedFeature,
    stable_feature_id,
)
from exceptions import ConfigurationError
from log_config.logger import get_logger

logger = get_logger(__name__)

Assignment = List[Tuple[int, int]]


class ReIdMatcher:
    def __init__(self, config: Optional[ReIdConfig] = None) -> None:
        self._config = config or ReIdConfig()
        if self._config.solver not in ("hungarian", "greedy"):
            raise ConfigurationError(f"Unknown assignment solver: {self._config.solver}", field="solver")

    def match(
        self,
        current: Sequence[FeatureObservation],
        tracked: Sequence[TrackedFeature],
    ) -> List[MatchResult]:
        """Classify every current observation as tracked or new.

        Returns:
            One MatchResult per observation, in input order. Tracked features
            without a partner produce no record; see ``lost_ids``. New features
            get an id that differs from every tracked id and from each other.

        Raises:
            ConfigurationError: If non-empty appearance embeddings differ in length
        """
        if not current:
            return []

        assigned: dict[int, Tuple[int, float]] = {}
        if tracked:
            cost = self.cost_matrix(current, tracked)
            for row, col in self._solve(cost):
                assigned[row] = (col, float(cost[row, col]))

        taken = {t.id for t in tracked}
        results: List[MatchResult] = []
        for index, observation in enumerate(current):
            pair = assigned.get(index)
            if pair is not None and pair[1] <= self._config.max_match_distance:
                feature = tracked[pair[0]]
                results.append(
                    MatchResult(
                        observation_index=index,
                        observation=observation,
                        tracked_id=feature.id,
                        assigned_id=feature.id,
                        score=1.0 - pair[1],
                        outcome=MatchOutcome.TRACKED,
                    )
                )
                continue
            if pair is not None:
                logger.debug(
                    f"Observation {index} paired with {tracked[pair[0]].id} at cost {pair[1]:.3f}, "
                    f"above {self._config.max_match_distance}; treating as new"
                )
            results.append(
                MatchResult(
                    observation_index=index,
                    observation=observation,
                    tracked_id=None,
                    assigned_id=_unique_id(observation, taken),
                    score=0.0,
                    outcome=MatchOutcome.NEW,
                )
            )

        n_tracked = sum(1 for r in results if r.is_tracked)
        logger.debug(
            f"Re-id: {len(current)} current vs {len(tracked)} tracked -> "
            f"{n_tracked} tracked, {len(current) - n_tracked} new, {len(tracked) - n_tracked} lost"
        )
        return results

    def cost_matrix(
        self,
        current: Sequence[FeatureObservation],
        tracked: Sequence[TrackedFeature],
    ) -> np.ndarray:
        cfg = self._config
        uv_current = np.array([o.surface_uv for o in current], dtype=np.float64).reshape(-1, 2)
        uv_tracked = np.array([t.surface_uv for t in tracked], dtype=np.float64).reshape(-1, 2)
        surface = cdist(uv_current, uv_tracked)
        appearance = appearance_distance(
            [o.appearance for o in current],
            [t.appearance for t in tracked],
        )
        class_current = np.array([o.lesion_class.value for o in current])
        class_tracked = np.array([t.lesion_class.value for t in tracked])
        mismatch = (class_current[:, None] != class_tracked[None, :]).astype(np.float64)
        return cfg.uv_weight * surface + cfg.appearance_weight * appearance + cfg.class_weight * mismatch

    def _solve(self, cost: np.ndarray) -> Assignment:
        if self._config.solver == "greedy":
            logger.warning("Greedy assignment is not guaranteed optimal; prefer the hungarian solver")
            return greedy_assignment(cost)
        rows, cols = linear_sum_assignment(cost)
        return [(int(r), int(c)) for r, c in zip(rows, cols)]


def appearance_distance(
    current: Sequence[np.ndarray],
    tracked: Sequence[np.ndarray],
) -> np.ndarray:
    """Pairwise ``1 - cosine similarity``; 1.0 where either embedding is empty or zero."""
    lengths = {v.size for v in list(current) + list(tracked) if v.size}
    if len(lengths) > 1:
        raise ConfigurationError(
            f"Appearance embeddings differ in length: {sorted(lengths)}", field="appearance"
        )
    distance = np.ones((len(current), len(tracked)), dtype=np.float64)
    if not lengths:
        return distance

    size = lengths.pop()

    def stack(vectors: Sequence[np.ndarray]) -> np.ndarray:
        return np.array([v if v.size else np.zeros(size) for v in vectors], dtype=np.float64).reshape(-1, size)

    a = stack(current)
    b = stack(tracked)
    norm_a = np.linalg.norm(a, axis=1)
    norm_b = np.linalg.norm(b, axis=1)
    usable = (norm_a[:, None] > 0) & (norm_b[None, :] > 0)
    with np.errstate(divide="ignore", invalid="ignore"):
        cosine = (a @ b.T) / (norm_a[:, None] * norm_b[None, :])
    return np.where(usable, 1.0 - np.clip(cosine, -1.0, 1.0), distance)


def greedy_assignment(cost: np.ndarray) -> Assignment:
    """Repeatedly take the globally cheapest free pair. Not optimal."""
    pairs: Assignment = []
    if cost.size == 0:
        return pairs
    order = np.argsort(cost, axis=None, kind="stable")
    used_rows: set[int] = set()
    used_cols: set[int] = set()
    limit = min(cost.shape)
    for flat in order:
        row, col = np.unravel_index(int(flat), cost.shape)
        if row in used_rows or col in used_cols:
            continue
        used_rows.add(int(row))
        used_cols.add(int(col))
        pairs.append((int(row), int(col)))
        if len(pairs) == limit:
            break
    return pairs


def _unique_id(observation: FeatureObservation, taken: Set[str]) -> str:
    """Stable id for a new feature, suffixed until it clashes with no id in ``taken``.

    The chosen id is added to ``taken``.
    """
    base = stable_feature_id(observation.lesion_class, observation.surface_uv)
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}_{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def lost_ids(results: Sequence[MatchResult], tracked: Sequence[TrackedFeature]) -> List[str]:
    """Ids of tracked features that no observation matched, in input order."""
    matched = {r.tracked_id for r in results if r.is_tracked}
    return [t.id for t in tracked if t.id not in matched]


_default_matcher = ReIdMatcher()


def match(
    current: Sequence[FeatureObservation],
    tracked: Sequence[TrackedFeature],
) -> List[MatchResult]:
    return _default_matcher.match(current, tracked)
