"""Fold match results into immutable tracked-feature values."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence

from contracts import FeatureMetrics, MatchResult, TrackedFeature
from exceptions import ConfigurationError
from log_config.logger import get_logger

logger = get_logger(__name__)


def start_track(
    result: MatchResult,
    metrics: Optional[FeatureMetrics],
    seen_at: datetime,
    name: Optional[str] = None,
) -> TrackedFeature:
    observation = result.observation
    return TrackedFeature(
        id=result.assigned_id,
        lesion_class=observation.lesion_class,
        surface_uv=observation.surface_uv,
        appearance=observation.appearance,
        first_seen=seen_at,
        last_seen=seen_at,
        consecutive_captures=1,
        history=(metrics,) if metrics is not None else (),
        name=name,
    )


def advance_track(
    tracked: TrackedFeature,
    result: MatchResult,
    metrics: Optional[FeatureMetrics],
    seen_at: datetime,
) -> TrackedFeature:
    """Return ``tracked`` updated with a new sighting.

    Raises:
        ConfigurationError: If ``result`` was matched to a different feature
    """
    if result.tracked_id != tracked.id:
        raise ConfigurationError(
            f"Match result for {result.tracked_id!r} applied to feature {tracked.id!r}",
            field="tracked_id",
        )
    history = tracked.history + ((metrics,) if metrics is not None else ())
    return replace(
        tracked,
        surface_uv=result.observation.surface_uv,
        appearance=result.observation.appearance,
        last_seen=seen_at,
        consecutive_captures=tracked.consecutive_captures + 1,
        history=history,
    )


def apply_matches(
    arena: Mapping[str, TrackedFeature],
    results: Sequence[MatchResult],
    metrics: Sequence[Optional[FeatureMetrics]],
    seen_at: datetime,
) -> Dict[str, TrackedFeature]:
    """New id -> feature mapping after one capture.

    ``metrics`` is indexed like ``results``. Features that were not matched
    keep their history but lose their consecutive streak. Existing features
    are never replaced.

    Raises:
        ConfigurationError: If ``results`` and ``metrics`` differ in length, a
            tracked result names a feature missing from ``arena``, or two
            results claim the same id
    """
    if len(metrics) != len(results):
        raise ConfigurationError(
            f"{len(results)} match results but {len(metrics)} metric bundles", field="metrics"
        )
    updated: Dict[str, TrackedFeature] = {}
    for result, bundle in zip(results, metrics):
        if result.assigned_id in updated:
            raise ConfigurationError(f"Feature id {result.assigned_id!r} assigned twice", field="assigned_id")
        if result.is_tracked:
            if result.tracked_id not in arena:
                raise ConfigurationError(
                    f"Tracked feature {result.tracked_id!r} is not in the arena", field="tracked_id"
                )
            updated[result.assigned_id] = advance_track(arena[result.tracked_id], result, bundle, seen_at)
        else:
            if result.assigned_id in arena:
                raise ConfigurationError(
                    f"New feature id {result.assigned_id!r} already tracked", field="assigned_id"
                )
            updated[result.assigned_id] = start_track(result, bundle, seen_at)

    for feature_id, feature in arena.items():
        if feature_id not in updated:
            updated[feature_id] = replace(feature, consecutive_captures=0)
    logger.debug(f"Tracked set now holds {len(updated)} features")
    return updated
