"""Tests for folding match results into tracked features."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import numpy as np
import pytest

from contracts import (
    FeatureMetrics,
    FeatureObservation,
    LesionClass,
    MatchOutcome,
    MatchResult,
    ScaleMethod,
)
from exceptions import ConfigurationError
from track import advance_track, apply_matches, match, start_track

DAY1 = datetime(2024, 2, 1, 8, 0)
DAY2 = DAY1 + timedelta(days=1)


def _observation(uv, lesion_class=LesionClass.PUSTULE):
    return FeatureObservation(surface_uv=uv, lesion_class=lesion_class, appearance=np.array([0.2, 0.9, 0.1]))


def _metrics(area, when):
    return replace(FeatureMetrics.zero(LesionClass.PUSTULE, ScaleMethod.INTRINSICS, captured_at=when), area_mm2=area)


def test_start_track_from_new_result():
    result = match([_observation((0.25, 0.75))], [])[0]
    feature = start_track(result, _metrics(4.0, DAY1), DAY1, name="chin spot")

    assert feature.id == "pustule_0.250_0.750"
    assert feature.first_seen == DAY1
    assert feature.last_seen == DAY1
    assert feature.consecutive_captures == 1
    assert len(feature.history) == 1
    assert feature.name == "chin spot"


def test_advance_track_appends_and_moves():
    first = start_track(match([_observation((0.25, 0.75))], [])[0], _metrics(4.0, DAY1), DAY1)
    result = match([_observation((0.26, 0.75))], [first])[0]
    assert result.outcome is MatchOutcome.TRACKED

    second = advance_track(first, result, _metrics(3.5, DAY2), DAY2)

    assert second.id == first.id
    assert second.surface_uv == (0.26, 0.75)
    assert second.last_seen == DAY2
    assert second.first_seen == DAY1
    assert second.consecutive_captures == 2
    assert len(second.history) == 2
    # the previous value is untouched
    assert first.consecutive_captures == 1
    assert len(first.history) == 1


def test_advance_track_rejects_foreign_result():
    feature = start_track(match([_observation((0.25, 0.75))], [])[0], None, DAY1)
    foreign = MatchResult(
        observation_index=0,
        observation=_observation((0.5, 0.5)),
        tracked_id="someone_else",
        assigned_id="someone_else",
        score=0.9,
        outcome=MatchOutcome.TRACKED,
    )
    with pytest.raises(ConfigurationError):
        advance_track(feature, foreign, None, DAY2)


def test_apply_matches_updates_arena():
    kept = start_track(match([_observation((0.2, 0.2))], [])[0], None, DAY1)
    missing = start_track(match([_observation((0.8, 0.8))], [])[0], None, DAY1)
    arena = {kept.id: kept, missing.id: missing}

    current = [_observation((0.21, 0.2)), _observation((0.5, 0.1), LesionClass.MOLE)]
    results = match(current, list(arena.values()))
    updated = apply_matches(arena, results, [_metrics(1.0, DAY2), None], DAY2)

    assert set(updated) == {kept.id, missing.id, "mole_0.500_0.100"}
    assert updated[kept.id].consecutive_captures == 2
    assert updated[missing.id].consecutive_captures == 0
    assert updated["mole_0.500_0.100"].history == ()
    assert arena[kept.id] is kept


def test_apply_matches_requires_aligned_metrics():
    results = match([_observation((0.2, 0.2))], [])
    with pytest.raises(ConfigurationError):
        apply_matches({}, results, [], DAY1)


def test_consistency_and_weekly_continuity():
    feature = start_track(match([_observation((0.2, 0.2))], [])[0], None, DAY1)
    for day in range(1, 7):
        result = match([_observation((0.2, 0.2))], [feature])[0]
        feature = advance_track(feature, result, None, DAY1 + timedelta(days=day))

    assert feature.consecutive_captures == 7
    assert feature.is_consistently_tracked
    assert feature.weekly_continuity() == pytest.approx(1.0)
    assert feature.weekly_continuity(weeks=2) == pytest.approx(0.5)


def test_new_feature_at_tracked_position_keeps_existing_history():
    established = start_track(match([_observation((0.1, 0.2), LesionClass.PAPULE)], [])[0], _metrics(5.0, DAY1), DAY1)
    established = replace(established, consecutive_captures=5)
    arena = {established.id: established}

    lookalike = FeatureObservation(
        surface_uv=(0.1, 0.2), lesion_class=LesionClass.PAPULE, appearance=np.array([-0.2, -0.9, -0.1])
    )
    results = match([lookalike], [established])
    assert results[0].outcome is MatchOutcome.NEW

    updated = apply_matches(arena, results, [None], DAY2)

    assert len(updated) == 2
    assert updated[established.id].first_seen == DAY1
    assert updated[established.id].history == established.history
    assert updated[established.id].consecutive_captures == 0
    assert updated[results[0].assigned_id].first_seen == DAY2


def test_same_position_new_features_both_enter_arena():
    results = match([_observation((0.1001, 0.2)), _observation((0.1004, 0.2))], [])
    updated = apply_matches({}, results, [None, None], DAY1)
    assert len(updated) == 2


def test_apply_matches_refuses_to_replace_tracked_feature():
    existing = start_track(match([_observation((0.3, 0.3))], [])[0], _metrics(2.0, DAY1), DAY1)
    clash = MatchResult(
        observation_index=0,
        observation=_observation((0.3, 0.3)),
        tracked_id=None,
        assigned_id=existing.id,
        score=0.0,
        outcome=MatchOutcome.NEW,
    )
    with pytest.raises(ConfigurationError):
        apply_matches({existing.id: existing}, [clash], [None], DAY2)


def test_apply_matches_rejects_unknown_tracked_feature():
    ghost = MatchResult(
        observation_index=0,
        observation=_observation((0.3, 0.3)),
        tracked_id="ghost",
        assigned_id="ghost",
        score=0.8,
        outcome=MatchOutcome.TRACKED,
    )
    with pytest.raises(ConfigurationError):
        apply_matches({}, [ghost], [None], DAY2)
