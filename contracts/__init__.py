"""Shared data contracts for lesion measurement and tracking."""

from .classes import LesionClass
from .types import (
    BoundingBox,
    CalibratedDepthField,
    DepthQuality,
    FeatureCandidate,
    FeatureMetrics,
    FeatureObservation,
    IntrinsicCameraModel,
    LocalPlane,
    MatchOutcome,
    MatchResult,
    Point2D,
    ReferenceMarker,
    ScaleMethod,
    TrackedFeature,
    stable_feature_id,
)

__all__ = [
    "BoundingBox",
    "CalibratedDepthField",
    "DepthQuality",
    "FeatureCandidate",
    "FeatureMetrics",
    "FeatureObservation",
    "IntrinsicCameraModel",
    "LesionClass",
    "LocalPlane",
    "MatchOutcome",
    "MatchResult",
    "Point2D",
    "ReferenceMarker",
    "ScaleMethod",
    "TrackedFeature",
    "stable_feature_id",
]
