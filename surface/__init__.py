"""Reference surface fitting and depth quality."""

from .plane_fitter import PlaneFitter, fit_boundary_plane
from .quality import DepthQualityEvaluator

__all__ = ["DepthQualityEvaluator", "PlaneFitter", "fit_boundary_plane"]
