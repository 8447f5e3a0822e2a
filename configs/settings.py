"""Configuration loading for skinmetrics.

Each component takes its own section dataclass. The dataclass defaults equal
``configs/default.yaml`` so components work without a configuration file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from configs.validator import validate_config
from exceptions import ConfigError, InvalidConfigError
from log_config.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default.yaml")


@dataclass(frozen=True)
class CalibrationConfig:
    max_valid_depth_m: float = 5.0
    optimal_min_m: float = 0.20
    optimal_max_m: float = 0.35
    near_confidence_floor: float = 0.5  # confidence at contact distance
    far_confidence_floor: float = 0.3  # confidence at max_valid_depth_m


@dataclass(frozen=True)
class MarkerConfig:
    known_diameter_mm: float = 10.0
    min_radius_px: int = 10
    max_radius_px: int = 100
    radius_step_px: int = 5
    angle_steps: int = 64
    vote_threshold_ratio: float = 0.3  # of the candidate circumference
    max_candidates_per_radius: int = 10
    min_edge_pixels: int = 50
    circularity_tolerance_px: float = 3.0
    min_circularity: float = 0.85
    min_contrast: float = 0.30
    canny_low: float = 50.0
    canny_high: float = 150.0


@dataclass(frozen=True)
class PlaneConfig:
    ring_width_px: int = 5
    iterations: int = 100
    inlier_tolerance_mm: float = 2.0
    min_sample_cross: float = 1e-3
    seed: Optional[int] = 0


@dataclass(frozen=True)
class MetricsConfig:
    skin_ring_px: float = 10.0
    specular_threshold: int = 250
    # detection, mean depth confidence, valid ratio, uniformity
    confidence_weights: Tuple[float, float, float, float] = (0.3, 0.3, 0.2, 0.2)


@dataclass(frozen=True)
class HealingConfig:
    min_points: int = 3
    window_days: float = 14.0
    metric: str = "area_mm2"


@dataclass(frozen=True)
class ReIdConfig:
    uv_weight: float = 0.6
    appearance_weight: float = 0.3
    class_weight: float = 0.1
    max_match_distance: float = 0.5
    solver: str = "hungarian"


@dataclass(frozen=True)
class PipelineConfig:
    max_workers: int = 4
    slow_capture_ms: float = 250.0


@dataclass(frozen=True)
class AppConfig:
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    marker: MarkerConfig = field(default_factory=MarkerConfig)
    plane: PlaneConfig = field(default_factory=PlaneConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    healing: HealingConfig = field(default_factory=HealingConfig)
    reid: ReIdConfig = field(default_factory=ReIdConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def config_from_dict(data: Dict[str, Any]) -> AppConfig:
    """Validate a configuration mapping and build an AppConfig.

    Raises:
        ConfigError: If the mapping fails validation or cannot be converted
    """
    validate_config(data)
    try:
        metrics_data = dict(data["metrics"])
        metrics_data["confidence_weights"] = tuple(float(w) for w in metrics_data["confidence_weights"])
        return AppConfig(
            calibration=CalibrationConfig(**data["calibration"]),
            marker=MarkerConfig(**data["marker"]),
            plane=PlaneConfig(**data["plane"]),
            metrics=MetricsConfig(**metrics_data),
            healing=HealingConfig(**data["healing"]),
            reid=ReIdConfig(**data["reid"]),
            pipeline=PipelineConfig(**data["pipeline"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Failed to construct configuration objects: {e}")
        raise InvalidConfigError(f"Failed to construct configuration: {e}")


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    path = Path(path)
    try:
        logger.info(f"Loading configuration from {path}")
        if not path.exists():
            raise InvalidConfigError(f"Configuration file not found: {path}")
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}")
    except OSError as e:
        logger.error(f"Failed to read configuration file: {e}")
        raise InvalidConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        data = {}
    config = config_from_dict(data)
    logger.info(
        f"Configuration loaded successfully: {config.reid.solver} solver, "
        f"{config.plane.iterations} plane iterations, {config.pipeline.max_workers} workers"
    )
    return config


__all__ = [
    "AppConfig",
    "CalibrationConfig",
    "ConfigError",
    "HealingConfig",
    "MarkerConfig",
    "MetricsConfig",
    "PipelineConfig",
    "PlaneConfig",
    "ReIdConfig",
    "DEFAULT_CONFIG_PATH",
    "config_from_dict",
    "load_config",
]
