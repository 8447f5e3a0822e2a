"""Configuration validation using JSON Schema."""

from __future__ import annotations

import copy
from typing import Any, Dict

import jsonschema
from jsonschema import Draft7Validator, validators

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

_PROBABILITY = {"type": "number", "minimum": 0.0, "maximum": 1.0}

# JSON Schema for default.yaml configuration
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "calibration": {
            "type": "object",
            "default": {},
            "properties": {
                "max_valid_depth_m": {"type": "number", "exclusiveMinimum": 0, "maximum": 20.0, "default": 5.0},
                "optimal_min_m": {"type": "number", "exclusiveMinimum": 0, "default": 0.20},
                "optimal_max_m": {"type": "number", "exclusiveMinimum": 0, "default": 0.35},
                "near_confidence_floor": {**_PROBABILITY, "default": 0.5},
                "far_confidence_floor": {**_PROBABILITY, "default": 0.3},
            },
        },
        "marker": {
            "type": "object",
            "default": {},
            "properties": {
                "known_diameter_mm": {"type": "number", "exclusiveMinimum": 0, "default": 10.0},
                "min_radius_px": {"type": "integer", "minimum": 2, "default": 10},
                "max_radius_px": {"type": "integer", "minimum": 3, "default": 100},
                "radius_step_px": {"type": "integer", "minimum": 1, "default": 5},
                "angle_steps": {"type": "integer", "minimum": 8, "maximum": 720, "default": 64},
                "vote_threshold_ratio": {**_PROBABILITY, "default": 0.3},
                "max_candidates_per_radius": {"type": "integer", "minimum": 1, "default": 10},
                "min_edge_pixels": {"type": "integer", "minimum": 1, "default": 50},
                "circularity_tolerance_px": {"type": "number", "minimum": 0.5, "default": 3.0},
                "min_circularity": {**_PROBABILITY, "default": 0.85},
                "min_contrast": {**_PROBABILITY, "default": 0.30},
                "canny_low": {"type": "number", "minimum": 0, "maximum": 255, "default": 50},
                "canny_high": {"type": "number", "minimum": 0, "maximum": 255, "default": 150},
            },
        },
        "plane": {
            "type": "object",
            "default": {},
            "properties": {
                "ring_width_px": {"type": "integer", "minimum": 1, "maximum": 50, "default": 5},
                "iterations": {"type": "integer", "minimum": 1, "maximum": 10000, "default": 100},
                "inlier_tolerance_mm": {"type": "number", "exclusiveMinimum": 0, "default": 2.0},
                "min_sample_cross": {"type": "number", "exclusiveMinimum": 0, "default": 0.001},
                "seed": {"type": ["integer", "null"], "minimum": 0, "default": 0},
            },
        },
        "metrics": {
            "type": "object",
            "default": {},
            "properties": {
                "skin_ring_px": {"type": "number", "exclusiveMinimum": 0, "maximum": 100, "default": 10},
                "specular_threshold": {"type": "integer", "minimum": 1, "maximum": 256, "default": 250},
                "confidence_weights": {
                    "type": "array",
                    "items": {"type": "number", "minimum": 0.0},
                    "minItems": 4,
                    "maxItems": 4,
                    "default": [0.3, 0.3, 0.2, 0.2],
                },
            },
        },
        "healing": {
            "type": "object",
            "default": {},
            "properties": {
                "min_points": {"type": "integer", "minimum": 2, "default": 3},
                "window_days": {"type": "number", "exclusiveMinimum": 0, "default": 14},
                "metric": {
                    "type": "string",
                    "enum": ["area_mm2", "diameter_mm", "equivalent_diameter_mm", "volume_mm3",
                             "elevation_mm", "redness_delta"],
                    "default": "area_mm2",
                },
            },
        },
        "reid": {
            "type": "object",
            "default": {},
            "properties": {
                "uv_weight": {"type": "number", "minimum": 0.0, "default": 0.6},
                "appearance_weight": {"type": "number", "minimum": 0.0, "default": 0.3},
                "class_weight": {"type": "number", "minimum": 0.0, "default": 0.1},
                "max_match_distance": {"type": "number", "exclusiveMinimum": 0, "default": 0.5},
                "solver": {"type": "string", "enum": ["hungarian", "greedy"], "default": "hungarian"},
            },
        },
        "pipeline": {
            "type": "object",
            "default": {},
            "properties": {
                "max_workers": {"type": "integer", "minimum": 1, "maximum": 64, "default": 4},
                "slow_capture_ms": {"type": "number", "exclusiveMinimum": 0, "default": 250.0},
            },
        },
    },
}


def extend_with_default(validator_class):
    """Extend JSON Schema validator to set default values."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(prop, copy.deepcopy(subschema["default"]))

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultValidatingValidator = extend_with_default(Draft7Validator)


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration against JSON Schema, filling in defaults.

    Args:
        config: Configuration dictionary (modified in place with defaults)

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration root must be a mapping")

    try:
        validator = DefaultValidatingValidator(CONFIG_SCHEMA)
        errors = list(validator.iter_errors(config))

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.path) if error.path else "root"
                error_messages.append(f"{path}: {error.message}")

            logger.error(f"Configuration validation failed with {len(errors)} errors")
            for msg in error_messages:
                logger.error(f"  - {msg}")

            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s). See logs for details.",
                validation_errors=error_messages,
            )

        _check_ranges(config)
        logger.debug("Configuration validation passed")

    except jsonschema.exceptions.SchemaError as e:
        logger.error(f"Invalid schema: {e}")
        raise ConfigValidationError(f"Invalid schema definition: {e}")


def _check_ranges(config: Dict[str, Any]) -> None:
    """Cross-field checks JSON Schema cannot express."""
    messages = []
    calibration = config["calibration"]
    if not calibration["optimal_min_m"] < calibration["optimal_max_m"] < calibration["max_valid_depth_m"]:
        messages.append("calibration: optimal_min_m < optimal_max_m < max_valid_depth_m must hold")
    marker = config["marker"]
    if marker["min_radius_px"] >= marker["max_radius_px"]:
        messages.append("marker: min_radius_px must be below max_radius_px")
    if marker["canny_low"] > marker["canny_high"]:
        messages.append("marker: canny_low must not exceed canny_high")
    if messages:
        for msg in messages:
            logger.error(f"  - {msg}")
        raise ConfigValidationError(
            f"Configuration validation failed with {len(messages)} error(s). See logs for details.",
            validation_errors=messages,
        )


__all__ = ["validate_config", "CONFIG_SCHEMA"]
