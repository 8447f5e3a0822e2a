"""Tests for configuration loading and validation."""

from __future__ import annotations

import unittest
from pathlib import Path

import pytest

from configs.settings import AppConfig, DEFAULT_CONFIG_PATH, config_from_dict, load_config
from configs.validator import validate_config
from exceptions import ConfigError, ConfigValidationError, InvalidConfigError
from log_config import configure_file_logging, log_performance


def test_default_yaml_matches_dataclass_defaults():
    assert load_config(DEFAULT_CONFIG_PATH) == AppConfig()


def test_empty_mapping_uses_defaults():
    assert config_from_dict({}) == AppConfig()


def test_validate_fills_nested_defaults():
    data = {"reid": {"solver": "greedy"}}
    validate_config(data)
    assert data["reid"]["solver"] == "greedy"
    assert data["reid"]["max_match_distance"] == 0.5
    assert data["plane"]["iterations"] == 100
    assert data["metrics"]["confidence_weights"] == [0.3, 0.3, 0.2, 0.2]


def test_defaults_are_not_shared_between_validations():
    first = {}
    validate_config(first)
    first["metrics"]["confidence_weights"].append(9.9)
    second = {}
    validate_config(second)
    assert second["metrics"]["confidence_weights"] == [0.3, 0.3, 0.2, 0.2]


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        import tempfile

        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, text: str) -> Path:
        path = self.dir / "config.yaml"
        path.write_text(text)
        return path

    def test_partial_file(self):
        config = load_config(self._write("reid:\n  solver: greedy\nplane:\n  seed: null\n"))
        self.assertEqual(config.reid.solver, "greedy")
        self.assertIsNone(config.plane.seed)
        self.assertEqual(config.marker.known_diameter_mm, 10.0)

    def test_empty_file(self):
        self.assertEqual(load_config(self._write("")), AppConfig())

    def test_confidence_weights_become_tuple(self):
        config = load_config(self._write("metrics:\n  confidence_weights: [0.25, 0.25, 0.25, 0.25]\n"))
        self.assertEqual(config.metrics.confidence_weights, (0.25, 0.25, 0.25, 0.25))

    def test_missing_file(self):
        with self.assertRaises(InvalidConfigError):
            load_config(self.dir / "nope.yaml")

    def test_malformed_yaml(self):
        with self.assertRaises(InvalidConfigError):
            load_config(self._write("reid: [unclosed\n"))

    def test_unknown_solver(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            load_config(self._write("reid:\n  solver: auction\n"))
        self.assertTrue(any("solver" in msg for msg in ctx.exception.validation_errors))

    def test_wrong_type(self):
        with self.assertRaises(ConfigValidationError):
            load_config(self._write("plane:\n  iterations: many\n"))

    def test_inverted_optimal_band(self):
        with self.assertRaises(ConfigValidationError):
            load_config(self._write("calibration:\n  optimal_min_m: 0.5\n  optimal_max_m: 0.3\n"))

    def test_inverted_radius_range(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("marker:\n  min_radius_px: 50\n  max_radius_px: 20\n"))

    def test_non_mapping_root(self):
        with self.assertRaises(ConfigValidationError):
            load_config(self._write("- just\n- a list\n"))


def test_file_logging_creates_log_files(tmp_path):
    logs_dir = configure_file_logging(tmp_path / "logs")
    log_performance("unit test operation", 5.0)
    assert logs_dir.is_dir()
    assert list(logs_dir.glob("skinmetrics_*.log"))
    assert list(logs_dir.glob("errors_*.log"))
