"""Custom exception classes for skinmetrics.

Only caller contract violations are raised from the numeric core. Missing depth
or an undetected marker is reported through zero or ``None`` results instead.
"""

from __future__ import annotations

from typing import Optional


class SkinMetricsError(Exception):
    """Base exception for all skinmetrics errors."""

    pass


class ConfigurationError(SkinMetricsError):
    """Raised when a caller passes inputs that violate a contract.

    For example a malformed intrinsic camera model, or appearance embeddings
    of different lengths.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ConfigError(SkinMetricsError):
    """Base exception for configuration file errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when a configuration file cannot be read or parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)
