"""Per-capture processing pipeline."""

from .capture import CaptureInput, CaptureProcessor, CaptureResult

__all__ = ["CaptureInput", "CaptureProcessor", "CaptureResult"]
