from __future__ import annotations


class HighlightError(RuntimeError):
    """Base class for highlight pipeline errors."""


class EnvironmentFailureError(HighlightError):
    """The filesystem or media engine is unusable; aborts the pipeline."""


class PipelineCancelledError(HighlightError):
    """Raised when a cancelled pipeline stops between stages."""
