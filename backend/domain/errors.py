"""Error taxonomy for the diarization pipeline.

Only InitializationError (and AudioLoadError at the outer surfaces)
reaches callers. The per-window and per-segment errors are recovered
inside the pipeline and exist so the recovery paths log something
specific.
"""

from typing import Any, Dict, Optional


class DiarizationError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, error_code: str = "DIARIZATION_ERROR", details: Optional[Dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InitializationError(DiarizationError):
    """An inference model could not be loaded. Fatal."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, error_code="INITIALIZATION_ERROR", details=details)


class WindowProcessingError(DiarizationError):
    """A single segmentation window failed; the window is skipped."""

    def __init__(self, window_start: int, reason: str):
        super().__init__(
            f"Window at sample {window_start} failed: {reason}",
            error_code="WINDOW_PROCESSING_ERROR",
            details={"window_start": window_start, "reason": reason},
        )


class SegmentAssignmentError(DiarizationError):
    """Embedding or clustering failed for one segment; a fallback speaker is used."""

    def __init__(self, segment_index: int, reason: str):
        super().__init__(
            f"Speaker assignment failed for segment {segment_index}: {reason}",
            error_code="SEGMENT_ASSIGNMENT_ERROR",
            details={"segment_index": segment_index, "reason": reason},
        )


class AudioLoadError(DiarizationError):
    """Audio could not be decoded into a waveform."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, error_code="AUDIO_LOAD_ERROR", details=details)


class ConfigurationWarning(UserWarning):
    """An option was out of range and has been clamped."""
