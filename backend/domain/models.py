"""Framework-agnostic domain models for the echo diarizer.

Waveforms are plain float32 numpy arrays. Everything else that flows
between pipeline stages is a dataclass defined here; Pydantic DTOs live
in models.py and are only built at the API/CLI boundary.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

import numpy as np

# Mono float32 samples in [-1, 1]. Owned by the caller, never written to.
Waveform = np.ndarray

MIN_THRESHOLD = 0.01
MAX_THRESHOLD = 0.7


def speaker_label(speaker_id: int) -> str:
    return f"speaker_{speaker_id}" if speaker_id >= 0 else "unknown"


@dataclass
class TranscriptSegment:
    """A single transcribed speech segment with timing and optional speaker."""
    start: float
    end: float
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class AudioSegment:
    """A slice of the waveform plus the speaker assigned to it.

    Built by the segment builder; only speaker_id, confidence and text
    are written afterwards.
    """
    samples: np.ndarray
    start_time: float
    end_time: float
    speaker_id: int = -1
    confidence: float = 0.0
    text: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_assigned(self) -> bool:
        return self.speaker_id >= 0


@dataclass
class SpeakerCentroid:
    """Running mean embedding for one discovered speaker."""
    vector: np.ndarray
    count: int = 1


@dataclass
class ChangePointResult:
    """Output of change-point detection.

    `heuristic` is True when the points were synthesised at fixed
    intervals because the model found nothing.
    """
    points: list[float] = field(default_factory=list)
    heuristic: bool = False
    adaptive_threshold: Optional[float] = None
    windows_processed: int = 0
    windows_skipped: int = 0


@dataclass(frozen=True)
class DiarizeOptions:
    """Immutable configuration snapshot for one diarization run."""
    threshold: float = 0.5
    max_speakers: int = 10
    sample_rate: int = 16000

    def clamped(self) -> tuple["DiarizeOptions", list[str]]:
        """Return a copy with the threshold forced into [0.01, 0.7].

        The second element lists a message per adjustment made.
        """
        messages: list[str] = []
        threshold = self.threshold
        if threshold > MAX_THRESHOLD:
            messages.append(f"Threshold {threshold} is very high, adjusting to {MAX_THRESHOLD}")
            threshold = MAX_THRESHOLD
        elif threshold < MIN_THRESHOLD:
            messages.append(f"Threshold {threshold} is very low, adjusting to {MIN_THRESHOLD}")
            threshold = MIN_THRESHOLD
        if not messages:
            return self, messages
        return replace(self, threshold=threshold), messages


class PipelineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    PROCESSING = "processing"
    COMPLETE = "complete"


@dataclass
class DiarizationResult:
    """Complete diarization output for one waveform."""
    segments: list[AudioSegment] = field(default_factory=list)
    num_speakers: int = 0
    duration: float = 0.0
    change_points: list[float] = field(default_factory=list)
    heuristic_segmentation: bool = False
    options: DiarizeOptions = field(default_factory=DiarizeOptions)
    warnings: list[str] = field(default_factory=list)
