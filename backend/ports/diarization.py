"""DiarizationPort — abstract interface for speaker diarization."""

from abc import ABC, abstractmethod
from typing import Optional

from domain.models import DiarizationResult, DiarizeOptions, TranscriptSegment, Waveform


class DiarizationPort(ABC):
    @abstractmethod
    def load(self, segment_model_path: str, embedding_model_path: str, **kwargs) -> None:
        """Load the segmentation and embedding models."""

    @abstractmethod
    def diarize(
        self,
        waveform: Waveform,
        options: Optional[DiarizeOptions] = None,
        job_id: Optional[str] = None,
    ) -> DiarizationResult:
        """Run speaker diarization on a mono waveform."""

    @abstractmethod
    def merge_with_transcription(
        self,
        diarization: DiarizationResult,
        segments: list[TranscriptSegment],
    ) -> list[TranscriptSegment]:
        """Overlay speaker labels onto transcription segments."""

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether both models are loaded and ready."""
