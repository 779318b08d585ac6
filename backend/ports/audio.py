"""AudioProcessingPort — abstract interface for audio decoding."""

from abc import ABC, abstractmethod

from domain.models import Waveform


class AudioProcessingPort(ABC):
    @abstractmethod
    def convert_to_wav(self, input_path: str, sample_rate: int = 16000) -> str:
        """Convert audio to mono 16-bit WAV at sample_rate. Returns path to converted file."""

    @abstractmethod
    def load_waveform(self, audio_path: str, sample_rate: int = 16000) -> Waveform:
        """Decode audio into mono float32 samples in [-1, 1] at sample_rate."""
