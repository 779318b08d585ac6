"""FFmpegAudioAdapter — decodes any input ffmpeg understands into a mono waveform.

Formats libsndfile reads natively are decoded directly with soundfile;
everything else is first converted to a temporary 16-bit mono WAV.
"""

import os
import logging
import tempfile
import subprocess

import numpy as np
import soundfile

from domain.errors import AudioLoadError
from domain.models import Waveform
from ports.audio import AudioProcessingPort

logger = logging.getLogger(__name__)

NATIVE_EXTENSIONS = {".wav", ".flac", ".ogg"}


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling."""
    if source_rate == target_rate or len(audio) == 0:
        return audio
    target_len = int(len(audio) * target_rate / source_rate)
    indices = np.linspace(0, len(audio) - 1, target_len)
    return np.interp(indices, np.arange(len(audio)), audio).astype(np.float32)


class FFmpegAudioAdapter(AudioProcessingPort):
    def __init__(self, ffmpeg_binary: str = "ffmpeg"):
        self._ffmpeg = ffmpeg_binary

    def convert_to_wav(self, input_path: str, sample_rate: int = 16000) -> str:
        temp_file = tempfile.NamedTemporaryFile(suffix=".wav", delete=False)
        temp_file.close()
        output_path = temp_file.name

        try:
            cmd = [
                self._ffmpeg, "-y",
                "-i", input_path,
                "-c:a", "pcm_s16le",
                "-ar", str(sample_rate),
                "-ac", "1",
                output_path,
            ]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True)
            except OSError as e:
                raise AudioLoadError(f"Failed to run ffmpeg: {e}", details={"ffmpeg": self._ffmpeg}) from e
            if result.returncode != 0:
                logger.error(f"Error converting audio: {result.stderr}")
                raise AudioLoadError(
                    f"Failed to convert audio: {input_path}",
                    details={"stderr": result.stderr[-2000:]},
                )
            return output_path

        except Exception:
            if os.path.exists(output_path):
                os.unlink(output_path)
            raise

    def load_waveform(self, audio_path: str, sample_rate: int = 16000) -> Waveform:
        if not os.path.exists(audio_path):
            raise AudioLoadError(f"Audio file not found: {audio_path}")

        converted = None
        path = audio_path
        if os.path.splitext(audio_path)[1].lower() not in NATIVE_EXTENSIONS:
            converted = self.convert_to_wav(audio_path, sample_rate)
            path = converted

        try:
            logger.info(f"Loading audio: {path}")
            audio, file_rate = soundfile.read(path, dtype="float32")
        except RuntimeError as e:
            raise AudioLoadError(f"Failed to decode audio: {audio_path}", details={"reason": str(e)}) from e
        finally:
            if converted and os.path.exists(converted):
                os.unlink(converted)

        if audio.ndim > 1:
            audio = audio.mean(axis=1)

        if file_rate != sample_rate:
            logger.warning(f"Audio is {file_rate}Hz, resampling to {sample_rate}Hz")
            audio = resample(audio, file_rate, sample_rate)

        if len(audio) == 0:
            raise AudioLoadError(f"Audio file is empty: {audio_path}")

        audio = np.clip(audio, -1.0, 1.0).astype(np.float32)
        audio.setflags(write=False)
        logger.info(f"Audio loaded: {len(audio) / sample_rate:.2f}s @ {sample_rate}Hz")
        return audio
