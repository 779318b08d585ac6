"""SegmentBuilder — cuts the waveform at change points.

Change-point segments shorter than 2s are dropped, not merged: the
embedder needs enough audio to produce a stable speaker vector. With no
change points at all, long audio is cut into fixed 25s blocks and short
audio is returned whole.
"""

import logging

from domain.models import AudioSegment, Waveform

logger = logging.getLogger(__name__)

MIN_SEGMENT_DURATION = 2.0

FALLBACK_SPLIT_ABOVE = 30.0
FALLBACK_SEGMENT_DURATION = 25.0
FALLBACK_MIN_TAIL = 5.0


class SegmentBuilder:
    def __init__(self, sample_rate: int = 16000):
        self.sample_rate = sample_rate

    def _slice(self, waveform: Waveform, start: float, end: float):
        start_sample = int(start * self.sample_rate)
        end_sample = int(end * self.sample_rate)
        if end_sample > len(waveform) or start_sample >= end_sample:
            return None
        return waveform[start_sample:end_sample]

    def build(self, waveform: Waveform, change_points: list[float]) -> list[AudioSegment]:
        duration = len(waveform) / self.sample_rate

        if not change_points:
            return self._fallback(waveform, duration)

        boundaries = [0.0, *change_points, duration]
        segments: list[AudioSegment] = []
        dropped = 0

        for start, end in zip(boundaries[:-1], boundaries[1:]):
            if end - start < MIN_SEGMENT_DURATION:
                dropped += 1
                continue
            samples = self._slice(waveform, start, end)
            if samples is None:
                dropped += 1
                continue
            segments.append(AudioSegment(samples=samples, start_time=start, end_time=end))

        logger.info(f"Created {len(segments)} segments from {len(change_points)} change points ({dropped} dropped)")
        return segments

    def _fallback(self, waveform: Waveform, duration: float) -> list[AudioSegment]:
        if duration <= FALLBACK_SPLIT_ABOVE:
            logger.info(f"No change points, using a single {duration:.2f}s segment")
            return [AudioSegment(samples=waveform, start_time=0.0, end_time=duration)]

        segments: list[AudioSegment] = []
        start = 0.0
        while start < duration - FALLBACK_MIN_TAIL:
            end = min(start + FALLBACK_SEGMENT_DURATION, duration)
            samples = self._slice(waveform, start, end)
            if samples is not None:
                segments.append(AudioSegment(samples=samples, start_time=start, end_time=end))
            start += FALLBACK_SEGMENT_DURATION

        logger.info(f"No change points, split {duration:.2f}s into {len(segments)} fixed segments")
        return segments
