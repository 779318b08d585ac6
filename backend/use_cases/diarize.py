"""DiarizeAudioUseCase — orchestrates the full diarization pipeline.

Accepts the two inference ports and a progress port via dependency
injection. A run is strictly sequential:

    detect change points -> build segments -> per segment:
        embed -> assign speaker -> score confidence

A segment whose embedding or assignment fails gets the fallback
speaker `index % max_speakers` with confidence 0.5, so the number of
output segments never depends on per-segment failures.
"""

import logging
import uuid
import warnings
from typing import Optional

import numpy as np

from domain.errors import ConfigurationWarning, InitializationError, SegmentAssignmentError
from domain.models import (
    AudioSegment,
    DiarizationResult,
    DiarizeOptions,
    PipelineState,
    TranscriptSegment,
    Waveform,
    speaker_label,
)
from pipeline.change_points import ChangePointDetector
from pipeline.clusterer import NEUTRAL_CONFIDENCE, SpeakerClusterer
from pipeline.embedder import DEFAULT_TARGET_SECONDS, SpeakerEmbedder
from pipeline.segments import SegmentBuilder
from ports.diarization import DiarizationPort
from ports.inference import InferencePort
from ports.progress import (
    STAGE_ASSIGNING,
    STAGE_COMPLETE,
    STAGE_DETECTING,
    STAGE_FAILED,
    STAGE_SEGMENTING,
    ProgressPort,
)

logger = logging.getLogger(__name__)

# Speaker matching never uses a similarity threshold below this.
MIN_ASSIGNMENT_THRESHOLD = 0.3


class DiarizeAudioUseCase(DiarizationPort):
    def __init__(
        self,
        segmentation: InferencePort,
        embedding: InferencePort,
        progress: ProgressPort,
        clusterer: Optional[SpeakerClusterer] = None,
        share_speakers: bool = False,
        embedding_seconds: float = DEFAULT_TARGET_SECONDS,
        window_size: Optional[int] = None,
        hop_size: Optional[int] = None,
    ):
        self._segmentation = segmentation
        self._embedding = embedding
        self._progress = progress
        self._clusterer = clusterer or SpeakerClusterer()
        self._share_speakers = share_speakers
        self._embedding_seconds = embedding_seconds
        self._window_size = window_size
        self._hop_size = hop_size
        self._state = PipelineState.UNINITIALIZED
        if segmentation.is_loaded() and embedding.is_loaded():
            self._state = PipelineState.READY

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def clusterer(self) -> SpeakerClusterer:
        return self._clusterer

    def load(self, segment_model_path: str, embedding_model_path: str, **kwargs) -> None:
        logger.info("Initializing diarization engine...")
        self._state = PipelineState.UNINITIALIZED
        self._segmentation.load(segment_model_path, **kwargs)
        self._embedding.load(embedding_model_path, **kwargs)
        # Fails early if the embedding dimension can't be read from the model.
        SpeakerEmbedder(self._embedding, target_seconds=self._embedding_seconds).embedding_dim
        self._state = PipelineState.READY
        logger.info("Diarization engine initialized")

    def is_loaded(self) -> bool:
        return self._state in (PipelineState.READY, PipelineState.COMPLETE)

    def reset_speakers(self) -> None:
        self._clusterer.reset()

    def process(self, waveform: Waveform, options: Optional[DiarizeOptions] = None) -> list[AudioSegment]:
        """Ordered, speaker-labelled segments for one waveform."""
        return self.diarize(waveform, options).segments

    def diarize(
        self,
        waveform: Waveform,
        options: Optional[DiarizeOptions] = None,
        job_id: Optional[str] = None,
    ) -> DiarizationResult:
        if not self.is_loaded():
            raise InitializationError(f"Diarization pipeline not ready (state={self._state.value})")

        job_id = job_id or uuid.uuid4().hex[:12]
        opts, messages = (options or DiarizeOptions()).clamped()
        for message in messages:
            logger.warning(message)
            warnings.warn(message, ConfigurationWarning, stacklevel=2)

        if not self._share_speakers:
            self._clusterer.reset()

        self._state = PipelineState.PROCESSING
        try:
            result = self._run(np.asarray(waveform, dtype=np.float32), opts, job_id)
        except Exception as e:
            self._state = PipelineState.READY
            self._progress.report(job_id, STAGE_FAILED, detail=str(e))
            raise

        result.warnings = messages
        self._state = PipelineState.COMPLETE
        self._progress.report(job_id, STAGE_COMPLETE, detail=f"{len(result.segments)} segments, {result.num_speakers} speakers")
        return result

    def _run(self, waveform: np.ndarray, opts: DiarizeOptions, job_id: str) -> DiarizationResult:
        duration = len(waveform) / opts.sample_rate
        logger.info(f"Processing audio: {len(waveform)} samples ({duration:.2f}s)")

        if len(waveform) == 0:
            logger.warning("Empty waveform, nothing to diarize")
            return DiarizationResult(options=opts)

        # 1. Change points
        self._progress.report(job_id, STAGE_DETECTING)
        detector = ChangePointDetector(
            self._segmentation,
            sample_rate=opts.sample_rate,
            window_size=self._window_size,
            hop_size=self._hop_size,
        )
        change_points = detector.detect(waveform, threshold=opts.threshold)

        # 2. Segments
        self._progress.report(job_id, STAGE_SEGMENTING)
        segments = SegmentBuilder(opts.sample_rate).build(waveform, change_points.points)

        # 3. Speakers
        self._progress.report(job_id, STAGE_ASSIGNING)
        embedder = SpeakerEmbedder(self._embedding, opts.sample_rate, self._embedding_seconds)
        self._assign_speakers(segments, embedder, opts, job_id)

        speakers = {seg.speaker_id for seg in segments if seg.is_assigned}
        logger.info(f"Assigned {len(speakers)} unique speakers across {len(segments)} segments")

        return DiarizationResult(
            segments=segments,
            num_speakers=len(speakers),
            duration=duration,
            change_points=change_points.points,
            heuristic_segmentation=change_points.heuristic,
            options=opts,
        )

    def _assign_one(self, index: int, segment: AudioSegment, embedder: SpeakerEmbedder,
                    threshold: float, max_speakers: int) -> tuple[int, float]:
        """Raises SegmentAssignmentError for any failure other than an unloaded model."""
        try:
            embedding = embedder.embed(segment.samples, index)
            speaker_id = self._clusterer.assign(embedding, threshold, max_speakers)
            confidence = self._clusterer.calculate_confidence(embedding, speaker_id)
        except (InitializationError, SegmentAssignmentError):
            raise
        except Exception as e:
            raise SegmentAssignmentError(index, f"{type(e).__name__}: {e}") from e
        return speaker_id, confidence

    def _assign_speakers(self, segments: list[AudioSegment], embedder: SpeakerEmbedder,
                         opts: DiarizeOptions, job_id: str) -> None:
        threshold = max(MIN_ASSIGNMENT_THRESHOLD, opts.threshold)
        logger.debug(f"Using speaker assignment threshold: {threshold}")

        for i, segment in enumerate(segments):
            try:
                segment.speaker_id, segment.confidence = self._assign_one(
                    i, segment, embedder, threshold, opts.max_speakers
                )
            except SegmentAssignmentError as e:
                logger.warning(f"{e.message}; using fallback speaker")
                segment.speaker_id = i % opts.max_speakers if opts.max_speakers > 0 else 0
                segment.confidence = NEUTRAL_CONFIDENCE

            if len(segments) > 1:
                self._progress.report(
                    job_id, STAGE_ASSIGNING,
                    progress=(i + 1) / len(segments),
                    detail=f"segment {i + 1}/{len(segments)}",
                )

    def merge_with_transcription(
        self,
        diarization: DiarizationResult,
        segments: list[TranscriptSegment],
    ) -> list[TranscriptSegment]:
        if not diarization.segments:
            return segments

        texts: dict[int, list[str]] = {}
        for segment in segments:
            best_index, best_overlap = None, 0.0
            for i, spk in enumerate(diarization.segments):
                overlap = min(segment.end, spk.end_time) - max(segment.start, spk.start_time)
                if overlap > best_overlap:
                    best_index, best_overlap = i, overlap

            if best_index is None:
                segment.speaker = "unknown"
                continue

            matched = diarization.segments[best_index]
            segment.speaker = speaker_label(matched.speaker_id)
            if segment.text.strip():
                texts.setdefault(best_index, []).append(segment.text.strip())

        for i, parts in texts.items():
            diarization.segments[i].text = " ".join(parts)

        return segments
