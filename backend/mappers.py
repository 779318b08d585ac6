"""Domain <-> DTO mappers.

Converts DiarizationResult/AudioSegment (domain) into the Pydantic
response models used by the API and CLI.
"""

from typing import Dict, Optional

from domain.models import AudioSegment, DiarizationResult
from models import DiarizationResponse, ModelInfo, SegmentOut, SpeakerSummary
from post_processing import apply_speaker_labels, compute_speaker_statistics, current_timestamp


def segment_to_dto(seg: AudioSegment, index: int = 0, labels: Optional[Dict[str, str]] = None) -> SegmentOut:
    """Convert a domain AudioSegment to a SegmentOut DTO."""
    return SegmentOut(
        id=index,
        start_time=round(seg.start_time, 3),
        end_time=round(seg.end_time, 3),
        duration=round(seg.duration, 3),
        speaker_id=seg.speaker_id,
        speaker=apply_speaker_labels(labels, seg.speaker_id),
        confidence=round(float(seg.confidence), 4),
        text=seg.text or None,
    )


def segments_to_dtos(segments: list[AudioSegment], labels: Optional[Dict[str, str]] = None) -> list[SegmentOut]:
    """Convert a list of domain segments to DTOs, preserving order."""
    return [segment_to_dto(seg, i, labels) for i, seg in enumerate(segments)]


def result_to_response(
    result: DiarizationResult,
    audio_path: Optional[str] = None,
    segment_model: Optional[str] = None,
    embedding_model: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    segments: Optional[list[AudioSegment]] = None,
) -> DiarizationResponse:
    """Build the full response.

    `segments` overrides result.segments (e.g. after confidence
    filtering); speaker statistics are computed over the same list.
    """
    segments = result.segments if segments is None else segments
    stats = compute_speaker_statistics(segments)

    speakers = [
        SpeakerSummary(
            speaker_id=speaker_id,
            speaker=apply_speaker_labels(labels, speaker_id),
            **data,
        )
        for speaker_id, data in stats.items()
    ]

    return DiarizationResponse(
        segments=segments_to_dtos(segments, labels),
        total_speakers=len(stats),
        total_duration=round(segments[-1].end_time, 3) if segments else 0.0,
        audio_path=audio_path,
        created_at=current_timestamp(),
        model_info=ModelInfo(
            segment_model=segment_model,
            embedding_model=embedding_model,
            max_speakers=result.options.max_speakers,
            threshold=result.options.threshold,
            sample_rate=result.options.sample_rate,
        ),
        speakers=speakers,
        change_points=[round(t, 3) for t in result.change_points],
        heuristic_segmentation=result.heuristic_segmentation,
        warnings=list(result.warnings),
    )
