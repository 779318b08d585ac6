"""Post-processing for diarized segments.

Functions for speaker statistics, confidence filtering, custom speaker
labels and time formatting. All operate on domain AudioSegments.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from domain.models import AudioSegment, speaker_label

logger = logging.getLogger(__name__)


def compute_speaker_statistics(segments: List[AudioSegment]) -> Dict[int, dict]:
    """Per-speaker segment count, talk time and mean confidence.

    Args:
        segments: Diarized segments. Unassigned segments are skipped.

    Returns:
        Mapping of speaker_id to a dict with segment_count, total_duration,
        percentage (of total talk time) and average_confidence, ordered by
        speaker_id.
    """
    speakers: Dict[int, dict] = {}

    for seg in segments:
        if not seg.is_assigned:
            continue
        if seg.speaker_id not in speakers:
            speakers[seg.speaker_id] = {"segment_count": 0, "total_duration": 0.0, "confidence_sum": 0.0}
        speakers[seg.speaker_id]["segment_count"] += 1
        speakers[seg.speaker_id]["total_duration"] += seg.duration
        speakers[seg.speaker_id]["confidence_sum"] += seg.confidence

    total_talk = sum(s["total_duration"] for s in speakers.values())

    stats = {}
    for spk in sorted(speakers):
        data = speakers[spk]
        percentage = (data["total_duration"] / total_talk * 100) if total_talk > 0 else 0.0
        stats[spk] = {
            "segment_count": data["segment_count"],
            "total_duration": round(data["total_duration"], 3),
            "percentage": round(percentage, 1),
            "average_confidence": round(data["confidence_sum"] / data["segment_count"], 4),
        }

    return stats


def filter_by_confidence(segments: List[AudioSegment], min_confidence: float) -> List[AudioSegment]:
    """Remove segments whose speaker confidence is below min_confidence."""
    if min_confidence <= 0.0:
        return segments

    filtered = [seg for seg in segments if seg.confidence >= min_confidence]
    dropped = len(segments) - len(filtered)
    if dropped:
        logger.info(f"Confidence filter: dropped {dropped} segments below {min_confidence}")
    return filtered


def apply_speaker_labels(labels: Optional[Dict[str, str]], speaker_id: int) -> str:
    """Display name for a speaker.

    `labels` maps either the default label ("speaker_0") or the bare id
    ("0") to a custom name, e.g. {"speaker_0": "Alice", "1": "Bob"}.
    """
    default = speaker_label(speaker_id)
    if not labels:
        return default
    return labels.get(default) or labels.get(str(speaker_id)) or default


def format_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm"""
    seconds = max(0.0, seconds)
    hours = int(seconds) // 3600
    minutes = (int(seconds) % 3600) // 60
    secs = seconds - hours * 3600 - minutes * 60
    return f"{hours:02d}:{minutes:02d}:{secs:06.3f}"


def current_timestamp() -> str:
    """UTC timestamp as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
