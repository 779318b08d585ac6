from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class SegmentOut(BaseModel):
    """A diarized segment in the response"""
    id: int
    start_time: float
    end_time: float
    duration: float
    speaker_id: int
    speaker: str
    confidence: float
    text: Optional[str] = None


class SpeakerSummary(BaseModel):
    """Per-speaker segment count, talk time and mean confidence."""
    speaker_id: int
    speaker: str
    segment_count: int
    total_duration: float
    percentage: float
    average_confidence: float


class ModelInfo(BaseModel):
    segment_model: Optional[str] = None
    embedding_model: Optional[str] = None
    max_speakers: int
    threshold: float
    sample_rate: int


class DiarizationResponse(BaseModel):
    """Response format for diarization"""
    segments: List[SegmentOut] = []
    total_speakers: int
    total_duration: float
    audio_path: Optional[str] = None
    created_at: str
    model_info: ModelInfo
    speakers: List[SpeakerSummary] = []
    change_points: List[float] = []
    heuristic_segmentation: bool = False
    warnings: List[str] = []


class HealthResponse(BaseModel):
    status: str
    models_loaded: bool
    state: str


class ErrorResponse(BaseModel):
    """Body returned for any DiarizationError raised by a route"""
    error: bool = True
    error_code: str
    message: str
    details: Dict[str, Any] = {}
