"""HTTP API for the echo diarizer.

POST /v1/audio/diarize accepts a multipart audio upload and returns a
DiarizationResponse. Pipeline errors are returned as an ErrorResponse body
(503 when the models are not loaded, 400 for undecodable audio). One
diarization runs at a time: the use case owns a single speaker clusterer
whose centroid updates are not synchronized.
"""

import os
import json
import logging
import tempfile
import threading
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from config import Config, create_audio_adapter, create_diarization_use_case, default_options, get_config
from domain.errors import AudioLoadError, DiarizationError, InitializationError
from domain.models import DiarizeOptions
from mappers import result_to_response
from models import DiarizationResponse, ErrorResponse, HealthResponse
from ports.audio import AudioProcessingPort
from post_processing import filter_by_confidence
from use_cases.diarize import DiarizeAudioUseCase

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InitializationError: 503,
    AudioLoadError: 400,
}


def _status_for(error: DiarizationError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def _parse_labels(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        labels = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid speaker_labels JSON, skipping")
        return None
    if not isinstance(labels, dict):
        logger.warning("speaker_labels must be a JSON object, skipping")
        return None
    return {str(k): str(v) for k, v in labels.items()}


def create_app(
    use_case: Optional[DiarizeAudioUseCase] = None,
    audio: Optional[AudioProcessingPort] = None,
    cfg: Optional[Config] = None,
) -> FastAPI:
    cfg = cfg or get_config()

    if use_case is None:
        try:
            use_case = create_diarization_use_case(cfg)
        except InitializationError as e:
            logger.error(f"Failed to initialize diarization engine: {e.message}")
            use_case = create_diarization_use_case(cfg, load=False)

    audio = audio or create_audio_adapter(cfg)
    run_lock = threading.Lock()

    app = FastAPI(title="Echo Diarizer", version="1.0.0")
    app.state.use_case = use_case

    @app.exception_handler(DiarizationError)
    async def diarization_error(request: Request, exc: DiarizationError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning(f"{request.url.path} failed with {exc.error_code} ({status}): {exc.message}")
        return JSONResponse(status_code=status, content=ErrorResponse(**exc.to_dict()).model_dump())

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        loaded = use_case.is_loaded()
        return HealthResponse(
            status="ok" if loaded else "degraded",
            models_loaded=loaded,
            state=use_case.state.value,
        )

    @app.post("/v1/audio/diarize", response_model=DiarizationResponse)
    def diarize(
        file: UploadFile = File(...),
        threshold: Optional[float] = Form(None),
        max_speakers: Optional[int] = Form(None),
        min_confidence: float = Form(0.0),
        speaker_labels: Optional[str] = Form(None),
    ) -> DiarizationResponse:
        if not use_case.is_loaded():
            raise InitializationError("Diarization models not loaded", details={"state": use_case.state.value})

        defaults = default_options(cfg)
        options = DiarizeOptions(
            threshold=threshold if threshold is not None else defaults.threshold,
            max_speakers=max_speakers if max_speakers is not None else defaults.max_speakers,
            sample_rate=defaults.sample_rate,
        )

        suffix = os.path.splitext(file.filename or "")[1] or ".wav"
        temp_file = tempfile.NamedTemporaryFile(suffix=suffix, dir=cfg.temp_dir, delete=False)
        try:
            temp_file.write(file.file.read())
            temp_file.close()

            waveform = audio.load_waveform(temp_file.name, options.sample_rate)

            with run_lock:
                result = use_case.diarize(waveform, options)
        finally:
            if os.path.exists(temp_file.name):
                os.unlink(temp_file.name)

        segments = filter_by_confidence(result.segments, min_confidence)
        return result_to_response(
            result,
            audio_path=file.filename,
            segment_model=os.path.basename(cfg.segment_model_path),
            embedding_model=os.path.basename(cfg.embedding_model_path),
            labels=_parse_labels(speaker_labels),
            segments=segments,
        )

    return app
