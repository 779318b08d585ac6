import os
import shutil
import logging
from typing import Dict, Optional, Any
from pathlib import Path

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_MODEL_DIR = "/models/diarization"
DEFAULT_SEGMENT_MODEL = "segmentation-3.0.onnx"
DEFAULT_EMBEDDING_MODEL = "embedding-1.0.onnx"
DEFAULT_THRESHOLD = 0.5
DEFAULT_MAX_SPEAKERS = 10
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_EMBEDDING_SECONDS = 3.0
DEFAULT_INTRA_OP_THREADS = 4


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"
        self.model_dir = os.environ.get("MODEL_DIR", DEFAULT_MODEL_DIR)
        self.segment_model_path = os.environ.get(
            "SEGMENT_MODEL_PATH", os.path.join(self.model_dir, DEFAULT_SEGMENT_MODEL)
        )
        self.embedding_model_path = os.environ.get(
            "EMBEDDING_MODEL_PATH", os.path.join(self.model_dir, DEFAULT_EMBEDDING_MODEL)
        )
        self.threshold = float(os.environ.get("THRESHOLD", DEFAULT_THRESHOLD))
        self.max_speakers = int(os.environ.get("MAX_SPEAKERS", DEFAULT_MAX_SPEAKERS))
        self.sample_rate = int(os.environ.get("SAMPLE_RATE", DEFAULT_SAMPLE_RATE))
        self.embedding_seconds = float(os.environ.get("EMBEDDING_SECONDS", DEFAULT_EMBEDDING_SECONDS))
        self.intra_op_threads = int(os.environ.get("INTRA_OP_THREADS", DEFAULT_INTRA_OP_THREADS))
        self.provider = os.environ.get("ORT_PROVIDER", "cpu").lower()
        self.share_speakers = os.environ.get("SHARE_SPEAKERS", "false").lower() == "true"
        self.ffmpeg_binary = os.environ.get("FFMPEG_BINARY_PATH", shutil.which("ffmpeg") or "ffmpeg")
        self.temp_dir = os.environ.get("TEMP_DIR", "/tmp/echo-diarizer")
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "segment_model_path": self.segment_model_path,
            "embedding_model_path": self.embedding_model_path,
            "threshold": self.threshold,
            "max_speakers": self.max_speakers,
            "sample_rate": self.sample_rate,
            "embedding_seconds": self.embedding_seconds,
            "intra_op_threads": self.intra_op_threads,
            "provider": self.provider,
            "share_speakers": self.share_speakers,
        }


config = Config()


def get_config() -> Config:
    return config


def create_inference_adapters(cfg: Config):
    """Create the segmentation and embedding inference adapters.

    Uses lazy imports so onnxruntime is only loaded when needed.
    """
    from adapters.onnx.inference import OnnxInferenceAdapter

    segmentation = OnnxInferenceAdapter(name="segmentation")
    embedding = OnnxInferenceAdapter(name="embedding")
    logger.info(f"Inference adapters: provider={cfg.provider}, threads={cfg.intra_op_threads}")
    return segmentation, embedding


def create_audio_adapter(cfg: Optional[Config] = None):
    """Create the audio decoding adapter (always FFmpeg + soundfile)."""
    from adapters.ffmpeg.audio import FFmpegAudioAdapter
    cfg = cfg or get_config()
    return FFmpegAudioAdapter(ffmpeg_binary=cfg.ffmpeg_binary)


def create_progress_adapter():
    from adapters.local.log_progress import LogProgressAdapter
    return LogProgressAdapter()


def create_diarization_use_case(cfg: Config, load: bool = True):
    """Wire the diarization use case from config.

    With load=True both models are loaded; InitializationError propagates.
    """
    from use_cases.diarize import DiarizeAudioUseCase

    segmentation, embedding = create_inference_adapters(cfg)
    use_case = DiarizeAudioUseCase(
        segmentation=segmentation,
        embedding=embedding,
        progress=create_progress_adapter(),
        share_speakers=cfg.share_speakers,
        embedding_seconds=cfg.embedding_seconds,
    )
    if load:
        use_case.load(
            cfg.segment_model_path,
            cfg.embedding_model_path,
            device=cfg.provider,
            intra_op_threads=cfg.intra_op_threads,
        )
    return use_case


def default_options(cfg: Config):
    from domain.models import DiarizeOptions
    return DiarizeOptions(
        threshold=cfg.threshold,
        max_speakers=cfg.max_speakers,
        sample_rate=cfg.sample_rate,
    )
