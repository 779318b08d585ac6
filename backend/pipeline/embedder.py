"""SpeakerEmbedder — one unit-length speaker vector per audio segment."""

import logging
from typing import Optional

import numpy as np

from domain.errors import InitializationError, SegmentAssignmentError
from ports.inference import InferencePort

logger = logging.getLogger(__name__)

DEFAULT_TARGET_SECONDS = 3.0
PEAK_EPSILON = 1e-6
NORM_EPSILON = 1e-6


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Unit-length copy of vector; near-zero vectors are returned unscaled."""
    norm = float(np.linalg.norm(vector))
    if norm > NORM_EPSILON:
        return vector / norm
    return vector.copy()


class SpeakerEmbedder:
    def __init__(
        self,
        inference: InferencePort,
        sample_rate: int = 16000,
        target_seconds: float = DEFAULT_TARGET_SECONDS,
    ):
        self._inference = inference
        self.sample_rate = sample_rate
        self.target_length = int(target_seconds * sample_rate)
        self._embedding_dim: Optional[int] = None

    @property
    def embedding_dim(self) -> int:
        """Flattened output size, read once from the model's declared shape."""
        if self._embedding_dim is None:
            if not self._inference.is_loaded():
                raise InitializationError("Embedding model not loaded")
            dim = self._inference.describe_shapes().output_size()
            if not dim:
                raise InitializationError(
                    "Embedding model output shape is not static; cannot determine embedding dimension"
                )
            self._embedding_dim = dim
            logger.info(f"Embedding dimension: {dim} (target length {self.target_length} samples)")
        return self._embedding_dim

    def prepare(self, samples: np.ndarray) -> np.ndarray:
        buf = np.zeros(self.target_length, dtype=np.float32)
        n = min(len(samples), self.target_length)
        buf[:n] = samples[:n]
        peak = float(np.max(np.abs(buf))) if self.target_length else 0.0
        if peak > PEAK_EPSILON:
            buf /= peak
        return buf

    def embed(self, samples: np.ndarray, segment_index: int = 0) -> np.ndarray:
        """Raises SegmentAssignmentError if the model call fails."""
        dim = self.embedding_dim
        tensor = self.prepare(samples)[np.newaxis, :]

        result = self._inference.run(tensor)
        if not result.ok:
            raise SegmentAssignmentError(segment_index, result.error or "embedding inference failed")

        raw = np.asarray(result.output, dtype=np.float32).reshape(-1)
        if raw.size < dim:
            raise SegmentAssignmentError(
                segment_index, f"embedding has {raw.size} values, expected {dim}"
            )
        return l2_normalize(raw[:dim])
