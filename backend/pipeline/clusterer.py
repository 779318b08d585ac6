"""SpeakerClusterer — greedy online assignment of embeddings to speakers.

Each embedding goes to the most similar existing centroid if the cosine
similarity clears the threshold, otherwise opens a new speaker while
under max_speakers, otherwise is forced onto the closest centroid. The
centroid list is the only mutable state of a run; one instance is not
safe to share across concurrent runs.
"""

import logging
from typing import Optional

import numpy as np

from domain.models import SpeakerCentroid
from pipeline.embedder import l2_normalize

logger = logging.getLogger(__name__)

NEUTRAL_CONFIDENCE = 0.5


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit vectors, clamped to [-1, 1]; 0.0 on a size mismatch."""
    if a.size != b.size or a.size == 0:
        return 0.0
    return float(np.clip(np.dot(a, b), -1.0, 1.0))


class SpeakerClusterer:
    def __init__(self):
        self._centroids: list[SpeakerCentroid] = []

    @property
    def speaker_count(self) -> int:
        return len(self._centroids)

    @property
    def centroids(self) -> list[SpeakerCentroid]:
        return list(self._centroids)

    def reset(self) -> None:
        self._centroids.clear()
        logger.debug("Speaker clustering state reset")

    def best_match(self, embedding: np.ndarray) -> tuple[Optional[int], float]:
        best_speaker: Optional[int] = None
        best_similarity = -1.0
        for i, centroid in enumerate(self._centroids):
            similarity = cosine_similarity(embedding, centroid.vector)
            if best_speaker is None or similarity > best_similarity:
                best_similarity = similarity
                best_speaker = i
        return best_speaker, best_similarity

    def _update(self, speaker_id: int, embedding: np.ndarray) -> None:
        centroid = self._centroids[speaker_id]
        count = centroid.count
        centroid.vector = l2_normalize((centroid.vector * count + embedding) / (count + 1))
        centroid.count = count + 1

    def assign(self, embedding: np.ndarray, threshold: float, max_speakers: int) -> int:
        best_speaker, best_similarity = self.best_match(embedding)

        if best_speaker is not None and best_similarity > threshold:
            self._update(best_speaker, embedding)
            return best_speaker

        if len(self._centroids) < max_speakers:
            self._centroids.append(SpeakerCentroid(vector=np.array(embedding, dtype=np.float32), count=1))
            speaker_id = len(self._centroids) - 1
            logger.debug(f"Created new speaker {speaker_id} (best similarity: {best_similarity:.3f})")
            return speaker_id

        if best_speaker is not None:
            logger.debug(
                f"Speaker cap {max_speakers} reached, forcing onto speaker {best_speaker} "
                f"(similarity {best_similarity:.3f} <= {threshold})"
            )
            self._update(best_speaker, embedding)
            return best_speaker

        return 0

    def calculate_confidence(self, embedding: np.ndarray, speaker_id: int) -> float:
        if speaker_id < 0 or speaker_id >= len(self._centroids):
            return NEUTRAL_CONFIDENCE
        similarity = cosine_similarity(embedding, self._centroids[speaker_id].vector)
        return (similarity + 1.0) / 2.0
