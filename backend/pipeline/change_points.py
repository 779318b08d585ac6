"""ChangePointDetector — finds speaker turnover timestamps in a waveform.

Slides a fixed window over the audio, runs the segmentation model on
each window and turns its per-frame class logits into a "change
probability" signal. Peaks are then picked over the concatenated signal
of the whole recording, against a threshold adapted to that recording's
own probability distribution.

Signal per frame:
    0 if the dominant (arg-max) class equals the previous frame's,
    otherwise min(1, 2 * H(softmax) / log(num_classes)).

Peak threshold:
    max(max(0.01, 0.1 * requested), mean + 0.2 * (max - mean))
"""

import logging
from typing import Optional

import numpy as np

from domain.errors import InitializationError, WindowProcessingError
from domain.models import ChangePointResult, Waveform
from ports.inference import InferencePort

logger = logging.getLogger(__name__)

# 3.2s window with 50% overlap at 16kHz, as expected by pyannote segmentation-3.0.
DEFAULT_WINDOW_SIZE = 51200
DEFAULT_HOP_SIZE = 25600

PRE_EMPHASIS = 0.97
PEAK_EPSILON = 1e-6
PROB_EPSILON = 1e-6

MIN_CHANGE_GAP = 1.0            # seconds between two reported change points
MIN_FLOOR_THRESHOLD = 0.01
FLOOR_THRESHOLD_SCALE = 0.1
ADAPTIVE_SPREAD = 0.2

FALLBACK_MIN_DURATION = 10.0    # audio longer than this gets synthetic points
FALLBACK_INTERVAL = 30.0
FALLBACK_TAIL = 10.0


def prepare_window(window: np.ndarray, window_size: int) -> np.ndarray:
    """Zero-pad/truncate to window_size, peak-normalise, then pre-emphasise.

    Returns a new buffer; the input slice is left untouched.
    """
    buf = np.zeros(window_size, dtype=np.float32)
    n = min(len(window), window_size)
    buf[:n] = window[:n]

    peak = float(np.max(np.abs(buf))) if window_size else 0.0
    if peak > PEAK_EPSILON:
        buf /= peak

    # y[i] = x[i] - 0.97 * x[i-1]; the right-hand side is evaluated on the
    # unfiltered buffer, same as a right-to-left in-place pass.
    buf[1:] = buf[1:] - PRE_EMPHASIS * buf[:-1]
    return buf


def change_probabilities(logits: np.ndarray) -> np.ndarray:
    """Per-frame change probability for a (time_steps, num_classes) logit matrix."""
    time_steps, num_classes = logits.shape
    probs = np.zeros(time_steps, dtype=np.float32)
    if time_steps < 2 or num_classes < 2:
        return probs

    dominant = np.argmax(logits, axis=1)
    changed = np.zeros(time_steps, dtype=bool)
    changed[1:] = dominant[1:] != dominant[:-1]
    if not changed.any():
        return probs

    rows = logits[changed].astype(np.float64)
    exp = np.exp(rows - rows.max(axis=1, keepdims=True))
    softmax = exp / exp.sum(axis=1, keepdims=True)
    safe = np.where(softmax > PROB_EPSILON, softmax, 1.0)
    entropy = -np.sum(np.where(softmax > PROB_EPSILON, softmax * np.log(safe), 0.0), axis=1)

    normalized = np.minimum(1.0, entropy / np.log(num_classes))
    probs[changed] = np.minimum(1.0, normalized * 2.0)
    return probs


def adaptive_threshold(probabilities: np.ndarray, requested_threshold: float) -> float:
    floor = max(MIN_FLOOR_THRESHOLD, requested_threshold * FLOOR_THRESHOLD_SCALE)
    if probabilities.size == 0:
        return floor
    max_prob = float(np.max(probabilities))
    mean_prob = float(np.mean(probabilities))
    return max(floor, mean_prob + ADAPTIVE_SPREAD * (max_prob - mean_prob))


def find_peaks(probabilities: np.ndarray, threshold: float) -> np.ndarray:
    """Indices of strict local maxima above threshold, first and last excluded."""
    if probabilities.size < 3:
        return np.empty(0, dtype=int)
    mid = probabilities[1:-1]
    mask = (mid > threshold) & (mid > probabilities[:-2]) & (mid > probabilities[2:])
    return np.nonzero(mask)[0] + 1


def deduplicate(points: list[float], min_gap: float = MIN_CHANGE_GAP) -> list[float]:
    """Sort and drop any point closer than min_gap to the last kept one."""
    kept: list[float] = []
    for t in sorted(points):
        if not kept or t - kept[-1] >= min_gap:
            kept.append(t)
    return kept


def fallback_points(duration: float) -> list[float]:
    points: list[float] = []
    t = FALLBACK_INTERVAL
    while t < duration - FALLBACK_TAIL:
        points.append(t)
        t += FALLBACK_INTERVAL
    return points


class ChangePointDetector:
    def __init__(
        self,
        inference: InferencePort,
        sample_rate: int = 16000,
        window_size: Optional[int] = None,
        hop_size: Optional[int] = None,
    ):
        self._inference = inference
        self.sample_rate = sample_rate
        self._window_size = window_size
        self._hop_size = hop_size

    @property
    def window_size(self) -> int:
        if self._window_size:
            return self._window_size
        # Prefer the model's own declared sample count when it is static.
        if self._inference.is_loaded():
            shapes = self._inference.describe_shapes()
            if shapes.inputs and shapes.inputs[0].shape and shapes.inputs[0].shape[-1]:
                return shapes.inputs[0].shape[-1]
        return DEFAULT_WINDOW_SIZE

    @property
    def hop_size(self) -> int:
        if self._hop_size:
            return self._hop_size
        return self.window_size // 2

    def window_starts(self, num_samples: int) -> list[int]:
        """Window offsets covering the whole waveform.

        Short input gets one zero-padded window; otherwise the last window
        is zero-padded if the hop grid leaves a tail uncovered.
        """
        window, hop = self.window_size, self.hop_size
        if num_samples <= window:
            return [0]
        starts = list(range(0, num_samples - window + 1, hop))
        if starts[-1] + window < num_samples:
            starts.append(starts[-1] + hop)
        return starts

    def _input_tensor(self, prepared: np.ndarray) -> np.ndarray:
        shapes = self._inference.describe_shapes()
        rank = len(shapes.inputs[0].shape) if shapes.inputs else 3
        if rank == 2:
            return prepared[np.newaxis, :]
        return prepared[np.newaxis, np.newaxis, :]

    def process_window(self, window: np.ndarray, window_start: int = 0) -> np.ndarray:
        """Change probabilities for one window.

        Raises WindowProcessingError when inference fails or returns an
        unexpected shape.
        """
        prepared = prepare_window(window, self.window_size)
        try:
            result = self._inference.run(self._input_tensor(prepared))
        except Exception as e:
            raise WindowProcessingError(window_start, f"{type(e).__name__}: {e}") from e
        if not result.ok:
            raise WindowProcessingError(window_start, result.error or "inference failed")

        logits = np.asarray(result.output)
        if logits.ndim == 3:
            logits = logits[0]
        if logits.ndim != 2 or logits.shape[0] == 0:
            raise WindowProcessingError(window_start, f"unexpected output shape {logits.shape}")

        try:
            return change_probabilities(logits)
        except (ValueError, FloatingPointError) as e:
            raise WindowProcessingError(window_start, str(e)) from e

    def change_signal(self, waveform: Waveform) -> tuple[np.ndarray, np.ndarray, int, int]:
        """Concatenated (timestamps, probabilities) over all windows.

        Also returns the number of processed and skipped windows.
        """
        window = self.window_size
        timestamps: list[np.ndarray] = []
        probabilities: list[np.ndarray] = []
        processed = skipped = 0

        starts = self.window_starts(len(waveform))
        for n, start in enumerate(starts):
            try:
                probs = self.process_window(waveform[start:start + window], start)
            except WindowProcessingError as e:
                logger.warning(f"Skipping window {n + 1}/{len(starts)}: {e.message}")
                skipped += 1
                continue

            samples_per_frame = window // len(probs)
            frames = np.arange(len(probs))
            timestamps.append((start + frames * samples_per_frame) / self.sample_rate)
            probabilities.append(probs)
            processed += 1

            if (n + 1) % 25 == 0:
                logger.debug(f"Segmentation progress: {(n + 1) / len(starts):.0%}")

        if not probabilities:
            return np.empty(0), np.empty(0, dtype=np.float32), processed, skipped
        return np.concatenate(timestamps), np.concatenate(probabilities), processed, skipped

    def detect(self, waveform: Waveform, threshold: float = 0.5) -> ChangePointResult:
        if not self._inference.is_loaded():
            raise InitializationError("Segmentation model not loaded")

        duration = len(waveform) / self.sample_rate
        logger.info(f"Detecting speaker changes in {len(waveform)} samples ({duration:.2f}s)")

        timestamps, probabilities, processed, skipped = self.change_signal(waveform)

        threshold_used = adaptive_threshold(probabilities, threshold)
        if probabilities.size:
            logger.debug(
                f"Probability stats: max={float(np.max(probabilities)):.4f} "
                f"mean={float(np.mean(probabilities)):.4f} adaptive={threshold_used:.4f}"
            )

        points = [
            float(timestamps[i]) for i in find_peaks(probabilities, threshold_used)
            if 0.0 < timestamps[i] < duration
        ]

        heuristic = False
        if not points and len(waveform) > self.sample_rate * FALLBACK_MIN_DURATION:
            points = fallback_points(duration)
            heuristic = bool(points)
            if heuristic:
                logger.warning(
                    f"No change points detected, using {len(points)} artificial points "
                    f"every {FALLBACK_INTERVAL:.0f}s"
                )

        points = deduplicate(points)
        logger.info(f"Found {len(points)} speaker change points ({skipped} windows skipped)")

        return ChangePointResult(
            points=points,
            heuristic=heuristic,
            adaptive_threshold=threshold_used,
            windows_processed=processed,
            windows_skipped=skipped,
        )
