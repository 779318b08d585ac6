import math

import numpy as np
import pytest

from conftest import SAMPLE_RATE, SEG_FRAMES, StubInferencePort, silence, tone, zcr_logits
from domain.errors import InitializationError, WindowProcessingError
from pipeline.change_points import (
    DEFAULT_HOP_SIZE,
    DEFAULT_WINDOW_SIZE,
    ChangePointDetector,
    adaptive_threshold,
    change_probabilities,
    deduplicate,
    fallback_points,
    find_peaks,
    prepare_window,
)


def two_speakers(first=6.4, second=6.4):
    return np.concatenate([tone(200, first), tone(2000, second)])


# --- Window preparation ---

def test_prepare_window_pads_normalizes_and_pre_emphasizes():
    window = np.array([0.25, 0.5], dtype=np.float32)

    prepared = prepare_window(window, 4)

    # normalized to [0.5, 1.0, 0, 0], then y[i] = x[i] - 0.97 * x[i-1]
    np.testing.assert_allclose(prepared, [0.5, 1.0 - 0.485, -0.97, 0.0], rtol=1e-6)


def test_prepare_window_leaves_input_untouched():
    window = np.array([0.1, -0.2, 0.3], dtype=np.float32)
    original = window.copy()

    prepare_window(window, 8)

    np.testing.assert_array_equal(window, original)


def test_prepare_window_silent_input_stays_zero():
    prepared = prepare_window(np.zeros(10, dtype=np.float32), 16)
    assert prepared.shape == (16,)
    assert not prepared.any()


# --- Change probability signal ---

def test_no_class_change_gives_zero_probabilities():
    logits = np.tile([3.0, 0.0, 0.0], (10, 1))
    assert not change_probabilities(logits).any()


def test_class_change_gives_boosted_normalized_entropy():
    logits = np.array([[2.0, 0.0, 0.0], [0.0, 4.0, 1.0], [0.0, 4.0, 1.0]])

    probs = change_probabilities(logits)

    exps = [math.exp(v - 4.0) for v in (0.0, 4.0, 1.0)]
    total = sum(exps)
    entropy = -sum((e / total) * math.log(e / total) for e in exps)
    expected = min(1.0, 2.0 * entropy / math.log(3))

    assert probs[0] == 0.0
    assert probs[1] == pytest.approx(expected, rel=1e-5)
    assert probs[2] == 0.0


def test_change_probability_is_clamped_to_one():
    logits = np.array([[1.0, 0.0, 0.0], [0.0, 0.1, 0.0]])
    assert change_probabilities(logits)[1] == pytest.approx(1.0)


def test_previous_class_is_tracked_across_frames():
    # 0 -> 1 -> 1 -> 0: changes at frames 1 and 3 only
    logits = np.array([[2.0, 0.0], [0.0, 2.0], [0.0, 2.0], [2.0, 0.0]])
    probs = change_probabilities(logits)
    assert [p > 0 for p in probs] == [False, True, False, True]


# --- Thresholding and peak picking ---

def test_adaptive_threshold_uses_distribution():
    probs = np.array([0.0, 0.0, 1.0, 0.0])
    assert adaptive_threshold(probs, 0.5) == pytest.approx(0.25 + 0.2 * 0.75)


def test_adaptive_threshold_floor():
    flat = np.zeros(10)
    assert adaptive_threshold(flat, 0.5) == pytest.approx(0.05)
    assert adaptive_threshold(flat, 0.05) == pytest.approx(0.01)
    assert adaptive_threshold(np.empty(0), 0.3) == pytest.approx(0.03)


def test_find_peaks_requires_strict_local_maximum():
    probs = np.array([0.9, 0.1, 0.8, 0.1, 0.5, 0.5, 0.1, 0.7, 0.2, 0.95])
    # index 0 and the last index are never peaks; 4/5 form a plateau
    assert list(find_peaks(probs, 0.3)) == [2, 7]
    assert list(find_peaks(probs, 0.75)) == [2]
    assert list(find_peaks(np.array([0.0, 1.0]), 0.1)) == []


def test_deduplicate_keeps_first_of_close_points():
    assert deduplicate([3.0, 1.0, 1.5, 2.2, 5.0]) == [1.0, 2.2, 5.0]
    assert deduplicate([]) == []


def test_fallback_points_stop_before_the_tail():
    assert fallback_points(61.0) == [30.0]
    assert fallback_points(100.0) == [30.0, 60.0]
    assert fallback_points(35.0) == []


# --- Windowing ---

def test_window_starts(segmentation_port):
    detector = ChangePointDetector(segmentation_port)
    w, h = DEFAULT_WINDOW_SIZE, DEFAULT_HOP_SIZE

    assert detector.window_size == w and detector.hop_size == h
    assert detector.window_starts(1000) == [0]
    assert detector.window_starts(w) == [0]
    assert detector.window_starts(w + h) == [0, h]
    assert detector.window_starts(w + h + 10) == [0, h, 2 * h]


def test_window_size_follows_static_model_input():
    port = StubInferencePort(zcr_logits, input_shape=(1, 1, 32000), output_shape=(1, SEG_FRAMES, 3))
    detector = ChangePointDetector(port)
    assert detector.window_size == 32000
    assert detector.hop_size == 16000


def test_short_waveform_is_zero_padded(segmentation_port):
    detector = ChangePointDetector(segmentation_port)

    result = detector.detect(tone(200, 1000 / SAMPLE_RATE), threshold=0.5)

    assert result.points == []
    assert result.heuristic is False
    assert len(segmentation_port.calls) == 1
    assert segmentation_port.calls[0].shape == (1, 1, DEFAULT_WINDOW_SIZE)


def test_two_dimensional_model_input():
    port = StubInferencePort(zcr_logits, input_shape=(1, None), output_shape=(1, SEG_FRAMES, 3))
    ChangePointDetector(port).detect(silence(2.0))
    assert port.calls[0].shape == (1, DEFAULT_WINDOW_SIZE)


# --- Detection ---

def test_detects_speaker_turn(segmentation_port):
    detector = ChangePointDetector(segmentation_port)

    result = detector.detect(two_speakers(), threshold=0.5)

    assert result.points == [pytest.approx(6.4)]
    assert result.heuristic is False
    assert result.windows_processed == 7
    assert result.windows_skipped == 0


def test_detects_multiple_turns(segmentation_port):
    waveform = np.concatenate([tone(200, 4.8), tone(2000, 4.8), tone(200, 3.2)])

    result = ChangePointDetector(segmentation_port).detect(waveform)

    assert result.points == [pytest.approx(4.8), pytest.approx(9.6)]


def test_failed_window_is_skipped():
    port = StubInferencePort(zcr_logits, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3), fail_on={1})

    result = ChangePointDetector(port).detect(two_speakers())

    assert result.windows_skipped == 1
    assert result.windows_processed == 6
    assert result.points == [pytest.approx(6.4)]


def test_raising_inference_is_a_window_failure():
    calls = []

    def flaky(tensor):
        calls.append(tensor)
        if len(calls) == 2:
            raise RuntimeError("session crashed")
        return zcr_logits(tensor)

    port = StubInferencePort(flaky, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3))

    result = ChangePointDetector(port).detect(two_speakers())

    assert result.windows_skipped == 1
    assert result.windows_processed == 6
    assert result.points == [pytest.approx(6.4)]


def test_process_window_raises_on_failure():
    port = StubInferencePort(zcr_logits, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3), fail_on={0})
    with pytest.raises(WindowProcessingError):
        ChangePointDetector(port).process_window(silence(1.0), window_start=0)


def test_process_window_wraps_inference_exceptions():
    def crash(tensor):
        raise RuntimeError("session crashed")

    port = StubInferencePort(crash, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3))
    with pytest.raises(WindowProcessingError) as exc:
        ChangePointDetector(port).process_window(silence(1.0), window_start=25600)

    assert exc.value.details["window_start"] == 25600
    assert "session crashed" in exc.value.details["reason"]


def test_malformed_output_is_treated_as_window_failure():
    port = StubInferencePort(lambda t: np.zeros(5), input_shape=(1, 1, None), output_shape=(1, 5))

    result = ChangePointDetector(port).detect(silence(5.0))

    assert result.windows_processed == 0
    assert result.windows_skipped == 3
    assert result.points == []


def test_unloaded_model_is_an_initialization_error():
    port = StubInferencePort(zcr_logits, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3), loaded=False)
    with pytest.raises(InitializationError):
        ChangePointDetector(port).detect(silence(5.0))


def test_long_silence_gets_heuristic_points(segmentation_port):
    result = ChangePointDetector(segmentation_port).detect(silence(61.0))

    assert result.points == [30.0]
    assert result.heuristic is True


def test_short_silence_gets_no_points(segmentation_port):
    result = ChangePointDetector(segmentation_port).detect(silence(8.0))

    assert result.points == []
    assert result.heuristic is False


def test_points_are_increasing_and_spaced():
    rng = np.random.default_rng(7)
    port = StubInferencePort(
        lambda t: rng.normal(size=(1, SEG_FRAMES, 4)),
        input_shape=(1, 1, None),
        output_shape=(1, SEG_FRAMES, 4),
    )

    result = ChangePointDetector(port).detect(silence(30.0), threshold=0.01)

    points = result.points
    assert points
    assert all(0.0 < t < 30.0 for t in points)
    assert all(b - a >= 1.0 for a, b in zip(points, points[1:]))
