# File: tests/conftest.py

import os
import sys
import logging

import numpy as np
import pytest

# 1. Make the backend modules importable without installing
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "backend"))

from domain.errors import InitializationError
from domain.inference import InferenceResult, ModelShapes, TensorSpec
from ports.inference import InferencePort
from ports.progress import ProgressPort

SAMPLE_RATE = 16000
SEG_FRAMES = 64
EMBED_BANDS = 16


class StubInferencePort(InferencePort):
    """Deterministic stand-in for an ONNX session.

    `fn` maps the input tensor to the output tensor; `fail_on` lists call
    indices that return a failure result instead.
    """

    def __init__(self, fn, input_shape, output_shape, loaded=True, fail_on=()):
        self._fn = fn
        self._shapes = ModelShapes(
            inputs=[TensorSpec("input", tuple(input_shape))],
            outputs=[TensorSpec("output", tuple(output_shape))],
        )
        self._loaded = loaded
        self.fail_on = set(fail_on)
        self.calls = []
        self.loaded_paths = []

    def load(self, model_path, **kwargs):
        self.loaded_paths.append(model_path)
        self._loaded = True

    def run(self, tensor):
        index = len(self.calls)
        self.calls.append(np.array(tensor, copy=True))
        if not self._loaded:
            return InferenceResult.failure("not loaded")
        if index in self.fail_on:
            return InferenceResult.failure(f"scripted failure on call {index}")
        return InferenceResult.success(np.asarray(self._fn(tensor), dtype=np.float32))

    def describe_shapes(self):
        return self._shapes

    def is_loaded(self):
        return self._loaded


class BrokenLoadPort(StubInferencePort):
    def load(self, model_path, **kwargs):
        raise InitializationError(f"cannot load {model_path}")


class RecordingProgress(ProgressPort):
    def __init__(self):
        self.events = []

    def report(self, job_id, stage, progress=0.0, detail=None):
        self.events.append((job_id, stage, progress, detail))

    @property
    def stages(self):
        seen = []
        for _, stage, _, _ in self.events:
            if not seen or seen[-1] != stage:
                seen.append(stage)
        return seen


def zcr_logits(tensor):
    """Classify each frame as low tone (0), high tone (1) or silence (2)."""
    samples = np.asarray(tensor).reshape(-1)
    frames = samples.reshape(SEG_FRAMES, -1)
    logits = np.zeros((SEG_FRAMES, 3), dtype=np.float32)
    for i, frame in enumerate(frames):
        if np.max(np.abs(frame)) < 1e-3:
            cls = 2
        else:
            crossings = np.count_nonzero(np.diff(np.signbit(frame)))
            cls = 1 if crossings > 100 else 0
        logits[i, cls] = 2.0
    return logits[np.newaxis]


def band_energy_embedding(tensor):
    """Spectral energy in EMBED_BANDS equal-width bands."""
    samples = np.asarray(tensor).reshape(-1)
    spectrum = np.abs(np.fft.rfft(samples))
    bands = np.array_split(spectrum, EMBED_BANDS)
    return np.array([[float(np.sum(b ** 2)) for b in bands]], dtype=np.float32)


def tone(freq, seconds, amplitude=0.5, sample_rate=SAMPLE_RATE):
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def silence(seconds, sample_rate=SAMPLE_RATE):
    return np.zeros(int(round(seconds * sample_rate)), dtype=np.float32)


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    logging.getLogger().setLevel(logging.INFO)
    yield


@pytest.fixture
def segmentation_port():
    return StubInferencePort(zcr_logits, input_shape=(1, 1, None), output_shape=(1, SEG_FRAMES, 3))


@pytest.fixture
def embedding_port():
    return StubInferencePort(band_energy_embedding, input_shape=(1, None), output_shape=(1, EMBED_BANDS))


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def use_case(segmentation_port, embedding_port, progress):
    from use_cases.diarize import DiarizeAudioUseCase
    uc = DiarizeAudioUseCase(segmentation_port, embedding_port, progress)
    uc.load("segmentation.onnx", "embedding.onnx")
    return uc
