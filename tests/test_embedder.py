import numpy as np
import pytest

from conftest import EMBED_BANDS, SAMPLE_RATE, StubInferencePort, band_energy_embedding, silence, tone
from domain.errors import InitializationError, SegmentAssignmentError
from pipeline.embedder import SpeakerEmbedder, l2_normalize


@pytest.fixture
def embedder(embedding_port):
    return SpeakerEmbedder(embedding_port, SAMPLE_RATE)


def test_l2_normalize():
    np.testing.assert_allclose(l2_normalize(np.array([3.0, 4.0])), [0.6, 0.8])
    # near-zero vectors are not scaled up
    tiny = np.array([1e-8, 0.0])
    np.testing.assert_array_equal(l2_normalize(tiny), tiny)


def test_prepare_pads_short_segments(embedder):
    buf = embedder.prepare(np.array([0.1, -0.2, 0.05], dtype=np.float32))

    assert buf.shape == (3 * SAMPLE_RATE,)
    np.testing.assert_allclose(buf[:3], [0.5, -1.0, 0.25], rtol=1e-6)
    assert not buf[3:].any()


def test_prepare_truncates_long_segments(embedder):
    samples = np.linspace(-0.5, 0.5, 5 * SAMPLE_RATE, dtype=np.float32)

    buf = embedder.prepare(samples)

    assert buf.shape == (3 * SAMPLE_RATE,)
    assert buf[0] == pytest.approx(-1.0)


def test_embedding_dim_comes_from_model(embedder):
    assert embedder.embedding_dim == EMBED_BANDS


def test_dynamic_output_shape_is_an_initialization_error():
    port = StubInferencePort(band_energy_embedding, input_shape=(1, None), output_shape=(1, None))
    with pytest.raises(InitializationError):
        SpeakerEmbedder(port).embedding_dim


def test_unloaded_model_is_an_initialization_error():
    port = StubInferencePort(band_energy_embedding, input_shape=(1, None), output_shape=(1, EMBED_BANDS), loaded=False)
    with pytest.raises(InitializationError):
        SpeakerEmbedder(port).embed(tone(200, 2.0))


def test_embed_is_unit_length(embedder, embedding_port):
    vector = embedder.embed(tone(200, 2.0))

    assert vector.shape == (EMBED_BANDS,)
    assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-5)
    assert embedding_port.calls[0].shape == (1, 3 * SAMPLE_RATE)


def test_embed_is_reproducible(embedder):
    segment = tone(300, 2.5)
    np.testing.assert_array_equal(embedder.embed(segment), embedder.embed(segment))


def test_different_voices_are_far_apart(embedder):
    low = embedder.embed(tone(200, 3.0))
    high = embedder.embed(tone(2000, 3.0))
    assert float(np.dot(low, high)) < 0.1


def test_silence_gives_zero_vector(embedder):
    assert not embedder.embed(silence(2.0)).any()


def test_failed_inference_raises_assignment_error():
    port = StubInferencePort(band_energy_embedding, input_shape=(1, None), output_shape=(1, EMBED_BANDS), fail_on={0})

    with pytest.raises(SegmentAssignmentError) as exc:
        SpeakerEmbedder(port).embed(tone(200, 2.0), segment_index=4)

    assert exc.value.details["segment_index"] == 4


def test_short_output_raises_assignment_error():
    port = StubInferencePort(lambda t: np.ones((1, 4)), input_shape=(1, None), output_shape=(1, EMBED_BANDS))
    with pytest.raises(SegmentAssignmentError):
        SpeakerEmbedder(port).embed(tone(200, 2.0))
