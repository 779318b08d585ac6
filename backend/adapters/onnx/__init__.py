"""ONNX Runtime adapter used for both the segmentation and embedding models."""

from .inference import OnnxInferenceAdapter

__all__ = ["OnnxInferenceAdapter"]
