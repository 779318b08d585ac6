"""InferencePort — abstract interface for a fixed-shape neural network."""

from abc import ABC, abstractmethod

import numpy as np

from domain.inference import InferenceResult, ModelShapes


class InferencePort(ABC):
    @abstractmethod
    def load(self, model_path: str, **kwargs) -> None:
        """Load the model. Raises InitializationError on failure."""

    @abstractmethod
    def run(self, tensor: np.ndarray) -> InferenceResult:
        """Run one forward pass. Failures are returned, not raised."""

    @abstractmethod
    def describe_shapes(self) -> ModelShapes:
        """Input/output tensor names and declared shapes of the loaded model."""

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the model has been loaded and is ready for inference."""
