"""Value types exchanged with an InferencePort."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class TensorSpec:
    """Name and declared shape of one model input or output.

    Symbolic (dynamic) dimensions are None.
    """
    name: str
    shape: tuple[Optional[int], ...] = ()


@dataclass(frozen=True)
class ModelShapes:
    inputs: list[TensorSpec] = field(default_factory=list)
    outputs: list[TensorSpec] = field(default_factory=list)

    @property
    def input_name(self) -> str:
        return self.inputs[0].name

    @property
    def output_name(self) -> str:
        return self.outputs[0].name

    def output_size(self) -> Optional[int]:
        """Product of the first output's dims, excluding batch.

        Returns None when any of those dims is symbolic.
        """
        if not self.outputs:
            return None
        size = 1
        for dim in self.outputs[0].shape[1:]:
            if dim is None:
                return None
            size *= dim
        return size


@dataclass(frozen=True)
class InferenceResult:
    """Tagged success/failure of a single inference call."""
    ok: bool
    output: Optional[np.ndarray] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, output: np.ndarray) -> "InferenceResult":
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str) -> "InferenceResult":
        return cls(ok=False, error=error)
