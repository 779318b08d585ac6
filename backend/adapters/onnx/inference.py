"""OnnxInferenceAdapter — runs a single-input, single-output ONNX model on CPU/GPU.

The same adapter backs both models of the pipeline. Input and output
tensor names are read from the session after loading, so the
segmentation model ([batch, channel, samples] -> [batch, frames, classes])
and the embedding model ([batch, samples] -> [batch, dim]) need no
per-model code here.
"""

import logging
import os
from typing import Optional

import numpy as np

from domain.errors import InitializationError
from domain.inference import InferenceResult, ModelShapes, TensorSpec
from ports.inference import InferencePort

logger = logging.getLogger(__name__)

DEFAULT_INTRA_OP_THREADS = 4

PROVIDERS = {
    "cpu": ["CPUExecutionProvider"],
    "cuda": ["CUDAExecutionProvider", "CPUExecutionProvider"],
}


def _static_dim(dim) -> Optional[int]:
    # Symbolic dims come back as strings ("batch", "num_samples") or None.
    return dim if isinstance(dim, int) and dim > 0 else None


class OnnxInferenceAdapter(InferencePort):
    def __init__(self, name: str = "model"):
        self._name = name
        self._session = None
        self._shapes = ModelShapes()
        self._model_path: Optional[str] = None

    def load(
        self,
        model_path: str,
        device: str = "cpu",
        intra_op_threads: int = DEFAULT_INTRA_OP_THREADS,
        **kwargs,
    ) -> None:
        import onnxruntime as ort

        if not os.path.exists(model_path):
            raise InitializationError(
                f"{self._name} model not found: {model_path}",
                details={"model_path": model_path},
            )

        providers = PROVIDERS.get(device.lower())
        if providers is None:
            raise InitializationError(
                f"Unknown ORT provider {device!r}. Valid options: {', '.join(PROVIDERS)}"
            )

        options = ort.SessionOptions()
        options.intra_op_num_threads = intra_op_threads
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
        options.enable_cpu_mem_arena = True
        options.enable_mem_pattern = True

        logger.info(f"Loading {self._name} model: {model_path} (provider={device})")
        try:
            session = ort.InferenceSession(model_path, sess_options=options, providers=providers)
        except Exception as e:
            raise InitializationError(
                f"Failed to load {self._name} model: {e}",
                details={"model_path": model_path},
            ) from e

        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if not inputs or not outputs:
            raise InitializationError(f"{self._name} model declares no inputs or outputs")

        self._shapes = ModelShapes(
            inputs=[TensorSpec(i.name, tuple(_static_dim(d) for d in i.shape)) for i in inputs],
            outputs=[TensorSpec(o.name, tuple(_static_dim(d) for d in o.shape)) for o in outputs],
        )
        self._session = session
        self._model_path = model_path

        logger.info(
            f"{self._name} model loaded: inputs={[(s.name, s.shape) for s in self._shapes.inputs]} "
            f"outputs={[(s.name, s.shape) for s in self._shapes.outputs]}"
        )

    def run(self, tensor: np.ndarray) -> InferenceResult:
        if self._session is None:
            return InferenceResult.failure(f"{self._name} model not loaded")

        try:
            feed = {self._shapes.input_name: np.ascontiguousarray(tensor, dtype=np.float32)}
            output = self._session.run([self._shapes.output_name], feed)[0]
            return InferenceResult.success(np.asarray(output, dtype=np.float32))
        except Exception as e:
            logger.debug(f"{self._name} inference failed: {e}")
            return InferenceResult.failure(str(e))

    def describe_shapes(self) -> ModelShapes:
        return self._shapes

    def is_loaded(self) -> bool:
        return self._session is not None

    @property
    def model_path(self) -> Optional[str]:
        return self._model_path
