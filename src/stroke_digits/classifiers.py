"""
Digit classifiers behind a common load/infer contract.

``PerceptronClassifier`` runs the embedded two-layer sigmoid network from
JSON weight matrices. ``ExternalModelClassifier`` hands batches of canonical
images to an inference backend (ONNX Runtime, a Keras model or any callable)
using the ``(batch, 1, H, W)`` float32 layout and expects ``(batch, 10)``
raw scores back.

Loading is a one-time operation. ``load_async`` runs it on a worker thread
and returns a future; until it completes every inference call raises
``ModelNotReadyError`` instead of blocking.
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from . import constants
from .config import ClassifierConfig
from .errors import ConfigurationError, InferenceBackendError, ModelNotReadyError, WeightShapeMismatchError
from .logger import get_logger
from .normalization import CanonicalImage
from .storage import load_weight_matrix

# ONNX Runtime and TensorFlow are optional; each backend raises a clear error
# when it is requested without its library.
try:
    import onnxruntime as ort  # type: ignore

    _ORT_AVAILABLE = True
    _ORT_IMPORT_ERROR = None
except Exception as exc:  # pragma: no cover - environment dependent
    ort = None  # type: ignore
    _ORT_AVAILABLE = False
    _ORT_IMPORT_ERROR = exc

try:
    from tensorflow import keras  # type: ignore

    _TF_AVAILABLE = True
    _TF_IMPORT_ERROR = None
except Exception as exc:  # pragma: no cover - environment dependent
    keras = None  # type: ignore
    _TF_AVAILABLE = False
    _TF_IMPORT_ERROR = exc

logger = get_logger(__name__)


def _ensure_ort() -> None:
    if not _ORT_AVAILABLE:
        raise ImportError(
            "onnxruntime is required for the ONNX backend but is not available. "
            f"Install it with `pip install onnxruntime`. Original import error: {_ORT_IMPORT_ERROR}"
        )


def _ensure_tf() -> None:
    if not _TF_AVAILABLE:
        raise ImportError(
            "TensorFlow is required for the Keras backend but is not available. "
            f"Original import error: {_TF_IMPORT_ERROR}"
        )


def sigmoid(z: np.ndarray) -> np.ndarray:
    # Clipping keeps exp() finite; sigmoid is already saturated well before +-500.
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500.0, 500.0)))


def add_bias(x: np.ndarray) -> np.ndarray:
    """Prepend a column of ones (or a single 1 for a vector)."""
    if x.ndim == 1:
        return np.concatenate(([1.0], x))
    return np.hstack([np.ones((x.shape[0], 1), dtype=x.dtype), x])


def stack_images(images: Sequence[CanonicalImage]) -> np.ndarray:
    """Canonical images as one ``(batch, 1, H, W)`` float32 tensor."""
    return np.stack([image.data for image in images]).astype(np.float32)[:, np.newaxis, :, :]


# ---------------------------------------------------------------------------
# Weight loading
# ---------------------------------------------------------------------------

def validate_weights(theta1: np.ndarray, theta2: np.ndarray, input_dim: int, hidden_dim: int, num_classes: int) -> None:
    expected1 = (input_dim + 1, hidden_dim)
    expected2 = (hidden_dim + 1, num_classes)
    if theta1.ndim != 2 or theta1.shape != expected1:
        raise WeightShapeMismatchError("theta1", expected1, theta1.shape)
    if theta2.ndim != 2 or theta2.shape != expected2:
        raise WeightShapeMismatchError("theta2", expected2, theta2.shape)


@lru_cache(maxsize=4)
def _cached_weights(directory: str, input_dim: int, hidden_dim: int, num_classes: int) -> Tuple[np.ndarray, np.ndarray]:
    theta1 = load_weight_matrix(
        os.path.join(directory, constants.THETA1_FILE), (input_dim + 1, hidden_dim), "theta1"
    )
    theta2 = load_weight_matrix(
        os.path.join(directory, constants.THETA2_FILE), (hidden_dim + 1, num_classes), "theta2"
    )
    theta1.setflags(write=False)
    theta2.setflags(write=False)
    logger.info(f"Loaded perceptron weights from {directory}: theta1 {theta1.shape}, theta2 {theta2.shape}")
    return theta1, theta2


def load_weights(
    directory: str,
    input_dim: int = constants.INPUT_DIM,
    hidden_dim: int = constants.HIDDEN_DIM,
    num_classes: int = constants.NUM_CLASSES,
) -> Tuple[np.ndarray, np.ndarray]:
    """Read and validate ``theta1.json``/``theta2.json``; cached per directory."""
    return _cached_weights(os.path.abspath(directory), input_dim, hidden_dim, num_classes)


def clear_weight_cache() -> None:
    _cached_weights.cache_clear()


# ---------------------------------------------------------------------------
# Classifier contract
# ---------------------------------------------------------------------------

class DigitClassifier(ABC):
    """Common lifecycle: load once, then map canonical images to class scores."""

    name = "classifier"

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._load_lock = threading.Lock()
        self._future: Optional[Future] = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def load(self) -> "DigitClassifier":
        """Load parameters synchronously. Errors propagate to the caller."""
        with self._load_lock:
            if not self._ready.is_set():
                self._load()
                self._ready.set()
                logger.info(f"{self.name} classifier ready")
        return self

    def load_async(self) -> Future:
        """Start loading on a worker thread; repeated calls share one future."""
        with self._load_lock:
            if self._future is None:
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-load")
                self._future = executor.submit(self._load_logged)
                executor.shutdown(wait=False)
            return self._future

    def _load_logged(self) -> "DigitClassifier":
        try:
            return self.load()
        except Exception as exc:
            logger.error(f"{self.name} classifier failed to load: {exc}")
            raise

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def _require_ready(self) -> None:
        if not self._ready.is_set():
            raise ModelNotReadyError(f"{self.name} classifier is not loaded yet")

    def infer(self, image: CanonicalImage) -> np.ndarray:
        """Raw scores (length 10) for one canonical image."""
        return self.infer_batch([image])[0]

    def infer_batch(self, images: Sequence[CanonicalImage]) -> np.ndarray:
        """Raw scores ``(len(images), 10)``, row ``i`` belonging to ``images[i]``."""
        self._require_ready()
        if not images:
            return np.zeros((0, constants.NUM_CLASSES), dtype=np.float32)
        return self._infer_batch(images)

    @abstractmethod
    def _load(self) -> None:
        ...

    @abstractmethod
    def _infer_batch(self, images: Sequence[CanonicalImage]) -> np.ndarray:
        ...


class PerceptronClassifier(DigitClassifier):
    """
    Two-layer sigmoid network: ``784 (+bias) -> 300 (+bias) -> 10``.

    The network was trained on binary 0/1 pixels, so by default it reads the
    unstandardised ``intensity`` image; pass ``input_mode="standardized"`` for
    weights trained on MNIST-standardised input.
    """

    name = "perceptron"

    def __init__(
        self,
        weights_dir: Optional[str] = None,
        theta1: Optional[np.ndarray] = None,
        theta2: Optional[np.ndarray] = None,
        input_dim: int = constants.INPUT_DIM,
        hidden_dim: int = constants.HIDDEN_DIM,
        num_classes: int = constants.NUM_CLASSES,
        input_mode: str = "intensity",
    ) -> None:
        super().__init__()
        if weights_dir is None and (theta1 is None or theta2 is None):
            raise ValueError("provide weights_dir or both theta1 and theta2")
        self.weights_dir = weights_dir
        self._theta1_in = theta1
        self._theta2_in = theta2
        self.input_dim = input_dim
        self.hidden_dim = hidden_dim
        self.num_classes = num_classes
        self.input_mode = input_mode
        self.theta1: Optional[np.ndarray] = None
        self.theta2: Optional[np.ndarray] = None

    def _load(self) -> None:
        if self._theta1_in is not None and self._theta2_in is not None:
            theta1 = np.asarray(self._theta1_in, dtype=np.float64)
            theta2 = np.asarray(self._theta2_in, dtype=np.float64)
            validate_weights(theta1, theta2, self.input_dim, self.hidden_dim, self.num_classes)
        else:
            theta1, theta2 = load_weights(self.weights_dir, self.input_dim, self.hidden_dim, self.num_classes)
        self.theta1, self.theta2 = theta1, theta2

    def forward(self, inputs: np.ndarray) -> np.ndarray:
        """Forward pass over flattened inputs ``(n, input_dim)`` or ``(input_dim,)``."""
        hidden = sigmoid(add_bias(inputs) @ self.theta1)
        return sigmoid(add_bias(hidden) @ self.theta2)

    def _vector(self, image: CanonicalImage) -> np.ndarray:
        pixels = image.intensity if self.input_mode == "intensity" else image.data
        vector = np.asarray(pixels, dtype=np.float64).reshape(-1)
        if vector.size != self.input_dim:
            raise WeightShapeMismatchError("input", (1, self.input_dim), (1, vector.size))
        return vector

    def _infer_batch(self, images: Sequence[CanonicalImage]) -> np.ndarray:
        inputs = np.stack([self._vector(image) for image in images])
        return self.forward(inputs).astype(np.float32)


# ---------------------------------------------------------------------------
# External inference backends
# ---------------------------------------------------------------------------

class InferenceBackend(ABC):
    """Opaque engine mapping ``(batch, 1, H, W)`` float32 to ``(batch, 10)``."""

    def load(self) -> None:
        """Acquire the model; called once from the classifier's load."""

    @abstractmethod
    def run(self, batch: np.ndarray) -> np.ndarray:
        ...


class OnnxBackend(InferenceBackend):
    """ONNX Runtime session on the CPU execution provider."""

    def __init__(self, model_path: str, providers: Sequence[str] = ("CPUExecutionProvider",)) -> None:
        self.model_path = model_path
        self.providers = list(providers)
        self.session = None
        self.input_name: Optional[str] = None
        self.output_name: Optional[str] = None

    def load(self) -> None:
        _ensure_ort()
        if not os.path.isfile(self.model_path):
            raise FileNotFoundError(f"ONNX model not found: {self.model_path}")
        self.session = ort.InferenceSession(self.model_path, providers=self.providers)
        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name
        logger.info(f"ONNX session ready: input '{self.input_name}', output '{self.output_name}'")

    def run(self, batch: np.ndarray) -> np.ndarray:
        return self.session.run([self.output_name], {self.input_name: batch})[0]


class KerasBackend(InferenceBackend):
    """Keras model expecting channels-last ``(batch, H, W, 1)`` input."""

    def __init__(self, model_path: Optional[str] = None, model=None) -> None:
        if model_path is None and model is None:
            raise ValueError("provide model_path or model")
        self.model_path = model_path
        self.model = model

    def load(self) -> None:
        if self.model is None:
            _ensure_tf()
            self.model = keras.models.load_model(self.model_path)

    def run(self, batch: np.ndarray) -> np.ndarray:
        return np.asarray(self.model.predict(np.transpose(batch, (0, 2, 3, 1)), verbose=0))


class CallableBackend(InferenceBackend):
    """Wrap any ``f(batch) -> scores`` function."""

    def __init__(self, fn: Callable[[np.ndarray], np.ndarray]) -> None:
        self.fn = fn

    def run(self, batch: np.ndarray) -> np.ndarray:
        return self.fn(batch)


class ExternalModelClassifier(DigitClassifier):
    """Classifier delegating to an :class:`InferenceBackend`."""

    name = "external"

    def __init__(self, backend: InferenceBackend, num_classes: int = constants.NUM_CLASSES) -> None:
        super().__init__()
        self.backend = backend
        self.num_classes = num_classes

    def _load(self) -> None:
        self.backend.load()

    def _infer_batch(self, images: Sequence[CanonicalImage]) -> np.ndarray:
        batch = stack_images(images)
        try:
            scores = self.backend.run(batch)
        except Exception as exc:
            raise InferenceBackendError(f"inference backend failed: {exc}") from exc
        scores = np.asarray(scores, dtype=np.float32)
        expected = (len(images), self.num_classes)
        if scores.shape != expected:
            if scores.size == len(images) * self.num_classes:
                scores = scores.reshape(expected)
            else:
                raise InferenceBackendError(f"backend returned shape {scores.shape}, expected {expected}")
        if not np.all(np.isfinite(scores)):
            raise InferenceBackendError("backend returned non-finite scores")
        return scores


def build_classifier(config: Optional[ClassifierConfig] = None) -> DigitClassifier:
    """Construct the classifier selected by ``config.kind``."""
    config = config or ClassifierConfig()
    if config.kind == "perceptron":
        if not config.weights_dir:
            raise ConfigurationError("the perceptron classifier needs classifier.weights_dir")
        return PerceptronClassifier(
            weights_dir=config.weights_dir,
            input_dim=config.input_dim,
            hidden_dim=config.hidden_dim,
            num_classes=config.num_classes,
            input_mode=config.input_mode,
        )
    if not config.model_path:
        raise ConfigurationError(f"the {config.kind} classifier needs classifier.model_path")
    if config.kind == "onnx":
        return ExternalModelClassifier(OnnxBackend(config.model_path), num_classes=config.num_classes)
    return ExternalModelClassifier(KerasBackend(config.model_path), num_classes=config.num_classes)


def available_backends() -> List[str]:
    backends = ["perceptron"]
    if _ORT_AVAILABLE:
        backends.append("onnx")
    if _TF_AVAILABLE:
        backends.append("keras")
    return backends
