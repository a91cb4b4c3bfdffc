"""
Inference Session
=================
Adapter tipis di atas tensor-execution library.

Contract:
- load(model_bytes): load satu model (replace model sebelumnya)
- infer(tensor): flat 7168 float32 -> policy logits (1858) + WDL (3)
- dispose(): lepaskan resources

Backends:
- ONNX Runtime (format network Lc0 yang di-export ke ONNX)
- TorchScript (format dari models.export_torchscript)
"""

import io
import numpy as np
import torch
from typing import Any, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from ..errors import InferenceError, ModelLoadError
from ..encoding.policy_index import POLICY_SIZE
from ..encoding.position_encoder import INPUT_SIZE, TOTAL_PLANES


DEFAULT_WDL = (0.5, 0.0, 0.5)
TORCHSCRIPT_MAGIC = b'PK\x03\x04'  # TorchScript archive = zip file


@dataclass
class InferenceResult:
    """Output network untuk satu posisi."""
    policy: np.ndarray  # (1858,) raw logits
    wdl: Tuple[float, float, float]  # Dari perspektif side to move
    value: float  # win - loss, range [-1, 1]


def extract_outputs(names: Sequence[str], outputs: Sequence[Any]) -> InferenceResult:
    """
    Pilih policy/WDL/value dari output network berdasarkan nama.

    - Output dengan 'policy' di nama = logits
    - Output dengan 'wdl' di nama = win/draw/loss
    - Output dengan 'value' (tanpa 'wdl') = scalar tanh value, dipakai untuk
      synthesize WDL jika network tidak punya WDL head

    Raises:
        InferenceError: Jika tidak ada policy output atau ukurannya salah
    """
    policy: Optional[np.ndarray] = None
    wdl: Optional[Tuple[float, float, float]] = None
    value: Optional[float] = None

    for name, output in zip(names, outputs):
        lowered = name.lower()
        data = np.asarray(output, dtype=np.float32).reshape(-1)

        if policy is None and 'policy' in lowered:
            policy = data
        elif wdl is None and 'wdl' in lowered:
            wdl = (float(data[0]), float(data[1]), float(data[2]))
        elif value is None and 'value' in lowered:
            value = float(data[0])

    if policy is None:
        raise InferenceError(f"Model has no policy output (outputs: {list(names)})")
    if policy.shape[0] != POLICY_SIZE:
        raise InferenceError(f"Policy output has {policy.shape[0]} entries, expected {POLICY_SIZE}")

    if wdl is None:
        if value is not None:
            # Convert tanh value [-1, 1] ke win/loss probability
            wdl = ((value + 1.0) / 2.0, 0.0, (1.0 - value) / 2.0)
        else:
            wdl = DEFAULT_WDL
    if value is None:
        value = wdl[0] - wdl[2]

    return InferenceResult(policy=policy, wdl=wdl, value=value)


class InferenceSession:
    """
    Base class untuk inference sessions.

    Subclass implement _load, _run, dan _release.
    """

    backend = 'base'

    def __init__(self):
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self, model_bytes: bytes) -> None:
        """
        Load model dari bytes; model sebelumnya di-dispose dulu.

        Raises:
            ModelLoadError: Jika bytes corrupt / tidak kompatibel
        """
        self.dispose()
        try:
            self._load(bytes(model_bytes))
        except ModelLoadError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Failed to load {self.backend} model: {e}") from e
        self._loaded = True

    def infer(self, tensor: np.ndarray) -> InferenceResult:
        """
        Jalankan satu forward pass.

        Args:
            tensor: Flat input tensor (7168,) dari encoder

        Returns:
            InferenceResult

        Raises:
            InferenceError: Jika model belum di-load atau backend gagal
        """
        if not self._loaded:
            raise InferenceError("Model not initialized")

        planes = np.asarray(tensor, dtype=np.float32)
        if planes.size != INPUT_SIZE:
            raise InferenceError(f"Input tensor has {planes.size} values, expected {INPUT_SIZE}")
        planes = planes.reshape(1, TOTAL_PLANES, 8, 8)

        try:
            return self._run(planes)
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

    def dispose(self) -> None:
        """Lepaskan model yang sedang di-load."""
        if self._loaded:
            self._release()
        self._loaded = False

    def _load(self, model_bytes: bytes) -> None:
        raise NotImplementedError

    def _run(self, planes: np.ndarray) -> InferenceResult:
        raise NotImplementedError

    def _release(self) -> None:
        pass


class OnnxInferenceSession(InferenceSession):
    """Wrapper untuk ONNX Runtime inference session dengan GPU support."""

    backend = 'onnx'

    def __init__(self, prefer_gpu: bool = True, num_threads: int = 4):
        """
        Args:
            prefer_gpu: Coba CUDAExecutionProvider dulu jika tersedia
            num_threads: Intra-op threads untuk CPU provider
        """
        super().__init__()
        self.prefer_gpu = prefer_gpu
        self.num_threads = num_threads
        self.session = None
        self.input_name = '/input/planes'
        self.output_names: List[str] = []

    def _load(self, model_bytes: bytes) -> None:
        import onnxruntime as ort

        # Select execution providers
        providers = []
        if self.prefer_gpu and 'CUDAExecutionProvider' in ort.get_available_providers():
            providers.append('CUDAExecutionProvider')
        providers.append('CPUExecutionProvider')

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        sess_options.intra_op_num_threads = self.num_threads

        self.session = ort.InferenceSession(model_bytes, sess_options, providers=providers)

        # Nama tensor dibaca dari model
        inputs = self.session.get_inputs()
        self.input_name = inputs[0].name if inputs else self.input_name
        self.output_names = [output.name for output in self.session.get_outputs()]

        print(f"✅ ONNX Runtime provider: {self.session.get_providers()[0]}")

    def _run(self, planes: np.ndarray) -> InferenceResult:
        outputs = self.session.run(self.output_names, {self.input_name: planes})
        return extract_outputs(self.output_names, outputs)

    def _release(self) -> None:
        self.session = None
        self.output_names = []


class TorchScriptInferenceSession(InferenceSession):
    """
    Session untuk TorchScript archive.

    Model harus return (policy, wdl), (policy, wdl, value), atau dict
    dengan nama output.
    """

    backend = 'torch'
    OUTPUT_NAMES = ('policy', 'wdl', 'value')

    def __init__(self, device: str = 'auto'):
        """
        Args:
            device: 'auto', 'cuda', atau 'cpu'
        """
        super().__init__()
        if device == 'auto':
            device = 'cuda' if torch.cuda.is_available() else 'cpu'
        self.device = torch.device(device)
        self.module = None

    def _load(self, model_bytes: bytes) -> None:
        module = torch.jit.load(io.BytesIO(model_bytes), map_location=self.device)
        module.eval()
        self.module = module
        print(f"✅ TorchScript model loaded on {self.device}")

    def _run(self, planes: np.ndarray) -> InferenceResult:
        x = torch.from_numpy(planes).to(self.device)
        with torch.inference_mode():
            out = self.module(x)

        if isinstance(out, dict):
            names = list(out.keys())
            values = [out[name].float().cpu().numpy() for name in names]
        elif isinstance(out, (tuple, list)):
            names = list(self.OUTPUT_NAMES[:len(out)])
            values = [t.float().cpu().numpy() for t in out]
        else:
            names = ['policy']
            values = [out.float().cpu().numpy()]

        return extract_outputs(names, values)

    def _release(self) -> None:
        self.module = None


def detect_backend(model_bytes: bytes) -> str:
    """Tebak backend dari isi model: zip archive = TorchScript, selain itu ONNX."""
    return 'torch' if bytes(model_bytes[:4]) == TORCHSCRIPT_MAGIC else 'onnx'


def create_session(backend: str = 'onnx', device: str = 'auto') -> InferenceSession:
    """
    Factory untuk inference session.

    Args:
        backend: 'onnx' atau 'torch'
        device: Device untuk backend (auto/cuda/cpu)

    Returns:
        InferenceSession yang belum di-load
    """
    if backend == 'onnx':
        return OnnxInferenceSession(prefer_gpu=device != 'cpu')
    elif backend == 'torch':
        return TorchScriptInferenceSession(device=device)
    raise ValueError(f"Unknown inference backend: {backend}")
