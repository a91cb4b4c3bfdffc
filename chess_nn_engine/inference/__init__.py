# inference package
from .model_cache import ModelCache
from .downloader import fetch_model, maybe_decompress
from .session import (
    InferenceResult,
    InferenceSession,
    OnnxInferenceSession,
    TorchScriptInferenceSession,
    create_session,
    detect_backend
)

__all__ = [
    'ModelCache',
    'fetch_model',
    'maybe_decompress',
    'InferenceResult',
    'InferenceSession',
    'OnnxInferenceSession',
    'TorchScriptInferenceSession',
    'create_session',
    'detect_backend'
]
