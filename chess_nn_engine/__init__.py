"""
Chess NN Engine
===============
Neural-network move engine untuk Lc0-style networks:
FEN history -> 112-plane tensor -> policy/value network -> ranked legal moves.
"""

from .errors import (
    EngineError,
    InvalidInput,
    NoLegalMoves,
    NoMappableMoves,
    ModelFetchError,
    ModelLoadError,
    InferenceError,
    RequestAlreadyPending,
    Terminated
)
from .encoding import encode_fen_history, decode_policy_output
from .engine import EngineClient, EngineWorker
from .config import load_config

__version__ = '0.1.0'

__all__ = [
    'EngineError',
    'InvalidInput',
    'NoLegalMoves',
    'NoMappableMoves',
    'ModelFetchError',
    'ModelLoadError',
    'InferenceError',
    'RequestAlreadyPending',
    'Terminated',
    'encode_fen_history',
    'decode_policy_output',
    'EngineClient',
    'EngineWorker',
    'load_config'
]
