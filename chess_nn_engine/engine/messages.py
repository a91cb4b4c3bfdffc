"""
Worker Message Protocol
=======================
Pesan antara EngineClient (caller) dan EngineWorker.

Caller -> worker: InitRequest, GetBestMoveRequest, EvaluatePositionRequest,
MctsSearchRequest.
Worker -> caller: Ready, InitProgress, InitError, BestMove, Evaluation,
MctsResultMessage, MctsProgress, Error.
"""

from typing import List, Optional, Tuple
from dataclasses import dataclass, field


WDL = Tuple[float, float, float]

# Request kinds; maksimal satu outstanding per kind
KIND_INIT = 'init'
KIND_MOVE = 'move'
KIND_EVALUATION = 'evaluation'
KIND_SEARCH = 'search'


# =============================================================================
# Caller -> worker
# =============================================================================

@dataclass
class InitRequest:
    model_url: str
    kind = KIND_INIT


@dataclass
class GetBestMoveRequest:
    fen: str
    history: List[str]
    legal_moves: List[str]
    temperature: float = 0.0
    kind = KIND_MOVE


@dataclass
class EvaluatePositionRequest:
    fen: str
    history: List[str]
    kind = KIND_EVALUATION


@dataclass
class MctsSearchRequest:
    fen: str
    history: List[str]
    node_limit: int
    time_limit_ms: Optional[float] = None
    kind = KIND_SEARCH


# =============================================================================
# Worker -> caller
# =============================================================================

@dataclass
class Ready:
    pass


@dataclass
class InitProgress:
    progress: float  # 0-1
    message: str


@dataclass
class InitError:
    error: str
    error_type: str = 'EngineError'


@dataclass
class BestMove:
    move: str
    confidence: float
    wdl: WDL
    top_moves: List[Tuple[str, float]] = field(default_factory=list)


@dataclass
class Evaluation:
    wdl: WDL


@dataclass
class MctsProgress:
    nodes: int
    total_nodes: int


@dataclass
class MctsResultMessage:
    best_move: str
    best_visits: int
    total_nodes: int
    top_moves: List[dict]  # {'move', 'visits', 'q', 'prior'}
    wdl: WDL


@dataclass
class Error:
    """Satu-satunya terminal message untuk request move/evaluation/search yang gagal."""
    error: str
    kind: str  # Request kind yang gagal
    error_type: str = 'EngineError'
