"""
Monte Carlo Tree Search
=======================
PUCT search di atas policy/value network. Setiap node yang di-expand
menjalankan satu inference; python-chess dipakai sebagai rules oracle.

Value selalu disimpan dari perspektif side to move di node tersebut,
jadi saat backpropagation nilainya di-negate setiap level.
"""

import time
import chess
from typing import Callable, Dict, List, Optional, Sequence
from dataclasses import dataclass

from ..errors import InvalidInput, NoLegalMoves
from ..encoding.policy_decoder import policy_priors
from ..inference.session import InferenceResult


C_PUCT = 2.5  # Exploration constant (range default lc0)
PROGRESS_INTERVAL = 10

Evaluator = Callable[[List[str]], InferenceResult]
ProgressCallback = Callable[[int, int], None]  # (nodes, total_nodes)


class _Node:
    __slots__ = (
        'move', 'parent', 'children', 'prior', 'visits', 'total_value',
        'wdl_sum', 'expanded', 'terminal', 'terminal_value'
    )

    def __init__(self, move: Optional[str], parent: Optional['_Node'], prior: float):
        self.move = move
        self.parent = parent
        self.children: Dict[str, _Node] = {}
        self.prior = prior
        self.visits = 0
        self.total_value = 0.0
        self.wdl_sum = [0.0, 0.0, 0.0]
        self.expanded = False
        self.terminal = False
        self.terminal_value = 0.0

    def q(self) -> float:
        return 0.0 if self.visits == 0 else self.total_value / self.visits

    def mean_wdl(self) -> List[float]:
        if self.visits == 0:
            return [0.5, 0.0, 0.5]
        return [w / self.visits for w in self.wdl_sum]


@dataclass
class SearchMove:
    """Statistik satu root move."""
    move: str
    visits: int
    q: float  # Dari perspektif root
    prior: float


@dataclass
class MCTSResult:
    """Hasil search."""
    best_move: str
    best_visits: int
    total_nodes: int
    top_moves: List[SearchMove]  # Top 5 berdasarkan visit count
    wdl: List[float]  # Dari perspektif side to move di root


def _puct_score(child: _Node, parent_visits: int, c_puct: float) -> float:
    # Q child dari perspektif lawan, parent mau move yang buruk untuk lawan
    q = -child.q()
    u = c_puct * child.prior * (parent_visits ** 0.5) / (1 + child.visits)
    return q + u


def _select_child(node: _Node, c_puct: float) -> _Node:
    best_child = None
    best_score = float('-inf')
    for child in node.children.values():
        score = _puct_score(child, node.visits, c_puct)
        if score > best_score:
            best_score = score
            best_child = child
    return best_child


def _expand(node: _Node, board: chess.Board, history: List[str], evaluate: Evaluator) -> None:
    """Expand node: terminal check, atau inference + buat child nodes."""
    # Root selalu di-search selama masih ada legal move
    if node.parent is not None and board.is_game_over(claim_draw=True):
        node.terminal = True
        node.expanded = True
        # Side to move yang kena checkmate = kalah
        node.terminal_value = -1.0 if board.is_checkmate() else 0.0
        node.visits = 1
        node.total_value = node.terminal_value
        node.wdl_sum = _terminal_wdl(node.terminal_value)
        return

    result = evaluate(history)

    legal_moves = [move.uci() for move in board.legal_moves]
    priors = policy_priors(result.policy, legal_moves, board.turn == chess.BLACK)

    for uci in legal_moves:
        prior = priors.get(uci, 1.0 / len(legal_moves))
        node.children[uci] = _Node(uci, node, prior)

    node.expanded = True
    node.visits = 1
    node.total_value = result.wdl[0] - result.wdl[2]
    node.wdl_sum = list(result.wdl)


def _terminal_wdl(value: float) -> List[float]:
    if value > 0:
        return [1.0, 0.0, 0.0]
    elif value < 0:
        return [0.0, 0.0, 1.0]
    return [0.0, 1.0, 0.0]


def _backpropagate(node: _Node, value: float, wdl: List[float]) -> None:
    """Walk ke root, flip value dan W/L di setiap level. Node sendiri di-skip."""
    current = node.parent
    v = -value
    current_wdl = [wdl[2], wdl[1], wdl[0]]

    while current is not None:
        current.visits += 1
        current.total_value += v
        for i in range(3):
            current.wdl_sum[i] += current_wdl[i]

        v = -v
        current_wdl = [current_wdl[2], current_wdl[1], current_wdl[0]]
        current = current.parent


def mcts_search(
    fen: str,
    history: Sequence[str],
    node_limit: int,
    evaluate: Evaluator,
    time_limit_ms: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
    c_puct: float = C_PUCT,
    progress_interval: int = PROGRESS_INTERVAL
) -> MCTSResult:
    """
    Jalankan MCTS dari posisi yang diberikan.

    Args:
        fen: FEN posisi sekarang
        history: Full FEN history (paling baru terakhir) untuk encoding
        node_limit: Jumlah node yang di-search
        evaluate: Fungsi history -> InferenceResult (encode + infer)
        time_limit_ms: Optional batas waktu search
        on_progress: Optional callback (nodes, total_nodes)
        c_puct: Exploration constant
        progress_interval: Lapor progress setiap N nodes

    Returns:
        MCTSResult dengan best move dan statistik search

    Raises:
        InvalidInput: Jika FEN tidak valid atau node_limit < 1
        NoLegalMoves: Jika root tidak punya legal move
    """
    if node_limit < 1:
        raise InvalidInput(f"node_limit must be >= 1, got {node_limit}")
    try:
        root_board = chess.Board(fen)
    except ValueError as e:
        raise InvalidInput(f"Invalid FEN {fen!r}: {e}") from e

    if not any(root_board.legal_moves):
        raise NoLegalMoves("No legal moves from root position")

    root_history = list(history) if history else [fen]

    root = _Node(None, None, 1.0)
    _expand(root, root_board, root_history, evaluate)

    # Hanya satu legal move: langsung return
    if len(root.children) == 1:
        move, child = next(iter(root.children.items()))
        return MCTSResult(
            best_move=move,
            best_visits=1,
            total_nodes=1,
            top_moves=[SearchMove(move=move, visits=1, q=0.0, prior=child.prior)],
            wdl=root.mean_wdl()
        )

    deadline = None
    if time_limit_ms is not None and time_limit_ms > 0:
        deadline = time.monotonic() + time_limit_ms / 1000.0

    nodes_searched = 1  # Root expansion dihitung 1

    for i in range(1, node_limit):
        if deadline is not None and time.monotonic() >= deadline:
            break

        # Selection
        node = root
        board = root_board.copy()
        node_history = list(root_history)

        while node.expanded and not node.terminal and node.children:
            node = _select_child(node, c_puct)
            board.push_uci(node.move)
            node_history.append(board.fen())

        # Expansion + evaluation
        if node.terminal:
            # Terminal node dikunjungi lagi: hitung kunjungan ini di node itu sendiri
            node.visits += 1
            node.total_value += node.terminal_value
            node.wdl_sum = [a + b for a, b in zip(node.wdl_sum, _terminal_wdl(node.terminal_value))]
        else:
            _expand(node, board, node_history, evaluate)

        if node.terminal:
            value = node.terminal_value
            wdl = _terminal_wdl(value)
        else:
            value = node.q()
            wdl = node.mean_wdl()

        _backpropagate(node, value, wdl)
        nodes_searched = i + 1

        if on_progress is not None and (i % progress_interval == 0 or i == node_limit - 1):
            on_progress(nodes_searched, node_limit)

    ranked = sorted(
        (
            SearchMove(move=move, visits=child.visits, q=-child.q(), prior=child.prior)
            for move, child in root.children.items()
        ),
        key=lambda m: m.visits,
        reverse=True
    )

    return MCTSResult(
        best_move=ranked[0].move,
        best_visits=ranked[0].visits,
        total_nodes=nodes_searched,
        top_moves=ranked[:5],
        wdl=root.mean_wdl()
    )
