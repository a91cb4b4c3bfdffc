"""
Policy Index untuk Lc0-style Network
====================================
Tabel statis canonical moves (perspektif putih) ke index output policy.

Pendekatan:
- Total policy size: 1858 moves
  - 1792 queen-like + knight moves, per from-square (a1..h8),
    diurutkan berdasarkan to-square
  - 66 promosi dari rank 7 ke rank 8 (queen, rook, bishop); knight promotion
    memakai index move biasa tanpa suffix
- Urutan ini adalah kontrak dengan network yang sudah ditraining,
  bukan sesuatu yang boleh diubah.
"""

import chess
from typing import Dict, Optional, Tuple


POLICY_INDEX_VERSION = 'lc0-1858'
POLICY_SIZE = 1858

# Urutan promosi sesuai policy head network
PROMOTION_PIECES = ('q', 'r', 'b')
KNIGHT_PROMOTION = 'n'

# Knight move offsets (rank, file)
KNIGHT_MOVES = [
    (2, 1), (2, -1), (-2, 1), (-2, -1),
    (1, 2), (1, -2), (-1, 2), (-1, -2)
]


def _is_policy_move(from_square: int, to_square: int) -> bool:
    """Queen-like atau knight move antara dua square."""
    dr = chess.square_rank(to_square) - chess.square_rank(from_square)
    dc = chess.square_file(to_square) - chess.square_file(from_square)

    if (dr, dc) in KNIGHT_MOVES:
        return True
    return dr == 0 or dc == 0 or abs(dr) == abs(dc)


def build_policy_index() -> Tuple[str, ...]:
    """
    Membangun daftar canonical moves dalam urutan policy output.

    Returns:
        Tuple[str, ...]: 1858 UCI moves, posisi di tuple = index policy
    """
    moves = []

    for from_square in chess.SQUARES:
        for to_square in chess.SQUARES:
            if to_square != from_square and _is_policy_move(from_square, to_square):
                moves.append(chess.square_name(from_square) + chess.square_name(to_square))

    # Promosi (hanya dari perspektif putih, rank 7 -> rank 8)
    for from_file in range(8):
        for to_file in (from_file - 1, from_file, from_file + 1):
            if not 0 <= to_file < 8:
                continue
            base = f"{chess.FILE_NAMES[from_file]}7{chess.FILE_NAMES[to_file]}8"
            for promotion in PROMOTION_PIECES:
                moves.append(base + promotion)

    if len(moves) != POLICY_SIZE:
        raise RuntimeError(f"Policy index has {len(moves)} entries, expected {POLICY_SIZE}")

    return tuple(moves)


POLICY_INDEX: Tuple[str, ...] = build_policy_index()
POLICY_INDEX_MAP: Dict[str, int] = {move: i for i, move in enumerate(POLICY_INDEX)}


def lookup_policy_index(canonical_move: str) -> Optional[int]:
    """
    Cari index policy untuk canonical (white-perspective) move.

    Knight promotion tidak punya index sendiri, jadi retry tanpa suffix.

    Args:
        canonical_move: UCI move dari perspektif putih

    Returns:
        Index policy, atau None jika tidak ada
    """
    index = POLICY_INDEX_MAP.get(canonical_move)
    if index is None and len(canonical_move) == 5 and canonical_move.endswith(KNIGHT_PROMOTION):
        index = POLICY_INDEX_MAP.get(canonical_move[:4])
    return index
