"""
Position Encoder untuk Lc0-style Network
========================================
Modul ini bertanggung jawab untuk mengkonversi FEN history
ke input tensor yang diharapkan oleh policy/value network.

Representasi State (112 planes x 64 squares, flat float32):
- Planes 0-103: 8 posisi history (paling baru dulu), 13 planes per posisi
    - 6 planes pieces sendiri (Pawn, Knight, Bishop, Rook, Queen, King)
    - 6 planes pieces lawan
    - 1 plane repetition (1.0 jika posisi sudah pernah muncul)
- Plane 104-107: Castling us-queenside, us-kingside, them-queenside, them-kingside
- Plane 108: Side to move (1.0 jika hitam)
- Plane 109: Rule50 counter / 99 (max 1.0)
- Plane 110: Zeros
- Plane 111: Ones

Board selalu dilihat dari perspektif side to move: jika hitam yang jalan,
rank di-flip secara vertikal (file tetap).
"""

import numpy as np
import chess
from typing import Dict, List, Sequence

from ..errors import InvalidInput


TOTAL_PLANES = 112
HISTORY_LENGTH = 8
PLANES_PER_POSITION = 13
PLANE_SIZE = 64
INPUT_SIZE = TOTAL_PLANES * PLANE_SIZE

RANKS = '12345678'


def flip_square_name(square: str) -> str:
    """Flip rank dari nama square ('e2' -> 'e7'). Input lain dikembalikan apa adanya."""
    if len(square) != 2 or square[1] not in RANKS:
        return square
    return square[0] + RANKS[7 - RANKS.index(square[1])]


def flip_uci(uci: str) -> str:
    """
    Flip UCI move secara vertikal, suffix promosi tetap.

    Args:
        uci: Move dalam UCI notation (e.g., "e7e8q")

    Returns:
        str: Move yang sudah di-flip (e.g., "e2e1q")
    """
    if len(uci) < 4:
        return uci
    return flip_square_name(uci[0:2]) + flip_square_name(uci[2:4]) + uci[4:]


def position_key(fen: str) -> str:
    """Identitas posisi untuk repetition: semua field FEN kecuali move counters."""
    return ' '.join(fen.split()[:4])


def repetition_flags(fen_history: Sequence[str]) -> List[bool]:
    """Tandai posisi yang sudah pernah muncul sebelumnya di history."""
    counts: Dict[str, int] = {}
    flags = []
    for fen in fen_history:
        key = position_key(fen)
        seen = counts.get(key, 0)
        counts[key] = seen + 1
        flags.append(seen > 0)
    return flags


class PositionEncoder:
    """
    Encoder untuk mengkonversi FEN history ke tensor representation.

    Stateless, aman dipanggil dari thread manapun.
    """

    # Mapping piece type ke channel offset
    PIECE_CHANNELS = {
        chess.PAWN: 0,
        chess.KNIGHT: 1,
        chess.BISHOP: 2,
        chess.ROOK: 3,
        chess.QUEEN: 4,
        chess.KING: 5
    }

    NUM_CHANNELS = TOTAL_PLANES

    def encode(self, fen_history: Sequence[str]) -> np.ndarray:
        """
        Encode FEN history ke tensor representation.

        Args:
            fen_history: List FEN, posisi paling lama dulu, posisi sekarang terakhir

        Returns:
            np.ndarray: Flat tensor shape (7168,) dengan dtype float32

        Raises:
            InvalidInput: Jika history kosong atau FEN sekarang tidak valid
        """
        if len(fen_history) == 0:
            raise InvalidInput("fen_history must include at least the current position")

        parts = fen_history[-1].split()
        if len(parts) < 2:
            raise InvalidInput(f"Side to move missing from FEN: {fen_history[-1]!r}")
        side_to_move = parts[1]
        if side_to_move not in ('w', 'b'):
            raise InvalidInput(f"Invalid side to move {side_to_move!r}")

        castling = parts[2] if len(parts) > 2 else '-'
        try:
            halfmove_clock = int(parts[4]) if len(parts) > 4 else 0
        except ValueError:
            raise InvalidInput(f"Invalid halfmove clock {parts[4]!r}") from None

        is_black = side_to_move == 'b'

        # Inisialisasi tensor kosong
        state = np.zeros((self.NUM_CHANNELS, 8, 8), dtype=np.float32)

        # Maksimal 8 posisi terakhir, paling baru dulu; sisanya tetap nol
        flags = repetition_flags(fen_history)
        recent = list(reversed(fen_history[-HISTORY_LENGTH:]))
        recent_flags = list(reversed(flags[-HISTORY_LENGTH:]))

        for history_index, (fen, repeated) in enumerate(zip(recent, recent_flags)):
            base = history_index * PLANES_PER_POSITION
            self._encode_pieces(state[base:base + 12], fen, is_black)
            if repeated:
                state[base + 12, :, :] = 1.0

        self._encode_auxiliary(state, castling, is_black, halfmove_clock)

        return state.reshape(-1)

    def _encode_pieces(self, planes: np.ndarray, fen: str, is_black: bool) -> None:
        """
        Tulis occupancy planes (own 0-5, opponent 6-11) untuk satu posisi.

        Args:
            planes: View shape (12, 8, 8) yang akan diisi
            fen: FEN posisi (hanya field piece placement yang dipakai)
            is_black: True jika hitam yang jalan di posisi sekarang
        """
        fields = fen.split()
        if not fields:
            raise InvalidInput("Empty FEN in history")
        try:
            board = chess.BaseBoard(fields[0])
        except ValueError as e:
            raise InvalidInput(f"Invalid piece placement {fields[0]!r}: {e}") from e

        us = chess.BLACK if is_black else chess.WHITE

        for square, piece in board.piece_map().items():
            channel = self.PIECE_CHANNELS[piece.piece_type]
            if piece.color != us:
                channel += 6  # Pieces lawan di channels 6-11

            # Vertical flip saja untuk perspektif hitam
            if is_black:
                square = chess.square_mirror(square)

            planes[channel, chess.square_rank(square), chess.square_file(square)] = 1.0

    def _encode_auxiliary(
        self,
        state: np.ndarray,
        castling: str,
        is_black: bool,
        halfmove_clock: int
    ) -> None:
        """Encode auxiliary planes 104-111 (castling, side to move, rule50, bias)."""
        if is_black:
            us_queen, us_king, them_queen, them_king = 'q', 'k', 'Q', 'K'
        else:
            us_queen, us_king, them_queen, them_king = 'Q', 'K', 'q', 'k'

        state[104] = 1.0 if us_queen in castling else 0.0
        state[105] = 1.0 if us_king in castling else 0.0
        state[106] = 1.0 if them_queen in castling else 0.0
        state[107] = 1.0 if them_king in castling else 0.0

        state[108] = 1.0 if is_black else 0.0
        state[109] = min(halfmove_clock / 99.0, 1.0)
        state[110] = 0.0
        state[111] = 1.0

    def encode_batch(self, histories: Sequence[Sequence[str]]) -> np.ndarray:
        """
        Encode batch of histories.

        Args:
            histories: List of FEN histories

        Returns:
            np.ndarray: Tensor shape (batch_size, 7168)
        """
        states = np.zeros((len(histories), INPUT_SIZE), dtype=np.float32)

        for i, history in enumerate(histories):
            states[i] = self.encode(history)

        return states


_ENCODER = PositionEncoder()


def encode_fen_history(fen_history: Sequence[str]) -> np.ndarray:
    """Encode FEN history (paling baru terakhir) ke flat tensor 112 * 64."""
    return _ENCODER.encode(fen_history)
