"""
Policy Decoder
==============
Decode raw policy logits (1858) menjadi ranked legal moves dengan
probabilitas yang sudah di-kalibrasi, plus move yang dipilih.

Untuk hitam, legal moves di-flip ke perspektif putih sebelum lookup,
lalu hasilnya dikembalikan dalam notasi asli (tidak di-flip).
"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from ..errors import InvalidInput, NoLegalMoves, NoMappableMoves
from .policy_index import POLICY_SIZE, lookup_policy_index
from .position_encoder import flip_uci


TOP_MOVES = 5


@dataclass
class DecodedMove:
    """Satu legal move dengan probabilitasnya."""
    move: str  # UCI (e.g. "e2e4")
    confidence: float  # Probabilitas 0-1


@dataclass
class DecodeResult:
    """Hasil decoding policy output."""
    best: DecodedMove
    top_moves: List[DecodedMove]  # Maksimal 5, urut probabilitas
    ranked_moves: List[DecodedMove]  # Semua mappable moves, urut probabilitas


def _gather_logits(
    policy_logits: np.ndarray,
    legal_moves: Sequence[str],
    is_black: bool
) -> List[Tuple[str, float]]:
    """Ambil logit untuk setiap legal move yang punya policy index."""
    move_logits = []

    for uci in legal_moves:
        canonical = flip_uci(uci) if is_black else uci
        index = lookup_policy_index(canonical)

        if index is None:
            print(f"⚠️ No policy index found for move: {uci} (canonical: {canonical})")
            continue

        move_logits.append((uci, float(policy_logits[index])))

    return move_logits


def _softmax(logits: np.ndarray, temperature: float = 1.0) -> np.ndarray:
    """Numerically-stable softmax dengan temperature scaling."""
    scaled = (logits - np.max(logits)) / temperature
    exps = np.exp(scaled)
    return exps / np.sum(exps)


def _as_policy_array(policy_logits) -> np.ndarray:
    policy = np.asarray(policy_logits, dtype=np.float64).reshape(-1)
    if policy.shape[0] < POLICY_SIZE:
        raise InvalidInput(f"Policy output has {policy.shape[0]} entries, expected {POLICY_SIZE}")
    return policy


def decode_policy_output(
    policy_logits,
    legal_moves: Sequence[str],
    is_black: bool,
    temperature: float = 0.0,
    rng: Optional[np.random.Generator] = None
) -> DecodeResult:
    """
    Decode 1858-element policy output menjadi best legal move.

    Args:
        policy_logits: Raw logits dari network
        legal_moves: Legal moves (UCI) dari perspektif asli pemain
        is_black: True jika hitam yang jalan
        temperature: 0 = greedy, >0 = sampling dari distribusi
        rng: Optional random generator untuk sampling

    Returns:
        DecodeResult dengan move terpilih dan top 5 moves

    Raises:
        NoLegalMoves: Jika legal_moves kosong
        NoMappableMoves: Jika tidak ada move yang punya policy index
    """
    if len(legal_moves) == 0:
        raise NoLegalMoves("No legal moves to decode")
    if temperature < 0:
        raise InvalidInput(f"Temperature must be >= 0, got {temperature}")

    policy = _as_policy_array(policy_logits)
    move_logits = _gather_logits(policy, legal_moves, is_black)

    if not move_logits:
        raise NoMappableMoves("No legal moves could be mapped to policy indices")

    # Temperature 0 tidak mengubah bentuk softmax, hanya cara memilih
    logits = np.array([logit for _, logit in move_logits], dtype=np.float64)
    probs = _softmax(logits, temperature if temperature > 0 else 1.0)

    scored = [DecodedMove(move=move, confidence=float(p)) for (move, _), p in zip(move_logits, probs)]
    # sorted() stable: seri tetap urut input
    ranked = sorted(scored, key=lambda m: m.confidence, reverse=True)

    if temperature > 0:
        selected = _sample(ranked, rng if rng is not None else np.random.default_rng())
    else:
        selected = ranked[0]

    return DecodeResult(best=selected, top_moves=ranked[:TOP_MOVES], ranked_moves=ranked)


def _sample(ranked: List[DecodedMove], rng: np.random.Generator) -> DecodedMove:
    """Inverse-CDF sampling di atas list yang sudah diurutkan."""
    draw = rng.random()
    cumulative = 0.0
    for move in ranked:
        cumulative += move.confidence
        if draw <= cumulative:
            return move
    # Rounding error: fallback ke move dengan probabilitas terkecil
    return ranked[-1]


def policy_priors(
    policy_logits,
    legal_moves: Sequence[str],
    is_black: bool
) -> Dict[str, float]:
    """
    Prior probabilities (softmax biasa) untuk legal moves.

    Dipakai oleh MCTS; moves tanpa policy index tidak dimasukkan.
    """
    policy = _as_policy_array(policy_logits)
    move_logits = _gather_logits(policy, legal_moves, is_black)
    if not move_logits:
        return {}

    probs = _softmax(np.array([logit for _, logit in move_logits], dtype=np.float64))
    return {move: float(p) for (move, _), p in zip(move_logits, probs)}
