# encoding package
from .position_encoder import PositionEncoder, encode_fen_history, flip_uci, INPUT_SIZE
from .policy_index import POLICY_INDEX, POLICY_INDEX_MAP, POLICY_SIZE, lookup_policy_index
from .policy_decoder import DecodedMove, DecodeResult, decode_policy_output, policy_priors

__all__ = [
    'PositionEncoder',
    'encode_fen_history',
    'flip_uci',
    'INPUT_SIZE',
    'POLICY_INDEX',
    'POLICY_INDEX_MAP',
    'POLICY_SIZE',
    'lookup_policy_index',
    'DecodedMove',
    'DecodeResult',
    'decode_policy_output',
    'policy_priors'
]
