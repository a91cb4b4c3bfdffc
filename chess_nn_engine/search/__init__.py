# search package
from .mcts import MCTSResult, SearchMove, mcts_search

__all__ = ['MCTSResult', 'SearchMove', 'mcts_search']
