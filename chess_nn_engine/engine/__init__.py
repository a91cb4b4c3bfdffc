# engine package
from .client import EngineClient, EngineState
from .worker import EngineWorker, WorkerState
from . import messages

__all__ = ['EngineClient', 'EngineState', 'EngineWorker', 'WorkerState', 'messages']
