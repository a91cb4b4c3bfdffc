"""
Shared fixtures untuk engine tests
==================================
"""

import threading
import numpy as np
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from chess_nn_engine.encoding.policy_index import POLICY_INDEX_MAP, POLICY_SIZE
from chess_nn_engine.engine.worker import EngineWorker
from chess_nn_engine.inference.model_cache import ModelCache
from chess_nn_engine.inference.session import InferenceResult, InferenceSession


FAKE_WDL = (0.6, 0.3, 0.1)


class FakeSession(InferenceSession):
    """
    Session tanpa network: policy selalu menyukai satu canonical move.

    Model bytes yang diawali b'corrupt' gagal di-load.
    """

    backend = 'fake'

    def __init__(self, favourite: str = 'e2e4', gate: threading.Event = None):
        super().__init__()
        self.favourite = favourite
        self.gate = gate
        self.model_bytes = None
        self.calls = 0

    def _load(self, model_bytes: bytes) -> None:
        if model_bytes.startswith(b'corrupt'):
            raise ValueError("not a model")
        self.model_bytes = model_bytes

    def _run(self, planes: np.ndarray) -> InferenceResult:
        if self.gate is not None:
            self.gate.wait(5.0)
        self.calls += 1
        policy = np.zeros(POLICY_SIZE, dtype=np.float32)
        policy[POLICY_INDEX_MAP[self.favourite]] = 8.0
        return InferenceResult(policy=policy, wdl=FAKE_WDL, value=FAKE_WDL[0] - FAKE_WDL[2])

    def _release(self) -> None:
        self.model_bytes = None


@pytest.fixture
def gate():
    """Event yang mem-block FakeSession saat di-clear."""
    event = threading.Event()
    event.set()
    yield event
    event.set()


@pytest.fixture
def sessions():
    """Semua FakeSession yang dibuat oleh session_factory."""
    return []


@pytest.fixture
def session_factory(gate, sessions):
    def factory(backend):
        session = FakeSession(gate=gate)
        sessions.append(session)
        return session
    return factory


@pytest.fixture
def model_file(tmp_path):
    """Model file lokal (cukup besar untuk beberapa chunk download)."""
    path = tmp_path / 'net.bin'
    path.write_bytes(b'fake-model-weights' * 1000)
    return path


@pytest.fixture
def cache(tmp_path):
    return ModelCache(tmp_path / 'cache')


@pytest.fixture
def make_worker(cache, session_factory):
    """Factory untuk EngineWorker dengan fake session dan cache sementara."""
    def make(post=None, **kwargs):
        kwargs.setdefault('chunk_size', 4096)
        return EngineWorker(
            post=post,
            cache=cache,
            session_factory=session_factory,
            backend='fake',
            seed=0,
            **kwargs
        )
    return make
