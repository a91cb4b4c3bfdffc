"""
Unit Tests untuk Engine Worker
==============================
"""

import time
import pytest
import chess
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from chess_nn_engine.errors import RequestAlreadyPending
from chess_nn_engine.engine.worker import WorkerState
from chess_nn_engine.engine.messages import (
    BestMove,
    Error,
    EvaluatePositionRequest,
    Evaluation,
    GetBestMoveRequest,
    InitError,
    InitProgress,
    InitRequest,
    MctsProgress,
    MctsResultMessage,
    MctsSearchRequest,
    Ready,
)


START = chess.STARTING_FEN
START_MOVES = [m.uci() for m in chess.Board().legal_moves]
TERMINAL = (Ready, InitError, BestMove, Evaluation, MctsResultMessage, Error)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def terminal_messages(messages):
    return [m for m in messages if isinstance(m, TERMINAL)]


@pytest.fixture
def messages():
    return []


@pytest.fixture
def ready_worker(make_worker, messages, model_file):
    """Worker (tanpa thread) yang model-nya sudah di-load."""
    worker = make_worker(post=messages.append)
    worker.submit(InitRequest(model_url=str(model_file)))
    assert isinstance(messages[-1], Ready)
    messages.clear()
    return worker


class TestWorkerInit:
    """Tests untuk model acquisition."""

    def test_cold_cache_progress(self, make_worker, messages, model_file, cache, sessions):
        """Cache miss: download, cache, init session, tepat satu Ready."""
        worker = make_worker(post=messages.append)
        worker.submit(InitRequest(model_url=str(model_file)))

        progress = [m for m in messages if isinstance(m, InitProgress)]
        values = [m.progress for m in progress]

        assert values == sorted(values)
        assert values[0] == 0.0
        assert values[-1] == 1.0
        assert all(0.0 <= v <= 1.0 for v in values)
        assert 'Downloading model...' in [m.message for m in progress]
        assert any(m.message.startswith('Downloading... ') for m in progress)

        assert terminal_messages(messages) == [Ready()]
        assert isinstance(messages[-1], Ready)
        assert worker.state is WorkerState.READY
        assert cache.get(str(model_file)) == model_file.read_bytes()
        assert sessions[-1].model_bytes == model_file.read_bytes()

    def test_warm_cache_skips_download(self, make_worker, messages, model_file):
        worker = make_worker(post=messages.append)
        worker.submit(InitRequest(model_url=str(model_file)))
        messages.clear()

        model_file.unlink()  # Download pasti gagal jika dicoba
        worker.submit(InitRequest(model_url=str(model_file)))

        texts = [m.message for m in messages if isinstance(m, InitProgress)]
        assert 'Loaded from cache' in texts
        assert 'Downloading model...' not in texts
        assert terminal_messages(messages) == [Ready()]

    def test_reinit_replaces_session(self, make_worker, messages, model_file, sessions):
        worker = make_worker(post=messages.append)
        worker.submit(InitRequest(model_url=str(model_file)))
        worker.submit(InitRequest(model_url=str(model_file)))

        assert len(sessions) == 2
        assert not sessions[0].is_loaded
        assert worker.session is sessions[1]

    def test_fetch_failure(self, make_worker, messages, tmp_path):
        worker = make_worker(post=messages.append)
        worker.submit(InitRequest(model_url=str(tmp_path / 'missing.bin')))

        terminal = terminal_messages(messages)
        assert len(terminal) == 1
        assert isinstance(terminal[0], InitError)
        assert terminal[0].error_type == 'ModelFetchError'
        assert worker.state is WorkerState.FAILED

    def test_corrupt_model_is_evicted(self, make_worker, messages, tmp_path, cache):
        path = tmp_path / 'corrupt.bin'
        path.write_bytes(b'corrupt weights')
        worker = make_worker(post=messages.append)

        worker.submit(InitRequest(model_url=str(path)))

        terminal = terminal_messages(messages)
        assert len(terminal) == 1
        assert terminal[0].error_type == 'ModelLoadError'
        assert not cache.has(str(path))

    def test_cache_failure_is_not_fatal(self, make_worker, messages, model_file, cache, monkeypatch):
        monkeypatch.setattr(cache, 'put', lambda key, data: False)
        worker = make_worker(post=messages.append)

        worker.submit(InitRequest(model_url=str(model_file)))

        assert terminal_messages(messages) == [Ready()]


class TestWorkerRequests:
    """Tests untuk move / evaluation / search requests."""

    def test_best_move(self, ready_worker, messages):
        ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))

        assert len(messages) == 1
        reply = messages[0]
        assert isinstance(reply, BestMove)
        assert reply.move == 'e2e4'
        assert 0.0 < reply.confidence <= 1.0
        assert reply.wdl == (0.6, 0.3, 0.1)
        assert len(reply.top_moves) == 5

    def test_best_move_for_black(self, ready_worker, messages):
        board = chess.Board()
        board.push_uci('g1f3')
        legal = [m.uci() for m in board.legal_moves]

        ready_worker.submit(GetBestMoveRequest(fen=board.fen(), history=[START, board.fen()], legal_moves=legal))

        assert messages[0].move == 'e7e5'

    def test_evaluation(self, ready_worker, messages):
        ready_worker.submit(EvaluatePositionRequest(fen=START, history=[START]))
        assert messages == [Evaluation(wdl=(0.6, 0.3, 0.1))]

    def test_search_reports_progress(self, ready_worker, messages):
        ready_worker.submit(MctsSearchRequest(fen=START, history=[START], node_limit=30))

        progress = [m for m in messages if isinstance(m, MctsProgress)]
        result = messages[-1]

        assert progress
        assert all(m.total_nodes == 30 for m in progress)
        assert isinstance(result, MctsResultMessage)
        assert result.best_move in START_MOVES
        assert result.total_nodes == 30
        assert {'move', 'visits', 'q', 'prior'} <= set(result.top_moves[0])
        assert len(terminal_messages(messages)) == 1

    def test_requests_before_init(self, make_worker, messages):
        worker = make_worker(post=messages.append)
        worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))
        worker.submit(EvaluatePositionRequest(fen=START, history=[START]))
        worker.submit(MctsSearchRequest(fen=START, history=[START], node_limit=10))

        assert [m.kind for m in messages] == ['move', 'evaluation', 'search']
        assert all(isinstance(m, Error) for m in messages)
        assert all(m.error_type == 'InferenceError' for m in messages)
        assert 'Model not initialized' in messages[0].error

    def test_invalid_requests_produce_single_error(self, ready_worker, messages):
        ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=[]))
        ready_worker.submit(GetBestMoveRequest(fen='garbage', history=['garbage'], legal_moves=['e2e4']))
        ready_worker.submit(MctsSearchRequest(fen='garbage', history=[], node_limit=10))

        assert [type(m) for m in messages] == [Error, Error, Error]
        assert [m.error_type for m in messages] == ['NoLegalMoves', 'InvalidInput', 'InvalidInput']

    def test_unknown_request(self, make_worker):
        with pytest.raises(TypeError):
            make_worker().submit('not a request')


class TestWorkerThread:
    """Tests untuk worker yang berjalan di dedicated thread."""

    def test_duplicate_request_rejected_while_pending(self, ready_worker, messages, gate):
        ready_worker.start()
        try:
            gate.clear()
            ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))

            with pytest.raises(RequestAlreadyPending):
                ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))

            # Kind lain tetap boleh
            ready_worker.submit(EvaluatePositionRequest(fen=START, history=[START]))

            gate.set()
            assert wait_for(lambda: len(terminal_messages(messages)) == 2)
            assert [type(m) for m in terminal_messages(messages)] == [BestMove, Evaluation]

            # Setelah reply, kind yang sama boleh dikirim lagi
            ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))
            assert wait_for(lambda: len(terminal_messages(messages)) == 3)
        finally:
            ready_worker.stop()

    def test_stop_disposes_session(self, ready_worker, sessions):
        ready_worker.start()
        assert ready_worker.is_running

        ready_worker.stop()

        assert not ready_worker.is_running
        assert ready_worker.session is None
        assert not sessions[-1].is_loaded


class TestWorkerDelivery:
    """Tests untuk callback caller yang error."""

    def test_failing_post_keeps_loop_alive(self, ready_worker, messages, capsys):
        def post(message):
            messages.append(message)
            if isinstance(message, BestMove):
                raise RuntimeError("caller bug")

        ready_worker.connect(post)
        ready_worker.start()
        try:
            ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))
            ready_worker.submit(EvaluatePositionRequest(fen=START, history=[START]))

            assert wait_for(lambda: len(terminal_messages(messages)) == 2)
            assert ready_worker.is_running
            assert 'Failed to deliver BestMove' in capsys.readouterr().out

            # Kind yang sama boleh dikirim lagi setelah delivery gagal
            ready_worker.submit(GetBestMoveRequest(fen=START, history=[START], legal_moves=START_MOVES))
            assert wait_for(lambda: len(terminal_messages(messages)) == 3)
        finally:
            ready_worker.stop()
