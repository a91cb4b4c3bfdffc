"""
Unit Tests untuk Inference Session dan Downloader
=================================================
"""

import gzip
import pytest
import numpy as np
import chess
import requests
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from chess_nn_engine.errors import InferenceError, ModelFetchError, ModelLoadError
from chess_nn_engine.encoding import POLICY_SIZE, encode_fen_history
from chess_nn_engine.inference import (
    TorchScriptInferenceSession,
    create_session,
    detect_backend,
    fetch_model,
    maybe_decompress
)
from chess_nn_engine.inference import downloader
from chess_nn_engine.inference.session import OnnxInferenceSession, extract_outputs
from chess_nn_engine.models import Lc0StyleNetwork, export_torchscript


@pytest.fixture(scope='module')
def torchscript_bytes():
    network = Lc0StyleNetwork(num_filters=8, num_residual_blocks=1, se_channels=4)
    return export_torchscript(network)


class TestExtractOutputs:
    """Tests untuk pemilihan output berdasarkan nama."""

    def test_policy_and_wdl(self):
        policy = np.arange(POLICY_SIZE, dtype=np.float32).reshape(1, -1)
        result = extract_outputs(['/output/policy', '/output/wdl'], [policy, [[0.5, 0.3, 0.2]]])

        assert result.policy.shape == (POLICY_SIZE,)
        assert result.wdl == pytest.approx((0.5, 0.3, 0.2))
        assert result.value == pytest.approx(0.3)

    def test_value_only_network(self):
        """Scalar value -> WDL tanpa draw."""
        result = extract_outputs(['policy', 'value'], [np.zeros(POLICY_SIZE), [0.5]])
        assert result.wdl == pytest.approx((0.75, 0.0, 0.25))

    def test_no_value_head_defaults(self):
        result = extract_outputs(['policy'], [np.zeros(POLICY_SIZE)])
        assert result.wdl == (0.5, 0.0, 0.5)

    def test_output_order_does_not_matter(self):
        result = extract_outputs(['wdl', 'policy'], [[0.1, 0.2, 0.7], np.zeros(POLICY_SIZE)])
        assert result.wdl == pytest.approx((0.1, 0.2, 0.7))

    def test_missing_policy(self):
        with pytest.raises(InferenceError):
            extract_outputs(['wdl'], [[0.1, 0.2, 0.7]])

    def test_wrong_policy_size(self):
        with pytest.raises(InferenceError):
            extract_outputs(['policy'], [np.zeros(1000)])


class TestTorchScriptSession:
    """Tests untuk TorchScriptInferenceSession dengan network kecil."""

    def test_detect_backend(self, torchscript_bytes):
        assert detect_backend(torchscript_bytes) == 'torch'
        assert detect_backend(b'\x08\x07onnx-protobuf') == 'onnx'

    def test_load_and_infer(self, torchscript_bytes):
        session = TorchScriptInferenceSession(device='cpu')
        session.load(torchscript_bytes)
        assert session.is_loaded

        result = session.infer(encode_fen_history([chess.STARTING_FEN]))

        assert result.policy.shape == (POLICY_SIZE,)
        assert sum(result.wdl) == pytest.approx(1.0, abs=1e-5)
        assert -1.0 <= result.value <= 1.0

    def test_infer_before_load(self):
        session = TorchScriptInferenceSession(device='cpu')
        with pytest.raises(InferenceError, match='not initialized'):
            session.infer(np.zeros(112 * 64, dtype=np.float32))

    def test_wrong_input_size(self, torchscript_bytes):
        session = TorchScriptInferenceSession(device='cpu')
        session.load(torchscript_bytes)
        with pytest.raises(InferenceError):
            session.infer(np.zeros(100, dtype=np.float32))

    def test_corrupt_model(self):
        session = TorchScriptInferenceSession(device='cpu')
        with pytest.raises(ModelLoadError):
            session.load(b'PK\x03\x04 definitely not a model')
        assert not session.is_loaded

    def test_dispose(self, torchscript_bytes):
        session = TorchScriptInferenceSession(device='cpu')
        session.load(torchscript_bytes)
        session.dispose()

        assert not session.is_loaded
        with pytest.raises(InferenceError):
            session.infer(np.zeros(112 * 64, dtype=np.float32))

    def test_create_session(self):
        assert isinstance(create_session('torch', device='cpu'), TorchScriptInferenceSession)
        assert isinstance(create_session('onnx', device='cpu'), OnnxInferenceSession)
        with pytest.raises(ValueError):
            create_session('tensorflow')


class TestDecompress:
    """Tests untuk gzip handling."""

    def test_gzip_is_decompressed(self):
        assert maybe_decompress(gzip.compress(b'model bytes')) == b'model bytes'

    def test_plain_data_unchanged(self):
        assert maybe_decompress(b'PK\x03\x04data') == b'PK\x03\x04data'

    def test_corrupt_gzip(self):
        with pytest.raises(ModelLoadError):
            maybe_decompress(b'\x1f\x8b' + b'\x00' * 20)


class FakeResponse:
    def __init__(self, body, status_code=200, content_length=True):
        self.body = body
        self.status_code = status_code
        self.ok = status_code < 400
        self.headers = {'Content-Length': str(len(body))} if content_length else {}

    def iter_content(self, chunk_size):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False


class TestFetchModel:
    """Tests untuk fetch_model (local dan HTTP)."""

    def test_local_file_with_progress(self, model_file):
        progress = []
        data = fetch_model(str(model_file), on_progress=lambda r, t: progress.append((r, t)), chunk_size=4096)

        assert data == model_file.read_bytes()
        assert len(progress) > 1
        assert progress[-1] == (len(data), len(data))

    def test_file_url(self, model_file):
        assert fetch_model(model_file.as_uri()) == model_file.read_bytes()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelFetchError):
            fetch_model(str(tmp_path / 'missing.bin'))

    def test_http_download(self, monkeypatch):
        body = b'x' * 10000
        monkeypatch.setattr(downloader.requests, 'get', lambda url, **kwargs: FakeResponse(body))

        progress = []
        data = fetch_model('https://example.com/net.bin', on_progress=lambda r, t: progress.append(r), chunk_size=3000)

        assert data == body
        assert progress == [3000, 6000, 9000, 10000]

    def test_http_without_length_skips_progress(self, monkeypatch):
        monkeypatch.setattr(
            downloader.requests, 'get',
            lambda url, **kwargs: FakeResponse(b'abc', content_length=False)
        )
        progress = []

        assert fetch_model('https://example.com/net.bin', on_progress=lambda r, t: progress.append(r)) == b'abc'
        assert progress == []

    def test_http_error_status(self, monkeypatch):
        monkeypatch.setattr(downloader.requests, 'get', lambda url, **kwargs: FakeResponse(b'', status_code=404))
        with pytest.raises(ModelFetchError, match='404'):
            fetch_model('https://example.com/missing.bin')

    def test_network_error(self, monkeypatch):
        def fail(url, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(downloader.requests, 'get', fail)
        with pytest.raises(ModelFetchError):
            fetch_model('https://example.com/net.bin')
