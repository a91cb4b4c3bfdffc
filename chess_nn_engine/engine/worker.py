"""
Engine Worker Loop
==================
Single-threaded, message-driven coordinator.

Worker memiliki satu ModelCache dan satu InferenceSession, dan:
- init: cache check -> download (dengan progress) -> cache store -> session init
- getBestMove: encode -> infer -> decode
- evaluatePosition: encode -> infer
- mctsSearch: PUCT search dengan progress

Setiap message diproses sampai selesai sebelum message berikutnya.
Setiap request menghasilkan tepat satu terminal message; error tidak pernah
keluar dari loop.
"""

import queue
import threading
import numpy as np
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from ..errors import InferenceError, InvalidInput, ModelLoadError, RequestAlreadyPending
from ..encoding.position_encoder import PositionEncoder
from ..encoding.policy_decoder import decode_policy_output
from ..inference.model_cache import ModelCache
from ..inference.downloader import DEFAULT_CHUNK_SIZE, fetch_model, maybe_decompress
from ..inference.session import InferenceSession, create_session, detect_backend
from ..search.mcts import C_PUCT, PROGRESS_INTERVAL, mcts_search
from .messages import (
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


PostCallback = Callable[[Any], None]
SessionFactory = Callable[[str], InferenceSession]

_STOP = object()


class WorkerState(Enum):
    """State machine untuk model acquisition."""
    IDLE = 'idle'
    CHECKING_CACHE = 'checking_cache'
    DOWNLOADING = 'downloading'
    CACHING = 'caching'
    INITIALIZING_SESSION = 'initializing_session'
    READY = 'ready'
    FAILED = 'failed'


class EngineWorker:
    """
    Worker loop yang memproses request secara berurutan.

    Bisa dijalankan di dedicated thread (start/submit/stop) atau dipanggil
    langsung lewat handle() untuk pemakaian sequential.
    """

    def __init__(
        self,
        post: Optional[PostCallback] = None,
        cache: Optional[ModelCache] = None,
        session_factory: Optional[SessionFactory] = None,
        backend: str = 'auto',
        device: str = 'auto',
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        request_timeout: float = 30.0,
        c_puct: float = C_PUCT,
        progress_interval: int = PROGRESS_INTERVAL,
        seed: Optional[int] = None
    ):
        """
        Inisialisasi EngineWorker.

        Args:
            post: Callback untuk mengirim message ke caller
            cache: ModelCache (default: direktori cache user)
            session_factory: Fungsi backend -> InferenceSession
            backend: 'auto' (deteksi dari bytes), 'onnx', atau 'torch'
            device: Device untuk inference (auto/cuda/cpu)
            chunk_size: Ukuran chunk download
            request_timeout: Timeout HTTP (detik)
            c_puct: Exploration constant untuk MCTS
            progress_interval: Interval MctsProgress (nodes)
            seed: Optional seed untuk sampling temperature > 0
        """
        self._post = post
        self.cache = cache if cache is not None else ModelCache()
        self.session_factory = session_factory or (lambda b: create_session(b, device=device))
        self.backend = backend
        self.chunk_size = chunk_size
        self.request_timeout = request_timeout
        self.c_puct = c_puct
        self.progress_interval = progress_interval
        self.rng = np.random.default_rng(seed)

        self.encoder = PositionEncoder()
        self.session: Optional[InferenceSession] = None
        self.state = WorkerState.IDLE
        self.failure: Optional[str] = None

        self._pending: Set[str] = set()
        self._lock = threading.Lock()
        self._queue: 'queue.Queue[Any]' = queue.Queue()
        self._thread: Optional[threading.Thread] = None

        self._handlers: Dict[type, Callable[[Any], Any]] = {
            InitRequest: self._handle_init,
            GetBestMoveRequest: self._handle_best_move,
            EvaluatePositionRequest: self._handle_evaluation,
            MctsSearchRequest: self._handle_search,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def connect(self, post: PostCallback) -> None:
        """Set callback penerima message."""
        self._post = post

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Jalankan loop di dedicated daemon thread."""
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name='engine-worker', daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Hentikan loop dan dispose session.

        Request yang masih antri dibuang; request yang sedang diproses
        diselesaikan dulu (tidak bisa di-cancel di tengah jalan).
        """
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

        if self._thread is not None:
            self._queue.put(_STOP)
            self._thread.join(timeout)
            if self._thread.is_alive():
                print("⚠️ Engine worker did not stop in time")
                return
            self._thread = None

        with self._lock:
            self._pending.clear()
        if self.session is not None:
            self.session.dispose()
            self.session = None

    def submit(self, request: Any) -> None:
        """
        Kirim request ke worker.

        Raises:
            RequestAlreadyPending: Jika request dengan kind yang sama masih outstanding
            TypeError: Jika request bukan message yang dikenal
        """
        if type(request) not in self._handlers:
            raise TypeError(f"Unknown request: {request!r}")

        with self._lock:
            if request.kind in self._pending:
                raise RequestAlreadyPending(f"Engine already has a pending {request.kind} request")
            self._pending.add(request.kind)

        if self.is_running:
            self._queue.put(request)
        else:
            self.handle(request)

    def _run(self) -> None:
        while True:
            request = self._queue.get()
            if request is _STOP:
                break
            self.handle(request)

    # =========================================================================
    # Message handling
    # =========================================================================

    def handle(self, request: Any) -> None:
        """Proses satu request sampai selesai dan kirim terminal message-nya."""
        reply = self._handlers[type(request)](request)

        # Pending dibersihkan sebelum reply, supaya caller bisa langsung kirim request baru
        with self._lock:
            self._pending.discard(request.kind)
        self._emit(reply)

    def _emit(self, message: Any) -> None:
        if self._post is None:
            return
        # Loop tidak boleh mati karena caller; request lain tetap diproses
        try:
            self._post(message)
        except Exception as e:
            print(f"⚠️ Failed to deliver {type(message).__name__}: {type(e).__name__}: {e}")

    def _progress(self, progress: float, message: str) -> None:
        self._emit(InitProgress(progress=progress, message=message))

    def _handle_init(self, request: InitRequest):
        url = request.model_url
        try:
            self.state = WorkerState.CHECKING_CACHE
            self._progress(0.0, 'Checking cache...')

            model_data = self.cache.get(url)

            if model_data is None:
                self.state = WorkerState.DOWNLOADING
                self._progress(0.1, 'Downloading model...')

                def on_download(received: int, total: int) -> None:
                    fraction = min(received / total, 1.0)
                    self._progress(0.1 + fraction * 0.6, f"Downloading... {round(fraction * 100)}%")

                model_data = fetch_model(
                    url,
                    on_progress=on_download,
                    chunk_size=self.chunk_size,
                    timeout=self.request_timeout
                )

                self.state = WorkerState.CACHING
                self._progress(0.75, 'Caching model...')
                self.cache.put(url, model_data)
            else:
                self._progress(0.7, 'Loaded from cache')

            self.state = WorkerState.INITIALIZING_SESSION
            self._progress(0.8, 'Initializing neural network...')
            self._load_session(url, model_data)

            self.state = WorkerState.READY
            self.failure = None
            self._progress(1.0, 'Ready')
            return Ready()
        except Exception as e:
            self.state = WorkerState.FAILED
            self.failure = str(e)
            print(f"❌ Engine init failed: {e}")
            return InitError(error=str(e), error_type=type(e).__name__)

    def _load_session(self, url: str, model_data: bytes) -> None:
        """Buat session baru (replace yang lama) dan load model."""
        if self.session is not None:
            self.session.dispose()
            self.session = None

        try:
            model = maybe_decompress(model_data)
            backend = detect_backend(model) if self.backend == 'auto' else self.backend
            session = self.session_factory(backend)
            session.load(model)
        except ModelLoadError:
            # Blob corrupt jangan dipakai lagi; init berikutnya download ulang
            self.cache.delete(url)
            raise

        self.session = session

    def _require_session(self) -> InferenceSession:
        if self.session is None or not self.session.is_loaded:
            raise InferenceError("Model not initialized")
        return self.session

    def _evaluate(self, history):
        return self._require_session().infer(self.encoder.encode(history))

    def _handle_best_move(self, request: GetBestMoveRequest):
        try:
            is_black = _is_black_to_move(request.fen)
            # history sudah berisi semua FEN termasuk posisi sekarang (terakhir)
            result = self._evaluate(request.history or [request.fen])
            decoded = decode_policy_output(
                result.policy,
                request.legal_moves,
                is_black,
                request.temperature,
                rng=self.rng
            )
            return BestMove(
                move=decoded.best.move,
                confidence=decoded.best.confidence,
                wdl=result.wdl,
                top_moves=[(m.move, m.confidence) for m in decoded.top_moves]
            )
        except Exception as e:
            return Error(error=str(e), kind=request.kind, error_type=type(e).__name__)

    def _handle_evaluation(self, request: EvaluatePositionRequest):
        try:
            result = self._evaluate(request.history or [request.fen])
            return Evaluation(wdl=result.wdl)
        except Exception as e:
            return Error(error=str(e), kind=request.kind, error_type=type(e).__name__)

    def _handle_search(self, request: MctsSearchRequest):
        try:
            self._require_session()
            result = mcts_search(
                request.fen,
                request.history,
                request.node_limit,
                evaluate=self._evaluate,
                time_limit_ms=request.time_limit_ms,
                on_progress=lambda nodes, total: self._emit(MctsProgress(nodes=nodes, total_nodes=total)),
                c_puct=self.c_puct,
                progress_interval=self.progress_interval
            )
            return MctsResultMessage(
                best_move=result.best_move,
                best_visits=result.best_visits,
                total_nodes=result.total_nodes,
                top_moves=[
                    {'move': m.move, 'visits': m.visits, 'q': m.q, 'prior': m.prior}
                    for m in result.top_moves
                ],
                wdl=tuple(result.wdl)
            )
        except Exception as e:
            return Error(error=str(e), kind=request.kind, error_type=type(e).__name__)


def _is_black_to_move(fen: str) -> bool:
    parts = fen.split()
    if len(parts) < 2:
        raise InvalidInput(f"Side to move missing from FEN: {fen!r}")
    return parts[1] == 'b'
