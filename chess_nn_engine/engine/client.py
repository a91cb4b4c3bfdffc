"""
Engine Client Facade
====================
API asynchronous untuk caller.

Fitur:
- init / get_best_move / evaluate_position / mcts_search lewat worker thread
- Maksimal satu pending Future per request kind (move, evaluation, search)
- State notifications sebagai partial updates ke semua subscribers
- terminate() melepas worker dan menggagalkan semua pending request
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import EngineError, RequestAlreadyPending, Terminated, error_from_message
from ..inference.model_cache import ModelCache
from .messages import (
    KIND_EVALUATION,
    KIND_MOVE,
    KIND_SEARCH,
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
from .worker import EngineWorker


StateListener = Callable[[Dict[str, Any]], None]


@dataclass
class EngineState:
    """Engine state yang terlihat oleh caller."""
    is_ready: bool = False
    is_loading: bool = False
    loading_progress: float = 0.0
    loading_message: str = ''
    is_thinking: bool = False
    last_move: Optional[str] = None
    last_confidence: Optional[float] = None
    wdl: Optional[Tuple[float, float, float]] = None  # Dari perspektif engine
    error: Optional[str] = None
    search_progress: Optional[Tuple[int, int]] = None  # (nodes, total_nodes)


STATE_FIELDS = frozenset(f.name for f in fields(EngineState))


class EngineClient:
    """
    Facade di atas EngineWorker.

    Contoh:
        client = EngineClient.from_config(config)
        client.init(model_url)
        client.wait_until_ready()
        result = client.get_best_move(fen, history, legal_moves).result()
    """

    def __init__(self, worker: Optional[EngineWorker] = None, **worker_kwargs):
        """
        Inisialisasi client dan start worker thread.

        Args:
            worker: EngineWorker yang sudah dibuat (optional)
            **worker_kwargs: Arguments untuk EngineWorker jika worker None
        """
        self._lock = threading.RLock()
        self._listeners: List[StateListener] = []
        self._pending: Dict[str, Future] = {}
        self._terminated = False

        self.state = EngineState()
        self._ready_event = threading.Event()
        self._init_error: Optional[EngineError] = None

        self.worker = worker if worker is not None else EngineWorker(**worker_kwargs)
        self.worker.connect(self._handle_message)
        self.worker.start()

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides) -> 'EngineClient':
        """Buat client dari config dictionary (lihat config/default.yaml)."""
        engine_config = config.get('engine', {})
        search_config = config.get('search', {})

        kwargs = dict(
            cache=ModelCache(engine_config.get('cache_dir', '~/.cache/chess_nn_engine/models')),
            backend=engine_config.get('backend', 'auto'),
            device=engine_config.get('device', 'auto'),
            chunk_size=engine_config.get('download_chunk_size', 1 << 16),
            request_timeout=engine_config.get('request_timeout', 30.0),
            c_puct=search_config.get('c_puct', 2.5),
            progress_interval=search_config.get('progress_interval', 10),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Daftarkan listener untuk partial state updates.

        Returns:
            Fungsi untuk unsubscribe
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, delta: Dict[str, Any]) -> None:
        # Lock dipegang selama delivery supaya urutan per subscriber = urutan emit
        with self._lock:
            for key, value in delta.items():
                if key in STATE_FIELDS:
                    setattr(self.state, key, value)
            for listener in list(self._listeners):
                try:
                    listener(dict(delta))
                except Exception as e:
                    print(f"⚠️ State listener failed: {type(e).__name__}: {e}")

    # =========================================================================
    # Worker messages
    # =========================================================================

    def _handle_message(self, msg: Any) -> None:
        if isinstance(msg, Ready):
            self._notify({'is_ready': True, 'is_loading': False, 'loading_progress': 1.0, 'error': None})
            self._ready_event.set()

        elif isinstance(msg, InitProgress):
            self._notify({
                'is_loading': True,
                'loading_progress': msg.progress,
                'loading_message': msg.message,
            })

        elif isinstance(msg, InitError):
            self._init_error = error_from_message(msg.error_type, msg.error)
            self._notify({'error': msg.error, 'is_loading': False, 'is_ready': False})
            self._ready_event.set()

        elif isinstance(msg, BestMove):
            self._notify({
                'is_thinking': False,
                'last_move': msg.move,
                'last_confidence': msg.confidence,
                'wdl': msg.wdl,
            })
            self._resolve(KIND_MOVE, msg)

        elif isinstance(msg, Evaluation):
            self._resolve(KIND_EVALUATION, msg.wdl)

        elif isinstance(msg, MctsProgress):
            self._notify({'search_progress': (msg.nodes, msg.total_nodes)})

        elif isinstance(msg, MctsResultMessage):
            self._notify({
                'is_thinking': False,
                'last_move': msg.best_move,
                'last_confidence': msg.best_visits / msg.total_nodes,
                'wdl': msg.wdl,
                'search_progress': None,
            })
            self._resolve(KIND_SEARCH, msg)

        elif isinstance(msg, Error):
            self._notify({'error': msg.error, 'is_thinking': False, 'search_progress': None})
            self._reject(msg.kind, error_from_message(msg.error_type, msg.error))

    def _take_pending(self, kind: str) -> Optional[Future]:
        with self._lock:
            return self._pending.pop(kind, None)

    def _resolve(self, kind: str, result: Any) -> None:
        future = self._take_pending(kind)
        if future is not None and not future.done():
            future.set_result(result)

    def _reject(self, kind: str, error: Exception) -> None:
        future = self._take_pending(kind)
        if future is not None and not future.done():
            future.set_exception(error)

    # =========================================================================
    # Requests
    # =========================================================================

    def _register(self, kind: str) -> Future:
        with self._lock:
            if self._terminated:
                raise Terminated("Engine has been terminated")
            if kind in self._pending:
                raise RequestAlreadyPending(f"Engine already has a pending {kind} request")
            future: Future = Future()
            self._pending[kind] = future
            return future

    def _send(self, kind: str, request: Any) -> None:
        try:
            self.worker.submit(request)
        except EngineError as e:
            self._reject(kind, e)

    def init(self, model_url: str) -> None:
        """
        Mulai load model (cache -> download -> session). Progress lewat subscribers.

        Raises:
            Terminated: Jika client sudah di-terminate
            RequestAlreadyPending: Jika init sebelumnya masih berjalan
        """
        # Lock dipegang sampai reset selesai, jadi progress dari worker selalu datang sesudahnya
        with self._lock:
            if self._terminated:
                raise Terminated("Engine has been terminated")
            self.worker.submit(InitRequest(model_url=model_url))
            self._ready_event.clear()
            self._init_error = None

            self._notify({
                'is_ready': False,
                'is_loading': True,
                'loading_progress': 0.0,
                'loading_message': 'Starting...',
                'error': None,
            })

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Block sampai init selesai.

        Returns:
            bool: True jika ready, False jika timeout

        Raises:
            EngineError: Error dari init yang gagal
        """
        if not self._ready_event.wait(timeout):
            return False
        if self._init_error is not None:
            raise self._init_error
        return True

    def get_best_move(
        self,
        fen: str,
        history: Sequence[str],
        legal_moves: Sequence[str],
        temperature: float = 0.0
    ) -> 'Future[BestMove]':
        """
        Minta best move untuk posisi.

        Args:
            fen: FEN posisi sekarang
            history: Semua FEN dari game, posisi sekarang terakhir
            legal_moves: Legal moves (UCI) dari rules oracle
            temperature: 0 = greedy, >0 = sampling

        Returns:
            Future yang resolve ke BestMove

        Raises:
            RequestAlreadyPending: Jika move request sebelumnya belum selesai
            Terminated: Jika client sudah di-terminate
        """
        future = self._register(KIND_MOVE)
        self._notify({'is_thinking': True})
        self._send(KIND_MOVE, GetBestMoveRequest(
            fen=fen,
            history=list(history),
            legal_moves=list(legal_moves),
            temperature=temperature
        ))
        return future

    def evaluate_position(self, fen: str, history: Sequence[str]) -> 'Future[Tuple[float, float, float]]':
        """Evaluasi posisi; Future resolve ke WDL tuple."""
        future = self._register(KIND_EVALUATION)
        self._send(KIND_EVALUATION, EvaluatePositionRequest(fen=fen, history=list(history)))
        return future

    def mcts_search(
        self,
        fen: str,
        history: Sequence[str],
        node_limit: int,
        time_limit_ms: Optional[float] = None
    ) -> 'Future[MctsResultMessage]':
        """Jalankan MCTS; progress dikirim sebagai search_progress."""
        future = self._register(KIND_SEARCH)
        self._notify({'is_thinking': True, 'search_progress': (0, node_limit)})
        self._send(KIND_SEARCH, MctsSearchRequest(
            fen=fen,
            history=list(history),
            node_limit=node_limit,
            time_limit_ms=time_limit_ms
        ))
        return future

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    def terminate(self) -> None:
        """Lepaskan worker; semua pending request gagal dengan Terminated."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            pending = list(self._pending.values())
            self._pending.clear()

        # Futures gagal dulu; stop() bisa menunggu inference yang sedang jalan
        for future in pending:
            if not future.done():
                future.set_exception(Terminated("Engine terminated while request was pending"))

        if not self._ready_event.is_set():
            self._init_error = Terminated("Engine terminated before model was ready")
            self._ready_event.set()

        self.worker.stop()

        self._notify({'is_thinking': False, 'is_loading': False, 'is_ready': False})

    def __enter__(self) -> 'EngineClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()
