"""
Model Downloader
================
Fetch model weights dengan progress reporting.

Mendukung:
- HTTP(S) URL: streaming download via requests
- Path lokal / file:// URL: dibaca per chunk (development, tanpa network)
"""

import gzip
import zlib
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from ..errors import ModelFetchError, ModelLoadError


DEFAULT_CHUNK_SIZE = 1 << 16
GZIP_MAGIC = b'\x1f\x8b'

ProgressCallback = Callable[[int, int], None]  # (received_bytes, total_bytes)


def is_remote_url(url: str) -> bool:
    """True untuk http/https URL."""
    return urlparse(url).scheme in ('http', 'https')


def _local_path(url: str) -> Path:
    parsed = urlparse(url)
    if parsed.scheme == 'file':
        return Path(parsed.path)
    return Path(url).expanduser()


def fetch_model(
    url: str,
    on_progress: Optional[ProgressCallback] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    timeout: float = 30.0
) -> bytes:
    """
    Download model bytes.

    Args:
        url: HTTP(S) URL, file:// URL, atau path lokal
        on_progress: Callback (received, total); hanya dipanggil jika total diketahui
        chunk_size: Ukuran chunk untuk streaming
        timeout: Timeout koneksi (detik) untuk HTTP

    Returns:
        bytes: Raw model data

    Raises:
        ModelFetchError: Jika download gagal
    """
    if is_remote_url(url):
        return _fetch_http(url, on_progress, chunk_size, timeout)
    return _read_local(_local_path(url), on_progress, chunk_size)


def _fetch_http(
    url: str,
    on_progress: Optional[ProgressCallback],
    chunk_size: int,
    timeout: float
) -> bytes:
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            if not response.ok:
                raise ModelFetchError(f"Failed to fetch model: {response.status_code}")

            total = int(response.headers.get('Content-Length') or 0)
            chunks = []
            received = 0

            for chunk in response.iter_content(chunk_size=chunk_size):
                if not chunk:
                    continue
                chunks.append(chunk)
                received += len(chunk)
                if on_progress is not None and total > 0:
                    on_progress(received, total)

            return b''.join(chunks)
    except requests.RequestException as e:
        raise ModelFetchError(f"Failed to fetch model from {url}: {e}") from e


def _read_local(
    path: Path,
    on_progress: Optional[ProgressCallback],
    chunk_size: int
) -> bytes:
    try:
        total = path.stat().st_size
        chunks = []
        received = 0
        with open(path, 'rb') as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                chunks.append(chunk)
                received += len(chunk)
                if on_progress is not None and total > 0:
                    on_progress(received, total)
        return b''.join(chunks)
    except OSError as e:
        raise ModelFetchError(f"Failed to read model {path}: {e}") from e


def maybe_decompress(data: bytes) -> bytes:
    """
    Decompress gzip blob (file *.onnx.bin biasanya gzip), selain itu apa adanya.

    Raises:
        ModelLoadError: Jika data gzip corrupt
    """
    if data[:2] != GZIP_MAGIC:
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise ModelLoadError(f"Corrupt gzip model data: {e}") from e
