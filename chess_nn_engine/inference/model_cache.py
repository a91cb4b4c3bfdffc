"""
Model Cache
===========
Persistent key -> byte blob store supaya model weights tidak
di-download ulang. Key adalah URL / identifier model.

Semua failure (disk penuh, permission, dll) tidak pernah di-raise ke caller:
- get: return None (dianggap cache miss)
- put: return False
- has/delete: warning saja
"""

import os
import hashlib
from pathlib import Path
from typing import Optional, Union


DEFAULT_CACHE_DIR = '~/.cache/chess_nn_engine/models'


class ModelCache:
    """
    Directory-backed blob cache, satu file per key.

    Attributes:
        cache_dir (Path): Direktori tempat blobs disimpan
    """

    SUFFIX = '.bin'

    def __init__(self, cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR):
        """
        Inisialisasi ModelCache.

        Args:
            cache_dir: Direktori cache (dibuat saat put pertama)
        """
        self.cache_dir = Path(cache_dir).expanduser()

    def _path_for(self, key: str) -> Path:
        """Nama file = SHA-256 dari key, supaya URL aman dipakai sebagai filename."""
        digest = hashlib.sha256(key.encode('utf-8')).hexdigest()
        return self.cache_dir / f"{digest}{self.SUFFIX}"

    def get(self, key: str) -> Optional[bytes]:
        """
        Ambil blob untuk key.

        Returns:
            bytes, atau None jika tidak ada / storage gagal
        """
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except Exception as e:
            print(f"⚠️ Failed to read cached model {key}: {e}")
            return None

    def put(self, key: str, data: bytes) -> bool:
        """
        Simpan blob untuk key (overwrite jika sudah ada).

        Ditulis ke temp file dulu lalu di-rename, jadi reader tidak pernah
        melihat file setengah jadi.

        Returns:
            bool: True jika berhasil disimpan
        """
        path = self._path_for(key)
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(bytes(data))
            os.replace(tmp_path, path)
            return True
        except Exception as e:
            print(f"⚠️ Failed to cache model {key}: {e}")
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass
            return False

    def has(self, key: str) -> bool:
        """Check apakah key ada di cache."""
        try:
            return self._path_for(key).is_file()
        except Exception as e:
            print(f"⚠️ Failed to check cached model {key}: {e}")
            return False

    def delete(self, key: str) -> None:
        """Hapus entry untuk key (no-op jika tidak ada)."""
        try:
            self._path_for(key).unlink(missing_ok=True)
        except Exception as e:
            print(f"⚠️ Failed to delete cached model {key}: {e}")

    def clear(self) -> int:
        """
        Hapus semua entry di cache.

        Returns:
            int: Jumlah file yang dihapus
        """
        removed = 0
        if not self.cache_dir.is_dir():
            return removed
        for path in self.cache_dir.glob(f"*{self.SUFFIX}"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                print(f"⚠️ Failed to delete {path.name}: {e}")
        return removed
