"""
Engine Errors
=============
Hierarki exception untuk neural-network move engine.

Komponen pure (encoder/decoder) raise langsung; worker loop menangkap semua
error dan mengubahnya menjadi satu pesan terminal per request.
"""

from typing import Dict, Type


class EngineError(Exception):
    """Base class untuk semua error engine."""


class InvalidInput(EngineError, ValueError):
    """Position history kosong atau FEN tidak valid."""


class NoLegalMoves(EngineError, ValueError):
    """Legal move set kosong."""


class NoMappableMoves(EngineError):
    """
    Tidak ada legal move yang punya policy index.

    Menandakan mismatch move table / versi network, bukan error transient.
    """


class ModelFetchError(EngineError):
    """Download model gagal (bisa di-retry dengan init ulang)."""


class ModelLoadError(EngineError):
    """Model corrupt atau tidak kompatibel."""


class InferenceError(EngineError):
    """Backend gagal saat satu inference call."""


class RequestAlreadyPending(EngineError):
    """Request dengan kind yang sama masih outstanding."""


class Terminated(EngineError):
    """Engine sudah di-terminate saat request masih outstanding."""


ERROR_TYPES: Dict[str, Type[EngineError]] = {
    cls.__name__: cls
    for cls in (
        InvalidInput,
        NoLegalMoves,
        NoMappableMoves,
        ModelFetchError,
        ModelLoadError,
        InferenceError,
        RequestAlreadyPending,
        Terminated,
    )
}


def error_from_message(kind: str, message: str) -> EngineError:
    """Rekonstruksi typed error dari nama class yang dikirim worker."""
    return ERROR_TYPES.get(kind, EngineError)(message)
