"""
Configuration
=============
Load YAML config dan helper untuk katalog network / model URL.
"""

import copy
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union


DEFAULT_CONFIG: Dict[str, Any] = {
    'engine': {
        'cache_dir': '~/.cache/chess_nn_engine/models',
        'backend': 'auto',
        'device': 'auto',
        'download_chunk_size': 1 << 16,
        'request_timeout': 30.0,
        'temperature': 0.0,
    },
    'search': {
        'node_limit': 200,
        'c_puct': 2.5,
        'progress_interval': 10,
    },
    'models': {
        'base_url': '',
        'local_dir': 'models',
        'default_network': None,
        'networks': [],
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration dari YAML file, di-merge di atas DEFAULT_CONFIG.

    Args:
        config_path: Path ke YAML file (None = default saja)

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'r') as f:
        loaded = yaml.safe_load(f) or {}

    return _merge(DEFAULT_CONFIG, loaded)


def find_network(network_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cari network di katalog config.

    Raises:
        KeyError: Jika network_id tidak ada di katalog
    """
    for network in config.get('models', {}).get('networks', []):
        if network.get('id') == network_id:
            return network
    raise KeyError(f"Unknown network: {network_id}")


def get_model_url(filename: str, config: Dict[str, Any]) -> str:
    """
    URL untuk file model: base_url jika diset, selain itu path di local_dir.
    """
    models = config.get('models', {})
    base_url = (models.get('base_url') or '').rstrip('/')
    if base_url:
        return f"{base_url}/{filename}"
    return str(Path(models.get('local_dir', 'models')) / filename)
