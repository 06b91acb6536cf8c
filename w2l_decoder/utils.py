"""
Shared helpers: configuration loading and console output.
"""

import copy
from pathlib import Path
from typing import Optional

import yaml
from rich.console import Console


# Diagnostics go to stderr so decoded text on stdout stays clean
console = Console(stderr=True)

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config.yaml'

DEFAULT_CONFIG = {
    'audio': {
        'sample_rate': 16000,
        'n_mfcc': 13,
        'n_fft': 512,
        'n_mels': 128,
        'hop_length': 160,
    },
    'features': {
        'window_length': 9,
        'poly_order': 2,
    },
    'model': {
        'window_length': 296,
        'feature_dim': 39,
        # Receptive field of tiny wav2letter: 24 + 2 * (7 * 3 + 16)
        'context_length': 98,
        # Blank + the default vocab below, not the original model's 38 classes
        'num_classes': 29,
        'input_scale': 0.0625,
        'input_zero_point': 0,
        'output_scale': 0.25,
        'output_zero_point': 0,
    },
    'decoder': {
        'merge_repeated': True,
        'blank_index': 0,
        'vocab': " abcdefghijklmnopqrstuvwxyz'",
    },
}


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Load configuration from a YAML file, filling gaps from DEFAULT_CONFIG.

    Args:
        config_path: Path to YAML file. Uses the packaged config.yaml if None.

    Returns:
        Configuration dictionary
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    return _merge(DEFAULT_CONFIG, config)
