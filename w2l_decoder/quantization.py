"""
Affine int8 quantization: real ~= (quantized - zero_point) * scale.
"""

from dataclasses import dataclass

import numpy as np

from .errors import InvalidParameter


INT8_MIN = -128
INT8_MAX = 127


@dataclass(frozen=True)
class QuantizationParams:
    """Scale / zero point pair of one quantized tensor."""

    scale: float
    zero_point: int = 0

    def __post_init__(self):
        if not self.scale > 0:
            raise InvalidParameter(f"quantization scale must be > 0, got {self.scale}")

    def quantize(self, values) -> np.ndarray:
        """
        Quantize real values to int8.

        Rounds half up (floor(x + 0.5)) and saturates at the int8 range.
        """
        values = np.asarray(values, dtype=np.float32)
        q = np.floor(values / np.float32(self.scale) + np.float32(0.5)) + self.zero_point
        return np.clip(q, INT8_MIN, INT8_MAX).astype(np.int8)

    def dequantize(self, values) -> np.ndarray:
        raw = np.asarray(values).astype(np.float32)
        return (raw - np.float32(self.zero_point)) * np.float32(self.scale)

    @property
    def representable_range(self):
        """(min, max) real values that survive quantization without clipping."""
        return (
            (INT8_MIN - self.zero_point) * self.scale,
            (INT8_MAX - self.zero_point) * self.scale,
        )

    @classmethod
    def from_dict(cls, cfg: dict, prefix: str) -> 'QuantizationParams':
        """Read {prefix}_scale / {prefix}_zero_point from a model config section."""
        return cls(
            scale=float(cfg[f'{prefix}_scale']),
            zero_point=int(cfg.get(f'{prefix}_zero_point', 0)),
        )
