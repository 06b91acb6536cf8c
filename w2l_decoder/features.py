"""
Savitzky-Golay delta features for MFCC matrices.

Takes a base MFCC matrix (coefficients x frames), derives smoothed first and
second time derivatives with a Savitzky-Golay filter, normalizes every row and
stacks the three blocks into one (3 * n_mfcc) x frames matrix.

Usage:
    augmenter = SavitzkyGolayFeatureAugmenter(window_length=9, poly_order=2)
    stacked = augmenter.build(mfcc)   # (13, T) -> (39, T)
"""

import math
from functools import lru_cache

import numpy as np

from .errors import InvalidArgument, InvalidParameter, ShapeMismatch


@lru_cache(maxsize=None)
def _coefficients(window_length: int, poly_order: int, deriv_order: int) -> np.ndarray:
    half = (window_length - 1) // 2
    offsets = np.arange(window_length, dtype=np.float64) - half

    # Vandermonde matrix: A[i, j] = (i - half) ** j
    vandermonde = offsets[:, None] ** np.arange(poly_order + 1, dtype=np.float64)[None, :]

    # pinv goes through the SVD; shape (poly_order + 1, window_length)
    pinv = np.linalg.pinv(vandermonde)

    coeffs = math.factorial(deriv_order) * pinv[deriv_order]
    coeffs.setflags(write=False)
    return coeffs


def compute_coefficients(window_length: int, poly_order: int, deriv_order: int) -> np.ndarray:
    """
    Compute Savitzky-Golay convolution coefficients.

    Results are memoized per (window_length, poly_order, deriv_order) and
    returned read-only, so they can be shared between threads.

    Args:
        window_length: Filter window length (odd, e.g. 9)
        poly_order: Polynomial order (e.g. 2)
        deriv_order: Derivative order (0 = smoothing, 1 = delta, 2 = delta-delta)

    Returns:
        coeffs: (window_length,) array
    """
    if window_length <= 0 or window_length % 2 == 0:
        raise InvalidParameter(f"window_length must be odd and positive, got {window_length}")
    if poly_order < 0:
        raise InvalidParameter(f"poly_order must be >= 0, got {poly_order}")
    if deriv_order < 0 or deriv_order > poly_order:
        raise InvalidParameter(
            f"deriv_order must be in [0, poly_order={poly_order}], got {deriv_order}"
        )
    return _coefficients(int(window_length), int(poly_order), int(deriv_order))


def _as_matrix(matrix, name: str = 'matrix') -> np.ndarray:
    arr = np.asarray(matrix, dtype=np.float64)
    if arr.ndim != 2:
        raise ShapeMismatch(f"{name} must be 2D (rows x frames), got shape {arr.shape}")
    return arr


def mirror_indices(n_frames: int, half: int) -> np.ndarray:
    """
    Index table for mirror-padded convolution.

    Row t holds the source frame for offsets -half..half around frame t:
    negative indices map to -index, indices past the end to 2 * n - index - 2.
    """
    idx = np.arange(n_frames)[:, None] + np.arange(-half, half + 1)[None, :]
    idx = np.where(idx < 0, -idx, idx)
    idx = np.where(idx >= n_frames, 2 * n_frames - idx - 2, idx)
    return idx


def apply_derivative(matrix, window_length: int, poly_order: int, deriv_order: int) -> np.ndarray:
    """
    Apply a Savitzky-Golay filter along the time axis of every row.

    Args:
        matrix: (rows, frames) input, e.g. MFCC coefficients x frames
        window_length: Filter window length (odd)
        poly_order: Polynomial order
        deriv_order: 1 for delta, 2 for delta-delta

    Returns:
        (rows, frames) filtered matrix
    """
    coeffs = compute_coefficients(window_length, poly_order, deriv_order)
    data = _as_matrix(matrix)
    n_frames = data.shape[1]
    half = (window_length - 1) // 2

    # A single reflection must land inside the row
    if n_frames <= half:
        raise ShapeMismatch(
            f"need more than {half} frames for window_length={window_length}, got {n_frames}"
        )

    idx = mirror_indices(n_frames, half)
    # (rows, frames, window) @ (window,) -> (rows, frames)
    return data[:, idx] @ coeffs


def normalize_rows(matrix) -> np.ndarray:
    """Scale every row to zero mean and unit standard deviation. Flat rows become zeros."""
    data = _as_matrix(matrix)
    mean = data.mean(axis=1, keepdims=True)
    std = data.std(axis=1, keepdims=True)

    out = np.zeros_like(data)
    nonzero = std[:, 0] != 0.0
    out[nonzero] = (data[nonzero] - mean[nonzero]) / std[nonzero]
    return out


def stack(*matrices) -> np.ndarray:
    """
    Concatenate matrices along the row axis.

    All inputs must have the same number of columns (frames).
    """
    if not matrices:
        raise InvalidArgument("stack() needs at least one matrix")

    arrays = [_as_matrix(m, name=f"matrix {i}") for i, m in enumerate(matrices)]
    cols = arrays[0].shape[1]
    for i, arr in enumerate(arrays):
        if arr.shape[1] != cols:
            raise ShapeMismatch(
                f"All matrices must have the same number of columns: "
                f"matrix 0 has {cols}, matrix {i} has {arr.shape[1]}"
            )
    return np.concatenate(arrays, axis=0)


def build_features(mfcc, window_length: int = 9, poly_order: int = 2) -> np.ndarray:
    """
    Build stacked MFCC + delta + delta-delta features.

    Args:
        mfcc: (n_mfcc, frames) base MFCC matrix, e.g. 13 x T
        window_length: Savitzky-Golay window length (odd)
        poly_order: Polynomial order (>= 2)

    Returns:
        (3 * n_mfcc, frames) normalized feature matrix, e.g. 39 x T
    """
    mfcc = _as_matrix(mfcc, name='mfcc')
    delta = apply_derivative(mfcc, window_length, poly_order, 1)
    delta2 = apply_derivative(mfcc, window_length, poly_order, 2)

    return stack(
        normalize_rows(mfcc),
        normalize_rows(delta),
        normalize_rows(delta2),
    )


class SavitzkyGolayFeatureAugmenter:
    """
    Binds Savitzky-Golay parameters for repeated feature building.

    Usage:
        augmenter = SavitzkyGolayFeatureAugmenter.from_config(config)
        features = augmenter.build(mfcc)
    """

    def __init__(self, window_length: int = 9, poly_order: int = 2):
        if poly_order < 2:
            raise InvalidParameter(f"poly_order must be >= 2 for delta-delta, got {poly_order}")
        # Validates window_length and warms the cache
        compute_coefficients(window_length, poly_order, 1)
        compute_coefficients(window_length, poly_order, 2)

        self.window_length = window_length
        self.poly_order = poly_order

    @classmethod
    def from_config(cls, config: dict) -> 'SavitzkyGolayFeatureAugmenter':
        feat_cfg = config.get('features', {})
        return cls(
            window_length=feat_cfg.get('window_length', 9),
            poly_order=feat_cfg.get('poly_order', 2),
        )

    def build(self, mfcc) -> np.ndarray:
        return build_features(mfcc, self.window_length, self.poly_order)

    def __repr__(self):
        return (f"SavitzkyGolayFeatureAugmenter(window_length={self.window_length}, "
                f"poly_order={self.poly_order})")
