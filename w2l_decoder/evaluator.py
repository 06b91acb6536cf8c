"""
Windowed quantized inference over a whole utterance.

The classifier sees a fixed number of input frames per call. Long utterances
are cut into overlapping windows; each window keeps only the interior part of
its output, where the model had enough context on both sides, and those
interiors are stitched back into one continuous score sequence.

The model halves the time resolution (output_steps = window_length / 2), so
all output offsets below are input offsets divided by two.
"""

from typing import List, NamedTuple

import numpy as np

from .errors import InferenceFailure, InvalidParameter, ShapeMismatch
from .utils import console


class WindowSpan(NamedTuple):
    """Input frames [start, end) and kept output steps [y_start, y_end) of one window."""
    start: int
    end: int
    y_start: int
    y_end: int


def pad_sequence(frames: np.ndarray, window_length: int) -> np.ndarray:
    """
    Pad a (time, feature) sequence for windowing.

    Repeats the last frame until at least window_length frames exist, then
    appends one zero frame if the length is odd.
    """
    n_frames, feature_dim = frames.shape
    if n_frames == 0:
        raise ShapeMismatch("cannot evaluate an empty feature sequence")

    parts = [frames]
    if n_frames < window_length:
        parts.append(np.repeat(frames[-1:], window_length - n_frames, axis=0))
        n_frames = window_length
    if n_frames % 2 == 1:
        parts.append(np.zeros((1, feature_dim), dtype=frames.dtype))

    return np.concatenate(parts, axis=0) if len(parts) > 1 else frames


def extract_window(sequence: np.ndarray, start: int, end: int) -> np.ndarray:
    """
    Slice frames [start, end) out of a (time, feature) sequence.

    Positions outside [0, len(sequence)) are filled with zero frames, so the
    result always has end - start rows and never wraps around.
    """
    length = end - start
    window = np.zeros((length, sequence.shape[1]), dtype=sequence.dtype)

    src_start = min(max(start, 0), len(sequence))
    src_end = min(max(end, 0), len(sequence))
    if src_end > src_start:
        offset = src_start - start
        window[offset:offset + (src_end - src_start)] = sequence[src_start:src_end]
    return window


class WindowedQuantizedInferenceEngine:
    """
    Slides a quantized classifier over a full feature sequence.

    Usage:
        engine = WindowedQuantizedInferenceEngine(classifier, context_length=98)
        scores = engine.evaluate(stacked_features)   # (39, T) -> (T', num_classes)
    """

    def __init__(self, classifier, context_length: int = 98, verbose: bool = False):
        """
        Bind a classifier handle.

        Args:
            classifier: Object with input_shape (1, W, F), output_shape
                (1, 1, W / 2, C), input/output QuantizationParams and run()
            context_length: Receptive-field margin in input frames (even)
            verbose: Log window spans to the console
        """
        batch, window_length, feature_dim = classifier.input_shape
        output_steps, num_classes = classifier.output_shape[-2:]

        if batch != 1:
            raise ShapeMismatch(f"classifier batch size must be 1, got {batch}")
        if window_length % 2 or context_length % 2:
            raise InvalidParameter(
                f"window_length ({window_length}) and context_length ({context_length}) must be even"
            )
        if context_length < 0 or window_length <= 2 * context_length:
            raise InvalidParameter(
                f"window_length ({window_length}) must exceed 2 * context_length ({context_length})"
            )
        if output_steps * 2 != window_length:
            raise ShapeMismatch(
                f"classifier must emit window_length / 2 = {window_length // 2} steps, "
                f"declares {output_steps}"
            )

        self.classifier = classifier
        self.window_length = window_length
        self.feature_dim = feature_dim
        self.context_length = context_length
        self.inner_length = window_length - 2 * context_length
        self.num_classes = num_classes
        self.input_quantization = classifier.input_quantization
        self.output_quantization = classifier.output_quantization
        self.verbose = verbose

        if verbose:
            console.log(f"input scale: {self.input_quantization.scale}, "
                        f"zeroPoint: {self.input_quantization.zero_point}")
            console.log(f"output scale: {self.output_quantization.scale}, "
                        f"zeroPoint: {self.output_quantization.zero_point}")

    @classmethod
    def from_config(cls, classifier, config: dict, verbose: bool = False):
        return cls(
            classifier,
            context_length=config.get('model', {}).get('context_length', 98),
            verbose=verbose,
        )

    def plan_windows(self, sequence_end: int) -> List[WindowSpan]:
        """
        Window plan for a padded sequence of sequence_end frames.

        Consecutive y ranges tile the output without gaps or overlaps.
        """
        size = self.window_length
        ctx = self.context_length
        inner = self.inner_length

        spans = []
        cursor = 0
        while cursor < sequence_end:
            if cursor == 0:
                start, end = 0, size
                y_start, y_end = 0, (size - ctx) // 2
                # Whole utterance fits in one window
                cursor = sequence_end if end >= sequence_end else end - ctx
            elif sequence_end - cursor >= inner + ctx:
                start = cursor - ctx
                end = start + size
                y_start = ctx // 2
                y_end = y_start + inner // 2
                cursor = end - ctx
            else:
                shift = (cursor + inner + ctx) - sequence_end
                start = cursor - ctx - shift
                end = start + size
                y_start, y_end = (shift + ctx) // 2, size // 2
                cursor = sequence_end
            spans.append(WindowSpan(start, end, y_start, y_end))
        return spans

    def output_length(self, n_frames: int) -> int:
        """Number of output steps evaluate() returns for n_frames input frames."""
        if n_frames <= 0:
            raise ShapeMismatch("cannot evaluate an empty feature sequence")
        padded = max(n_frames, self.window_length)
        padded += padded % 2
        return sum(s.y_end - s.y_start for s in self.plan_windows(padded))

    def evaluate(self, features: np.ndarray) -> np.ndarray:
        """
        Run the classifier over the whole utterance.

        Args:
            features: (feature_dim, frames) stacked feature matrix

        Returns:
            scores: (steps, num_classes) float32 dequantized class scores
        """
        features = np.asarray(features, dtype=np.float32)
        if features.ndim != 2 or features.shape[0] != self.feature_dim:
            raise ShapeMismatch(
                f"expected features of shape ({self.feature_dim}, frames), got {features.shape}"
            )

        sequence = pad_sequence(np.ascontiguousarray(features.T), self.window_length)
        outputs = []

        for i, span in enumerate(self.plan_windows(len(sequence))):
            if self.verbose:
                console.log(f"Window {i} start: {span.start}, end: {span.end}, "
                            f"keep: [{span.y_start}, {span.y_end})")

            window = extract_window(sequence, span.start, span.end)
            quantized = self.input_quantization.quantize(window)[None]

            try:
                raw = self.classifier.run(quantized)
            except Exception as e:
                raise InferenceFailure(f"classifier failed on window {i}: {e}", window_index=i) from e

            raw = np.asarray(raw)
            if raw.ndim != 4 or raw.shape[0] != 1 or raw.shape[2] != self.window_length // 2 \
                    or raw.shape[3] != self.num_classes:
                raise ShapeMismatch(
                    f"classifier output {raw.shape} does not match (1, ?, "
                    f"{self.window_length // 2}, {self.num_classes})"
                )

            outputs.append(self.output_quantization.dequantize(raw[0, 0, span.y_start:span.y_end]))

        return np.concatenate(outputs, axis=0)
