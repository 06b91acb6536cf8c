"""
Error types raised by the decoding pipeline.

Parameter and shape errors indicate misconfiguration and are raised before any
numeric work starts. InferenceFailure wraps whatever the classifier raised.
"""


class DecoderError(Exception):
    """Base class for all pipeline errors."""


class InvalidParameter(DecoderError, ValueError):
    """Bad filter or model parameters (e.g. even window length)."""


class ShapeMismatch(DecoderError, ValueError):
    """Inconsistent row/column counts between matrices or tensors."""


class InvalidArgument(DecoderError, ValueError):
    """Malformed decoder input."""


class InferenceFailure(DecoderError, RuntimeError):
    """
    The classifier failed while evaluating a window.

    The remaining windows of the utterance are abandoned; no partial
    score sequence is returned.
    """

    def __init__(self, message: str, window_index: int = -1):
        super().__init__(message)
        self.window_index = window_index
