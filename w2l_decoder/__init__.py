"""
Quantized wav2letter decoder

Components:
- SavitzkyGolayFeatureAugmenter: MFCC + delta + delta-delta features
- WindowedQuantizedInferenceEngine: Overlapping int8 windows over a full utterance
- GreedyCTCDecoder: Argmax + blank/repeat collapse
- TorchClassifier: Float torch model behind the int8 classifier interface
- SpeechDecoder: End-to-end wrapper (audio or MFCC -> text)
"""

from .errors import DecoderError, InvalidParameter, ShapeMismatch, InvalidArgument, InferenceFailure
from .features import (
    SavitzkyGolayFeatureAugmenter, compute_coefficients, apply_derivative,
    normalize_rows, stack, build_features
)
from .quantization import QuantizationParams
from .classifier import Classifier, TorchClassifier, describe
from .evaluator import WindowedQuantizedInferenceEngine, WindowSpan, pad_sequence, extract_window
from .ctc import GreedyCTCDecoder, DecodedResult, prepare_ctc_input, create_ctc_vocab, decode_tokens
from .frontend import MfccFrontend
from .pipeline import SpeechDecoder, Transcription
from .utils import load_config

__all__ = [
    'DecoderError',
    'InvalidParameter',
    'ShapeMismatch',
    'InvalidArgument',
    'InferenceFailure',
    'SavitzkyGolayFeatureAugmenter',
    'compute_coefficients',
    'apply_derivative',
    'normalize_rows',
    'stack',
    'build_features',
    'QuantizationParams',
    'Classifier',
    'TorchClassifier',
    'describe',
    'WindowedQuantizedInferenceEngine',
    'WindowSpan',
    'pad_sequence',
    'extract_window',
    'GreedyCTCDecoder',
    'DecodedResult',
    'prepare_ctc_input',
    'create_ctc_vocab',
    'decode_tokens',
    'MfccFrontend',
    'SpeechDecoder',
    'Transcription',
    'load_config',
]
