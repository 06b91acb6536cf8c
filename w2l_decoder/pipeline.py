"""
End-to-end decoder: MFCC -> delta features -> windowed int8 inference -> greedy CTC -> text.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .classifier import TorchClassifier
from .ctc import GreedyCTCDecoder, create_ctc_vocab, decode_tokens, prepare_ctc_input
from .evaluator import WindowedQuantizedInferenceEngine
from .features import SavitzkyGolayFeatureAugmenter
from .frontend import MfccFrontend
from .utils import console, load_config


@dataclass
class Transcription:
    text: str
    tokens: List[int]
    score: float
    num_steps: int


class SpeechDecoder:
    """
    Ties the pipeline stages around one classifier handle.

    The classifier is created by the caller and shared read-only; one
    SpeechDecoder can transcribe any number of utterances.

    Usage:
        classifier = TorchClassifier.from_torchscript('model.pt', config)
        decoder = SpeechDecoder(classifier, config)
        result = decoder.transcribe_file('test.wav')
        print(result.text)
    """

    def __init__(self, classifier, config: Optional[dict] = None, verbose: bool = False):
        self.config = config if config is not None else load_config()
        self.verbose = verbose

        self.augmenter = SavitzkyGolayFeatureAugmenter.from_config(self.config)
        self.engine = WindowedQuantizedInferenceEngine.from_config(classifier, self.config, verbose=verbose)
        self.ctc = GreedyCTCDecoder.from_config(self.config)
        self.char_to_idx, self.idx_to_char = create_ctc_vocab(self.config)
        self._frontend = None

    @classmethod
    def from_torchscript(cls, model_path: str, config: Optional[dict] = None,
                         device: Optional[str] = None, verbose: bool = False) -> 'SpeechDecoder':
        config = config if config is not None else load_config()
        classifier = TorchClassifier.from_torchscript(model_path, config, device=device)
        return cls(classifier, config, verbose=verbose)

    @property
    def frontend(self) -> MfccFrontend:
        if self._frontend is None:
            self._frontend = MfccFrontend.from_config(self.config)
        return self._frontend

    def transcribe_features(self, mfcc: np.ndarray) -> Transcription:
        """
        Decode a base MFCC matrix.

        Args:
            mfcc: (n_mfcc, frames) array

        Returns:
            Transcription with text, label indices and greedy score
        """
        stacked = self.augmenter.build(mfcc)
        scores = self.engine.evaluate(stacked)
        if self.verbose:
            console.log(f"Output Data Shape: {scores.shape[0]} x {scores.shape[1]}")

        result = self.ctc.decode(prepare_ctc_input(scores), [scores.shape[0]])
        tokens = result.sequences()[0]

        return Transcription(
            text=decode_tokens(tokens, self.idx_to_char),
            tokens=tokens,
            score=float(result.log_probability[0]),
            num_steps=scores.shape[0],
        )

    def transcribe(self, audio: np.ndarray, sample_rate: Optional[int] = None) -> Transcription:
        """Decode a mono waveform."""
        return self.transcribe_features(self.frontend.from_waveform(audio, sample_rate))

    def transcribe_file(self, audio_path: str) -> Transcription:
        """Decode a WAV file."""
        return self.transcribe_features(self.frontend.from_file(audio_path))
