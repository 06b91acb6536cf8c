"""
Greedy CTC decoding (argmax + collapse).

Output follows the sparse-tensor layout of TensorFlow's ctc_greedy_decoder:
(batch, position) index pairs, label values, dense shape, and a per-batch
score equal to the negated sum of the per-step maxima.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .errors import InvalidArgument
from .utils import console


@dataclass(frozen=True)
class DecodedResult:
    decoded_indices: np.ndarray   # (N, 2) int64: batch, position
    decoded_values: np.ndarray    # (N,) int64 labels
    decoded_shape: np.ndarray     # (2,) int64: batch_size, max decoded length
    log_probability: np.ndarray   # (batch_size,) float32

    def sequences(self) -> List[List[int]]:
        """Per-batch label lists (dense view of the sparse result)."""
        out = [[] for _ in range(int(self.decoded_shape[0]))]
        for (b, _), value in zip(self.decoded_indices.tolist(), self.decoded_values.tolist()):
            out[b].append(value)
        return out


class GreedyCTCDecoder:
    """
    Greedy CTC decoder.

    Usage:
        decoder = GreedyCTCDecoder(merge_repeated=True, blank_index=0)
        result = decoder.decode(scores, [num_steps])   # scores: (time, batch, classes)
    """

    def __init__(self, merge_repeated: bool = True, blank_index: int = 0, verbose: bool = False):
        self.merge_repeated = merge_repeated
        self.blank_index = blank_index
        self.verbose = verbose

    @classmethod
    def from_config(cls, config: dict, verbose: bool = False) -> 'GreedyCTCDecoder':
        dec_cfg = config.get('decoder', {})
        return cls(
            merge_repeated=dec_cfg.get('merge_repeated', True),
            blank_index=dec_cfg.get('blank_index', 0),
            verbose=verbose,
        )

    def decode(self, scores, sequence_lengths: Sequence[int]) -> DecodedResult:
        """
        Decode a batch of score sequences.

        Args:
            scores: (max_time, batch_size, num_classes) array
            sequence_lengths: (batch_size,) valid steps per batch entry

        Returns:
            DecodedResult
        """
        scores = np.asarray(scores, dtype=np.float32)
        if scores.size == 0:
            raise InvalidArgument("scores is empty")
        if scores.ndim != 3:
            raise InvalidArgument(f"scores must be (time, batch, classes), got shape {scores.shape}")

        max_time, batch_size, _ = scores.shape
        sequence_lengths = [int(n) for n in sequence_lengths]
        if len(sequence_lengths) != batch_size:
            raise InvalidArgument(
                f"len(sequence_lengths) = {len(sequence_lengths)} != batch_size = {batch_size}"
            )
        for b, n in enumerate(sequence_lengths):
            if n < 0 or n > max_time:
                raise InvalidArgument(f"sequence_lengths[{b}] = {n} outside [0, {max_time}]")

        sequences = []
        log_probability = np.zeros(batch_size, dtype=np.float32)

        for b in range(batch_size):
            steps = scores[:sequence_lengths[b], b]
            # argmax returns the first maximum, so ties go to the lowest class
            best = steps.argmax(axis=1)
            best_vals = steps[np.arange(len(steps)), best]
            log_probability[b] = -best_vals.sum(dtype=np.float32)

            decoded = []
            prev = -1
            for t, token in enumerate(best.tolist()):
                if self.verbose:
                    console.log(f"batch={b}, time={t}, argmax={token}, maxVal={best_vals[t]}")
                if token != self.blank_index and not (self.merge_repeated and token == prev):
                    decoded.append(token)
                # Blanks also reset prev, so "a _ a" decodes to "a a"
                prev = token
            sequences.append(decoded)

        total = sum(len(s) for s in sequences)
        max_len = max((len(s) for s in sequences), default=0)

        decoded_indices = np.zeros((total, 2), dtype=np.int64)
        decoded_values = np.zeros(total, dtype=np.int64)
        offset = 0
        for b, seq in enumerate(sequences):
            for pos, label in enumerate(seq):
                decoded_indices[offset] = (b, pos)
                decoded_values[offset] = label
                offset += 1

        return DecodedResult(
            decoded_indices=decoded_indices,
            decoded_values=decoded_values,
            decoded_shape=np.array([batch_size, max_len], dtype=np.int64),
            log_probability=log_probability,
        )


def prepare_ctc_input(scores) -> np.ndarray:
    """Reshape a single utterance (time, classes) to (time, 1, classes)."""
    scores = np.asarray(scores, dtype=np.float32)
    if scores.ndim != 2:
        raise InvalidArgument(f"expected (time, classes) scores, got shape {scores.shape}")
    return scores[:, None, :]


def create_ctc_vocab(config: dict) -> Tuple[Dict[str, int], Dict[int, str]]:
    """
    Create vocabulary for CTC decoding.

    CTC requires blank token at index 0.

    Args:
        config: Config with decoder.vocab string

    Returns:
        char_to_idx: {char: index}
        idx_to_char: {index: char}
    """
    vocab_chars = config.get('decoder', {}).get('vocab', " abcdefghijklmnopqrstuvwxyz'")

    # Index 0 is reserved for CTC blank
    char_to_idx = {'<BLANK>': 0}
    idx_to_char = {0: '<BLANK>'}

    for i, char in enumerate(vocab_chars):
        char_to_idx[char] = i + 1
        idx_to_char[i + 1] = char

    return char_to_idx, idx_to_char


def decode_tokens(tokens, idx_to_char: Dict[int, str]) -> str:
    """Convert token list to string."""
    chars = []
    for idx in tokens:
        idx = int(idx)
        if idx in idx_to_char:
            char = idx_to_char[idx]
            if char not in ('<BLANK>', '<PAD>'):
                chars.append(char)
    return ''.join(chars)
