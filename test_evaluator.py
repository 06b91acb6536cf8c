"""
Tests for windowed quantized inference and stitching.

The mock classifier copies input frame 2 * o into output step o, and the
test features encode each frame's index (index // 100, index % 100). The
stitched output step g must therefore decode back to input frame 2 * g.
"""

import numpy as np
import pytest

from w2l_decoder.errors import InferenceFailure, InvalidParameter, ShapeMismatch
from w2l_decoder.evaluator import WindowedQuantizedInferenceEngine, extract_window, pad_sequence
from w2l_decoder.quantization import QuantizationParams


WINDOW = 40
CONTEXT = 8
NUM_CLASSES = 3


class FrameEchoClassifier:
    """Output step o = (input[2o, 0], input[2o, 1], 0)."""

    def __init__(self, window_length=WINDOW, feature_dim=2, output_steps=None, fail_on_call=None):
        output_steps = window_length // 2 if output_steps is None else output_steps
        self.input_shape = (1, window_length, feature_dim)
        self.output_shape = (1, 1, output_steps, NUM_CLASSES)
        self.input_quantization = QuantizationParams(scale=1.0, zero_point=0)
        self.output_quantization = QuantizationParams(scale=1.0, zero_point=0)
        self.fail_on_call = fail_on_call
        self.calls = 0

    def run(self, window):
        self.calls += 1
        if self.fail_on_call == self.calls:
            raise RuntimeError("delegate crashed")

        assert window.dtype == np.int8
        assert window.shape == self.input_shape
        out = np.zeros(self.output_shape, dtype=np.int8)
        out[0, 0, :, :2] = window[0, ::2, :2]
        return out


def index_features(n_frames):
    t = np.arange(n_frames)
    return np.stack([t // 100, t % 100]).astype(np.float32)


def decoded_frames(scores):
    return (scores[:, 0] * 100 + scores[:, 1]).astype(int)


def make_engine(**kwargs):
    classifier = FrameEchoClassifier(**kwargs)
    return WindowedQuantizedInferenceEngine(classifier, context_length=CONTEXT), classifier


def test_exact_window_length_runs_once():
    engine, classifier = make_engine()
    scores = engine.evaluate(index_features(WINDOW))

    assert classifier.calls == 1
    assert scores.shape == ((WINDOW - CONTEXT) // 2, NUM_CLASSES)
    np.testing.assert_array_equal(decoded_frames(scores), 2 * np.arange(len(scores)))


def test_short_utterance_is_padded_with_last_frame():
    engine, classifier = make_engine()
    scores = engine.evaluate(index_features(25))

    assert classifier.calls == 1
    assert len(scores) == (WINDOW - CONTEXT) // 2
    expected = np.minimum(2 * np.arange(len(scores)), 24)
    np.testing.assert_array_equal(decoded_frames(scores), expected)


def test_one_and_a_half_windows():
    engine, classifier = make_engine()
    scores = engine.evaluate(index_features(60))

    assert classifier.calls == 2
    assert len(scores) == 30
    np.testing.assert_array_equal(decoded_frames(scores), 2 * np.arange(30))


@pytest.mark.parametrize('n_frames', [41, 64, 97, 201, 388])
def test_long_utterance_has_no_gaps_or_duplicates(n_frames):
    engine, classifier = make_engine()
    scores = engine.evaluate(index_features(n_frames))

    padded = n_frames + n_frames % 2
    assert len(scores) == padded // 2
    assert len(scores) == engine.output_length(n_frames)
    assert classifier.calls == len(engine.plan_windows(padded))

    frames = decoded_frames(scores)
    valid = 2 * np.arange(len(scores)) < n_frames
    np.testing.assert_array_equal(frames[valid], 2 * np.arange(len(scores))[valid])


@pytest.mark.parametrize('sequence_end', [40, 42, 64, 72, 100, 250])
def test_window_plan_tiles_output(sequence_end):
    engine, _ = make_engine()
    spans = engine.plan_windows(sequence_end)

    produced = 0
    for span in spans:
        assert span.end - span.start == WINDOW
        assert 0 <= span.start and span.end <= max(sequence_end, WINDOW)
        # Global output step of the first kept row
        assert span.start // 2 + span.y_start == produced
        produced += span.y_end - span.y_start

    expected = (WINDOW - CONTEXT) // 2 if sequence_end <= WINDOW else sequence_end // 2
    assert produced == expected


def test_middle_windows_keep_interior():
    engine, _ = make_engine()
    spans = engine.plan_windows(120)
    middle = spans[1:-1]

    assert middle
    for span in middle:
        assert span.y_start == CONTEXT // 2
        assert span.y_end - span.y_start == (WINDOW - 2 * CONTEXT) // 2


def test_feature_dim_mismatch_fails_before_inference():
    engine, classifier = make_engine()
    with pytest.raises(ShapeMismatch):
        engine.evaluate(np.zeros((3, 100), dtype=np.float32))
    with pytest.raises(ShapeMismatch):
        engine.evaluate(np.zeros((2, 0), dtype=np.float32))
    assert classifier.calls == 0


def test_classifier_error_aborts_utterance():
    engine, classifier = make_engine(fail_on_call=2)

    with pytest.raises(InferenceFailure) as excinfo:
        engine.evaluate(index_features(200))

    assert classifier.calls == 2
    assert excinfo.value.window_index == 1
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_bad_output_shape():
    class Truncating(FrameEchoClassifier):
        def run(self, window):
            return super().run(window)[:, :, :5]

    engine = WindowedQuantizedInferenceEngine(Truncating(), context_length=CONTEXT)
    with pytest.raises(ShapeMismatch):
        engine.evaluate(index_features(100))


def test_invalid_engine_parameters():
    with pytest.raises(InvalidParameter):
        WindowedQuantizedInferenceEngine(FrameEchoClassifier(), context_length=7)
    with pytest.raises(InvalidParameter):
        WindowedQuantizedInferenceEngine(FrameEchoClassifier(), context_length=20)
    with pytest.raises(InvalidParameter):
        WindowedQuantizedInferenceEngine(FrameEchoClassifier(window_length=41, output_steps=20),
                                         context_length=8)
    with pytest.raises(ShapeMismatch):
        WindowedQuantizedInferenceEngine(FrameEchoClassifier(output_steps=19), context_length=8)


def test_verbose_logging_does_not_change_output():
    quiet = WindowedQuantizedInferenceEngine(FrameEchoClassifier(), context_length=CONTEXT)
    loud = WindowedQuantizedInferenceEngine(FrameEchoClassifier(), context_length=CONTEXT, verbose=True)
    features = index_features(150)
    np.testing.assert_array_equal(quiet.evaluate(features), loud.evaluate(features))


def test_extract_window_zero_pads_out_of_range():
    seq = np.arange(10, dtype=np.float32).reshape(5, 2) + 1

    left = extract_window(seq, -2, 3)
    assert left.shape == (5, 2)
    np.testing.assert_array_equal(left[:2], 0)
    np.testing.assert_array_equal(left[2:], seq[:3])

    right = extract_window(seq, 3, 7)
    np.testing.assert_array_equal(right[:2], seq[3:])
    np.testing.assert_array_equal(right[2:], 0)

    outside = extract_window(seq, 6, 8)
    np.testing.assert_array_equal(outside, np.zeros((2, 2)))


def test_pad_sequence():
    seq = np.arange(6, dtype=np.float32).reshape(3, 2)

    padded = pad_sequence(seq, 6)
    assert padded.shape == (6, 2)
    np.testing.assert_array_equal(padded[3:], np.repeat(seq[-1:], 3, axis=0))

    odd = pad_sequence(np.ones((7, 2), dtype=np.float32), 6)
    assert odd.shape == (8, 2)
    np.testing.assert_array_equal(odd[-1], 0)

    even = np.ones((8, 2), dtype=np.float32)
    assert pad_sequence(even, 6) is even


def test_quantization_round_trip():
    params = QuantizationParams(scale=0.1, zero_point=-3)
    lo, hi = params.representable_range
    values = np.linspace(lo, hi, 500, dtype=np.float32)

    restored = params.dequantize(params.quantize(values))
    assert np.all(np.abs(restored - values) <= params.scale + 1e-6)


def test_quantization_saturates_and_rounds_half_up():
    params = QuantizationParams(scale=1.0, zero_point=0)
    np.testing.assert_array_equal(
        params.quantize([1000.0, -1000.0, 0.5, -0.5, 1.4]),
        np.array([127, -128, 1, 0, 1], dtype=np.int8)
    )
    with pytest.raises(InvalidParameter):
        QuantizationParams(scale=0.0)


def test_classifier_decoder_error_is_wrapped():
    class AdapterError(FrameEchoClassifier):
        def run(self, window):
            self.calls += 1
            raise ShapeMismatch("adapter")

    classifier = AdapterError()
    engine = WindowedQuantizedInferenceEngine(classifier, context_length=CONTEXT)
    with pytest.raises(InferenceFailure) as excinfo:
        engine.evaluate(index_features(50))

    assert classifier.calls == 1
    assert excinfo.value.window_index == 0
    assert isinstance(excinfo.value.__cause__, ShapeMismatch)


def test_extra_output_steps_are_rejected():
    class Overlong(FrameEchoClassifier):
        def run(self, window):
            out = super().run(window)
            return np.concatenate([out, out[:, :, :3]], axis=2)

    engine = WindowedQuantizedInferenceEngine(Overlong(), context_length=CONTEXT)
    with pytest.raises(ShapeMismatch):
        engine.evaluate(index_features(100))
