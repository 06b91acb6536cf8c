"""
Quantized classifier handles.

The inference engine talks to any object following the Classifier protocol:
fixed input shape (1, window_length, feature_dim), output shape
(1, 1, output_steps, num_classes), int8 tensors in and out, and the
quantization parameters of both ends.

TorchClassifier binds a float torch model behind that interface by
dequantizing the int8 window, running the model and requantizing its output.
"""

from pathlib import Path
from typing import Optional, Protocol, Tuple

import numpy as np
import torch
import torch.nn as nn

from .errors import ShapeMismatch
from .quantization import QuantizationParams
from .utils import console


class Classifier(Protocol):
    input_shape: Tuple[int, int, int]
    output_shape: Tuple[int, int, int, int]
    input_quantization: QuantizationParams
    output_quantization: QuantizationParams

    def run(self, window: np.ndarray) -> np.ndarray:
        ...


def describe(classifier) -> dict:
    """Summarize input/output tensor info of a classifier handle."""
    return {
        'input_shape': tuple(classifier.input_shape),
        'output_shape': tuple(classifier.output_shape),
        'input_scale': classifier.input_quantization.scale,
        'input_zero_point': classifier.input_quantization.zero_point,
        'output_scale': classifier.output_quantization.scale,
        'output_zero_point': classifier.output_quantization.zero_point,
    }


class TorchClassifier:
    """
    Run a float torch model as an int8 classifier.

    The model receives a (1, window_length, feature_dim) float tensor and must
    return (1, output_steps, num_classes) or (1, 1, output_steps, num_classes).

    Usage:
        clf = TorchClassifier(model, window_length=296, feature_dim=39,
                              output_steps=148, num_classes=29,
                              input_quantization=QuantizationParams(0.0625, 0),
                              output_quantization=QuantizationParams(0.25, 0))
        raw = clf.run(quantized_window)   # int8 (1, 1, 148, 29)
    """

    def __init__(
        self,
        model: nn.Module,
        window_length: int,
        feature_dim: int,
        output_steps: int,
        num_classes: int,
        input_quantization: QuantizationParams,
        output_quantization: QuantizationParams,
        device: Optional[str] = None
    ):
        if device is None:
            if torch.cuda.is_available():
                device = 'cuda'
            elif hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
                device = 'mps'
            else:
                device = 'cpu'

        self.device = torch.device(device)
        self.model = model.to(self.device)
        self.model.eval()

        self.input_shape = (1, window_length, feature_dim)
        self.output_shape = (1, 1, output_steps, num_classes)
        self.input_quantization = input_quantization
        self.output_quantization = output_quantization

    @classmethod
    def from_config(cls, model: nn.Module, config: dict, device: Optional[str] = None) -> 'TorchClassifier':
        """Build from the 'model' config section (output steps = window_length / 2)."""
        model_cfg = config['model']
        window_length = model_cfg['window_length']
        return cls(
            model,
            window_length=window_length,
            feature_dim=model_cfg['feature_dim'],
            output_steps=model_cfg.get('output_steps', window_length // 2),
            num_classes=model_cfg['num_classes'],
            input_quantization=QuantizationParams.from_dict(model_cfg, 'input'),
            output_quantization=QuantizationParams.from_dict(model_cfg, 'output'),
            device=device,
        )

    @classmethod
    def from_torchscript(cls, model_path: str, config: dict, device: Optional[str] = None) -> 'TorchClassifier':
        """Load a TorchScript file and bind it with the given config."""
        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"Model not found: {path}")

        console.log(f"Loading TorchScript model from: {path}")
        model = torch.jit.load(str(path), map_location='cpu')
        return cls.from_config(model, config, device=device)

    def run(self, window: np.ndarray) -> np.ndarray:
        """
        Evaluate one quantized window.

        Args:
            window: int8 array of shape input_shape

        Returns:
            int8 array of shape output_shape
        """
        window = np.asarray(window)
        if window.shape != self.input_shape:
            raise ShapeMismatch(f"expected input {self.input_shape}, got {window.shape}")

        x = torch.from_numpy(self.input_quantization.dequantize(window)).to(self.device)

        with torch.no_grad():
            y = self.model(x)

        y = y.detach().float().cpu().numpy()
        if y.ndim == 3:
            y = y[:, None]
        if y.shape != self.output_shape:
            raise ShapeMismatch(f"expected model output {self.output_shape}, got {y.shape}")

        return self.output_quantization.quantize(y)
