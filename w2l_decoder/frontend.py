"""
MFCC front end: waveform or WAV file -> base MFCC matrix (n_mfcc, frames).
"""

from typing import Optional

import numpy as np
import torch
import torchaudio
import torchaudio.transforms as T


class MfccFrontend:
    """
    Compute base MFCCs with torchaudio.

    Usage:
        frontend = MfccFrontend.from_config(config)
        mfcc = frontend.from_file('test.wav')   # (13, frames)
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        n_mfcc: int = 13,
        n_fft: int = 512,
        n_mels: int = 128,
        hop_length: int = 160
    ):
        self.sample_rate = sample_rate
        self.n_mfcc = n_mfcc
        self.mfcc_transform = T.MFCC(
            sample_rate=sample_rate,
            n_mfcc=n_mfcc,
            melkwargs={
                'n_fft': n_fft,
                'n_mels': n_mels,
                'hop_length': hop_length,
            }
        )

    @classmethod
    def from_config(cls, config: dict) -> 'MfccFrontend':
        audio_cfg = config.get('audio', {})
        return cls(
            sample_rate=audio_cfg.get('sample_rate', 16000),
            n_mfcc=audio_cfg.get('n_mfcc', 13),
            n_fft=audio_cfg.get('n_fft', 512),
            n_mels=audio_cfg.get('n_mels', 128),
            hop_length=audio_cfg.get('hop_length', 160),
        )

    def from_waveform(self, audio: np.ndarray, sample_rate: Optional[int] = None) -> np.ndarray:
        """
        Compute MFCCs for a mono waveform.

        Args:
            audio: 1D float array
            sample_rate: Rate of audio; resampled if it differs from self.sample_rate

        Returns:
            mfcc: (n_mfcc, frames) float64 array
        """
        waveform = torch.as_tensor(np.asarray(audio, dtype=np.float32)).reshape(1, -1)

        if sample_rate is not None and sample_rate != self.sample_rate:
            waveform = T.Resample(sample_rate, self.sample_rate)(waveform)

        mfcc = self.mfcc_transform(waveform)   # (1, n_mfcc, frames)
        return mfcc.squeeze(0).double().numpy()

    def from_file(self, audio_path: str) -> np.ndarray:
        """Load a WAV file, down-mix to mono and compute MFCCs."""
        waveform, sr = torchaudio.load(audio_path)

        # Convert to mono
        if waveform.shape[0] > 1:
            waveform = torch.mean(waveform, dim=0, keepdim=True)

        return self.from_waveform(waveform.squeeze(0).numpy(), sample_rate=sr)
