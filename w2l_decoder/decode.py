#!/usr/bin/env python3
"""
Decode speech with a quantized wav2letter-style model.

Usage:
    # From a WAV file
    python -m w2l_decoder.decode --model tiny_wav2letter.pt --audio test.wav

    # From a precomputed MFCC matrix (n_mfcc x frames .npy)
    python -m w2l_decoder.decode --model tiny_wav2letter.pt --features mfcc.npy
"""

import argparse
import sys
from pathlib import Path

import numpy as np
from rich.console import Console
from rich.table import Table

from .errors import DecoderError
from .pipeline import SpeechDecoder
from .utils import load_config


console = Console()


def main(argv=None):
    parser = argparse.ArgumentParser(description='Greedy CTC decoding with a quantized model')
    parser.add_argument('--model', '-m', type=str, required=True,
                        help='Path to TorchScript model')
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--audio', '-a', type=str,
                        help='Path to WAV file')
    source.add_argument('--features', '-f', type=str,
                        help='Path to .npy MFCC matrix (n_mfcc x frames)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML config (defaults to the packaged config.yaml)')
    parser.add_argument('--no-merge', action='store_true',
                        help='Keep repeated labels instead of merging them')
    parser.add_argument('--device', type=str, choices=['cpu', 'cuda', 'mps'],
                        help='Device to use')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log window spans and per-step decisions')

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.no_merge:
            config['decoder']['merge_repeated'] = False

        decoder = SpeechDecoder.from_torchscript(args.model, config, device=args.device,
                                                 verbose=args.verbose)

        if args.audio:
            console.print(f"\nTranscribing: {args.audio}")
            result = decoder.transcribe_file(args.audio)
        else:
            path = Path(args.features)
            if not path.exists():
                raise FileNotFoundError(f"Features not found: {path}")
            console.print(f"\nDecoding features: {path}")
            result = decoder.transcribe_features(np.load(path))

    except (DecoderError, FileNotFoundError, RuntimeError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    table = Table(show_header=False)
    table.add_row("Text", f"[bold green]{result.text}[/bold green]")
    table.add_row("Labels", ", ".join(str(t) for t in result.tokens))
    table.add_row("Steps", str(result.num_steps))
    table.add_row("Score", f"{result.score:.4f}")
    console.print(table)


if __name__ == '__main__':
    main()
