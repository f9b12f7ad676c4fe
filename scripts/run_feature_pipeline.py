#!/usr/bin/env python3
"""
Extract bicoherence, cepstral and MRA features from the PSG recordings of a
range of patients and store one feature file per patient.

Example:
    python scripts/run_feature_pipeline.py --input_dir Input --output_dir features --first 1 --last 10
"""

import argparse

from feat_extraction.config import ExtractionConfig, WaveletConfig
from feat_extraction.pipeline import run_batch

# --- Script parameters ---
FIRST_PATIENT = 1
LAST_PATIENT = 154
INPUT_DIR = "Input"
OUTPUT_DIR = "features"


def build_config(args):
    config = ExtractionConfig()
    changes = {
        "verbose": not args.quiet,
        "prefilter": not args.no_prefilter,
        "n_jobs": args.n_jobs,
    }
    if args.channels:
        changes["channels"] = tuple(args.channels)
    if args.dt is not None:
        changes["cepstrum_dt"] = args.dt
    if args.segments is not None:
        changes["bicoherence_segments"] = args.segments
    if args.fc is not None:
        changes["bicoherence_fc"] = args.fc
    if args.wavelet is not None:
        changes["wavelet"] = WaveletConfig(wavelet=args.wavelet, transform=config.wavelet.transform)
    return config.updated(**changes)


def main():
    parser = argparse.ArgumentParser(description="PSG feature extraction for sleep stage scoring")
    parser.add_argument('--input_dir', default=INPUT_DIR, help='Directory with SNxxx.edf recordings')
    parser.add_argument('--output_dir', default=OUTPUT_DIR, help='Directory for the feature files')
    parser.add_argument('--first', type=int, default=FIRST_PATIENT, help='First patient')
    parser.add_argument('--last', type=int, default=LAST_PATIENT, help='Last patient')
    parser.add_argument('--channels', nargs='+', default=None, help='EEG channels to process')
    parser.add_argument('--dt', type=float, default=None, help='Cepstrum partition duration (s)')
    parser.add_argument('--segments', type=int, default=None, help='Segments per bicoherence estimate')
    parser.add_argument('--fc', type=float, default=None, help='Upper frequency of the bicoherence matrices (Hz)')
    parser.add_argument('--wavelet', default=None, help='Wavelet used for the MRA')
    parser.add_argument('--n_jobs', type=int, default=1, help='Parallel workers per channel')
    parser.add_argument('--no_prefilter', action='store_true', help='Skip the bandpass prefilter')
    parser.add_argument('--quiet', action='store_true', help='Only report errors')
    args = parser.parse_args()

    config = build_config(args)
    status = run_batch(range(args.first, args.last + 1), args.input_dir, args.output_dir, config)

    failed = {pid: s for pid, s in status.items() if s.startswith("failed")}
    for pid, s in failed.items():
        print(f"Patient {pid}: {s}")
    return 1 if failed else 0


if __name__ == '__main__':
    raise SystemExit(main())
