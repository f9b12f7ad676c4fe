"""
Feature extraction for whole recordings and batches of patients.

For every configured EEG channel the following features are computed per
30 s epoch and joined column-wise:

  1) MRA features: std, skewness and kurtosis of every selected scale
  2) Bicoherence features: ent1, ent2, ent3, H1, H2
  3) Cepstral features: the first cepstral coefficients

A batch run processes patients one after the other; a patient whose files
are missing or whose extraction fails is reported and skipped.
"""

import re
import time
from pathlib import Path

import pandas as pd

from feat_extraction.config import ExtractionConfig
from feat_extraction.data.edf_data_import import channel_signal, load_recording
from feat_extraction.data.feature_export import save_feature_matrix
from feat_extraction.eeg.bicoherence_estimation import bicoherence_table
from feat_extraction.eeg.bispectrum_features import extract_bispectrum_features
from feat_extraction.eeg.cepstrum_features import cepstrum_matrix, extract_cepstrum
from feat_extraction.eeg.mra_statistics import compute_multiresolution_statistics, statistics_feature_matrix
from feat_extraction.preprocessing import prefilter_table

EDF_PATTERN = "SN{:03d}.edf"
HYPNOGRAM_PATTERN = "SN{:03d}_sleepscoring.edf"
FEATURE_FILE_PATTERN = "{:03d}.mat"


def channel_prefix(channel):
    """Column prefix of a channel, e.g. 'EEG F4-M1' -> 'EEG_F4_M1'."""
    return re.sub(r"[^0-9A-Za-z]+", "_", str(channel)).strip("_")


def extract_channel_features(table, channel, config):
    """
    MRA, bicoherence and cepstral features of one channel, one row per epoch.

    Returns:
        pd.DataFrame without label column; columns are prefixed with the channel name.
    """
    name = table.channel_name(channel)
    fs = table.fs[name]
    epochs = table.select(name)

    stats = compute_multiresolution_statistics(
        channel_signal(table, name), fs, config.wavelet, config.selection_mask, table.labels,
        window_sec=table.epoch_duration, degenerate_value=config.degenerate_value)
    mra_features = statistics_feature_matrix(stats).drop(columns="label")

    matrices, labels, _ = bicoherence_table(
        epochs, config.bicoherence_segments, config.bicoherence_fc, n_jobs=config.n_jobs)
    bis_features = extract_bispectrum_features(matrices, labels, config.epsilon, config.n_jobs).drop(columns="label")

    ceps_table, _ = extract_cepstrum(
        epochs, fs, config.cepstrum_dt, epoch_duration=table.epoch_duration,
        kind=config.cepstrum_kind, n_jobs=config.n_jobs)
    coefficients = cepstrum_matrix(ceps_table, config.n_cepstral_coefficients)
    ceps_features = pd.DataFrame(coefficients, columns=[f"cep{i + 1}" for i in range(coefficients.shape[1])])

    features = pd.concat([mra_features, bis_features, ceps_features], axis=1)
    features.columns = [f"{channel_prefix(name)}_{col}" for col in features.columns]
    return features


def extract_patient_features(table, config=None):
    """
    Feature table of a whole recording.

    Args:
        table (EpochTable): epochs of the recording
        config (ExtractionConfig): run parameters; config.channels selects the channels

    Returns:
        pd.DataFrame: one row per epoch, feature columns followed by 'label'
    """
    if config is None:
        config = ExtractionConfig()

    frames = []
    for channel in config.channels:
        if config.verbose:
            print(f"  Extracting features from {channel} ...")
        frames.append(extract_channel_features(table, channel, config))

    features = pd.concat(frames, axis=1)
    features["label"] = list(table.labels)
    return features


def process_patient(patient_id, input_dir, output_dir, config=None):
    """
    Load, prefilter and extract the features of one patient and save them to disk.

    Returns:
        Path of the written feature file.
    """
    if config is None:
        config = ExtractionConfig()
    input_dir = Path(input_dir)
    edf_path = input_dir / EDF_PATTERN.format(patient_id)
    hypnogram_path = input_dir / HYPNOGRAM_PATTERN.format(patient_id)

    table = load_recording(
        edf_path,
        hypnogram_path if hypnogram_path.is_file() else None,
        channels=config.channels,
        epoch_duration=config.epoch_duration,
        verbose=config.verbose,
    )

    if config.prefilter:
        if config.verbose:
            print("  Prefiltering ...")
        low, high = config.bandpass
        table = prefilter_table(table, config.channels, low, high, config.bandpass_order)

    features = extract_patient_features(table, config)
    columns = [col for col in features.columns if col != "label"]
    output_path = Path(output_dir) / FEATURE_FILE_PATTERN.format(patient_id)
    save_feature_matrix(output_path, features[columns].to_numpy(), features["label"], columns)
    if config.verbose:
        print(f"  Features saved to {output_path}")
    return output_path


def run_batch(patient_ids, input_dir, output_dir, config=None):
    """
    Extract and save the features of several patients.

    A patient without an EDF file is skipped; an exception raised while
    processing a patient is reported and the batch continues with the next
    one.

    Returns:
        dict: patient id -> 'ok', 'missing' or 'failed: <reason>'
    """
    if config is None:
        config = ExtractionConfig()

    status = {}
    for patient_id in patient_ids:
        edf_path = Path(input_dir) / EDF_PATTERN.format(patient_id)
        if not edf_path.is_file():
            status[patient_id] = "missing"
            continue

        if config.verbose:
            print(f"--- Processing Patient {patient_id} ---")
        start = time.time()
        try:
            process_patient(patient_id, input_dir, output_dir, config)
        except Exception as e:
            print(f"  Error while processing patient {patient_id}: {e}. Skipping.")
            status[patient_id] = f"failed: {e}"
            continue
        status[patient_id] = "ok"
        if config.verbose:
            print(f"  Done in {time.time() - start:.1f} s\n")

    if config.verbose:
        n_ok = sum(1 for s in status.values() if s == "ok")
        print(f"Processed {n_ok} of {len(status)} patients.")
    return status
