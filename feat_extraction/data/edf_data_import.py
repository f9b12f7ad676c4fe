"""
Loading of PSG recordings (EDF) and their hypnograms (EDF+ annotations or
NSRR XML) into an EpochTable.
"""

from pathlib import Path

import mne
import numpy as np

from feat_extraction.config import EPOCH_SEC_LENGTH
from feat_extraction.data.xml_data_import import read_xml_labels
from feat_extraction.epochs.epoch_segmentation import (
    UNSCORED, EpochTable, normalize_stage_label, stage_counts,
)


def annotations_to_epoch_labels(annotations, epoch_duration=EPOCH_SEC_LENGTH):
    """
    Expand stage annotations into one label per epoch.

    Every annotation whose description is a sleep stage fills the epochs it
    covers (onset and duration are rounded to whole epochs). Other
    annotations, e.g. light changes, are ignored. Epochs that no stage
    annotation covers are 'unscored'.

    Parameters:
      annotations    : mne.Annotations (or any object with onset, duration
                       and description sequences).
      epoch_duration : epoch length in seconds.

    Returns:
      labels : list of str
    """
    stages = []
    for onset, duration, description in zip(annotations.onset, annotations.duration, annotations.description):
        label = normalize_stage_label(description)
        if label == UNSCORED:
            continue
        first = int(round(onset / epoch_duration))
        count = int(round(duration / epoch_duration))
        if count > 0:
            stages.append((first, count, label))

    if not stages:
        return []

    n_epochs = max(first + count for first, count, _ in stages)
    labels = [UNSCORED] * n_epochs
    for first, count, label in stages:
        labels[first:first + count] = [label] * count
    return labels


def read_stage_labels(hypnogram_path, epoch_duration=EPOCH_SEC_LENGTH):
    """Read per-epoch labels from an EDF+ hypnogram or an NSRR XML file."""
    hypnogram_path = Path(hypnogram_path)
    if hypnogram_path.suffix.lower() == ".xml":
        return read_xml_labels(hypnogram_path, epoch_duration)
    annotations = mne.read_annotations(hypnogram_path)
    return annotations_to_epoch_labels(annotations, epoch_duration)


def load_recording(edf_path, hypnogram_path=None, channels=None, epoch_duration=EPOCH_SEC_LENGTH,
                   units="uV", verbose=True):
    """
    Load a PSG recording and its hypnogram as an EpochTable.

    Parameters:
      edf_path       : path of the EDF file with the signals.
      hypnogram_path : EDF+ or XML file with the sleep stages. If None the
                       annotations stored in the EDF file itself are used;
                       without any stage annotation every epoch is 'unscored'.
      channels       : channel names to keep (default: all channels).
      epoch_duration : epoch length in seconds.
      units          : physical units passed to mne's get_data.
      verbose        : print progress messages.

    Returns:
      EpochTable with one entry per requested channel. Signals and labels are
      truncated to the same number of whole epochs.
    """
    edf_path = Path(edf_path)
    if not edf_path.is_file():
        raise FileNotFoundError(f"EDF file not found: {edf_path}")

    if verbose:
        print(f"Loading EDF: {edf_path}")
    raw = mne.io.read_raw_edf(edf_path, preload=True, verbose='WARNING')

    if channels is None:
        channels = list(raw.ch_names)
    channels = list(channels)
    missing_channels = [ch for ch in channels if ch not in raw.ch_names]
    if missing_channels:
        raise KeyError(f"Requested channels {missing_channels} not found in {edf_path}. "
                       f"Available channels: {raw.ch_names}")

    raw_picked = raw.copy().pick(channels)
    data = raw_picked.get_data(units=units)
    fs = float(raw.info['sfreq'])

    if hypnogram_path is not None:
        if verbose:
            print(f"Loading hypnogram: {hypnogram_path}")
        labels = read_stage_labels(hypnogram_path, epoch_duration)
    else:
        labels = annotations_to_epoch_labels(raw.annotations, epoch_duration)

    n_whole_epochs = data.shape[1] // int(round(epoch_duration * fs))
    if not labels:
        labels = [UNSCORED] * n_whole_epochs
    if len(labels) != n_whole_epochs and verbose:
        print(f"Warning: {len(labels)} scored epochs for {n_whole_epochs} recorded epochs, "
              f"keeping the first {min(len(labels), n_whole_epochs)}.")

    table = EpochTable.from_signals(
        signals={name: data[i] for i, name in enumerate(channels)},
        fs=fs,
        labels=labels,
        epoch_duration=epoch_duration,
    )

    if verbose:
        print(f"  Extracted {len(channels)} channels, {len(table)} epochs at {fs:g} Hz")
        counts = stage_counts(table.labels)
        print("  Stage distribution: " + ", ".join(f"{stage}: {count}" for stage, count in counts.items()))
    return table


def channel_signal(table, channel):
    """Concatenate the epochs of one channel back into a continuous signal."""
    return np.asarray(table.signals[table.channel_name(channel)]).ravel()
