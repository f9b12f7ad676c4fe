"""
Prefiltering of PSG channels before feature extraction.
"""

import numpy as np
from scipy import signal as sig

from feat_extraction.config import BANDPASS_HIGH, BANDPASS_LOW, BANDPASS_ORDER
from feat_extraction.epochs.epoch_segmentation import EpochTable
from feat_extraction.errors import ConfigurationError


def bandpass_filter(signal_data, fs, low_cutoff=BANDPASS_LOW, high_cutoff=BANDPASS_HIGH, order=BANDPASS_ORDER):
    """
    Apply a zero-phase Butterworth bandpass filter.

    Parameters:
    -----------
    signal_data : numpy.ndarray
        Signal with shape [n_samples] or [n_channels, n_samples]
    fs : float
        Sampling frequency in Hz
    low_cutoff : float, optional
        Lower cutoff frequency in Hz, default 0.5 Hz
    high_cutoff : float, optional
        Higher cutoff frequency in Hz, default 45 Hz
    order : int, optional
        Filter order, default 4

    Returns:
    --------
    numpy.ndarray
        Filtered signal with same shape as input
    """
    nyquist = fs / 2
    if not 0 < low_cutoff < high_cutoff < nyquist:
        raise ConfigurationError(
            f"Band {low_cutoff}-{high_cutoff} Hz is not valid for a sampling frequency of {fs} Hz.")

    b, a = sig.butter(order, [low_cutoff / nyquist, high_cutoff / nyquist], btype='band')
    return sig.filtfilt(b, a, np.asarray(signal_data, dtype=float), axis=-1)


def prefilter_table(table, channels, low_cutoff=BANDPASS_LOW, high_cutoff=BANDPASS_HIGH, order=BANDPASS_ORDER):
    """
    Bandpass the continuous recording of the given channels and cut it back into epochs.

    Channels that are not listed are copied unchanged.
    """
    names = {table.channel_name(ch) for ch in channels}
    signals = {}
    for name, epochs in table.signals.items():
        if name in names:
            filtered = bandpass_filter(epochs.ravel(), table.fs[name], low_cutoff, high_cutoff, order)
            signals[name] = filtered.reshape(epochs.shape)
        else:
            signals[name] = epochs
    return EpochTable(signals=signals, fs=table.fs, labels=table.labels, epoch_duration=table.epoch_duration)
