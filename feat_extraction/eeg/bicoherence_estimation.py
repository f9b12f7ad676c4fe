"""
Direct (FFT based) estimation of the bispectrum and bicoherence of an epoch.

The epoch is cut into K segments, each segment is demeaned, Hann-windowed
and transformed; the triple products X(f1) X(f2) X*(f1+f2) are averaged over
the segments. Only frequencies up to fc are kept, which gives a square
matrix indexed by (f1, f2).
"""

from functools import partial

import numpy as np

from feat_extraction.config import BICOHERENCE_FC, BICOHERENCE_SEGMENTS
from feat_extraction.epochs.epoch_segmentation import (
    hann_window, labels_of, map_epochs, partition_signal, resolve_epochs,
)
from feat_extraction.errors import ConfigurationError, ShapeError


def _frequency_bins(fs, segment_length, fc):
    if segment_length < 1:
        raise ShapeError("Epoch is shorter than the requested number of segments.")
    if fc <= 0 or fc >= fs / 2:
        raise ConfigurationError(f"fc must lie in (0, fs/2), got fc={fc} Hz for fs={fs} Hz.")
    n_bins = int(np.floor(fc * segment_length / fs)) + 1
    if n_bins < 2:
        raise ConfigurationError(
            f"Frequency resolution {fs / segment_length:.3f} Hz is too coarse for fc={fc} Hz; use fewer segments.")
    return n_bins


def estimate_bicoherence(x, fs, n_segments=BICOHERENCE_SEGMENTS, fc=BICOHERENCE_FC, normalize=True):
    """
    Estimate the bicoherence (or bispectrum) of one epoch.

    Args:
        x (array_like): epoch samples
        fs (float): sampling frequency in Hz
        n_segments (int): number of segments averaged in the estimate
        fc (float): upper bound of the frequency axis in Hz
        normalize (bool): return the bicoherence in [0, 1] instead of the complex bispectrum

    Returns:
        tuple: (matrix of shape (n, n), frequency axis of length n in Hz)
    """
    x = np.asarray(x, dtype=float).ravel()
    if n_segments < 1:
        raise ConfigurationError(f"Number of segments must be at least 1, got {n_segments}.")
    segment_length = len(x) // n_segments
    n_bins = _frequency_bins(fs, segment_length, fc)

    segments = partition_signal(x, n_segments, segment_length)
    segments = (segments - segments.mean(axis=1, keepdims=True)) * hann_window(segment_length)
    spectra = np.fft.fft(segments, axis=1)

    idx = np.arange(n_bins)
    f1, f2 = np.meshgrid(idx, idx, indexing="ij")
    X1 = spectra[:, f1]
    X2 = spectra[:, f2]
    X12 = spectra[:, f1 + f2]

    bispectrum = np.mean(X1 * X2 * np.conj(X12), axis=0)
    freq = idx * fs / segment_length
    if not normalize:
        return bispectrum, freq

    numerator = np.abs(bispectrum) ** 2
    denominator = np.mean(np.abs(X1 * X2) ** 2, axis=0) * np.mean(np.abs(X12) ** 2, axis=0)
    bicoherence = np.divide(numerator, denominator, out=np.zeros_like(numerator), where=denominator > 0)
    return bicoherence, freq


def _epoch_bicoherence(epoch, n_segments, fc, normalize):
    return estimate_bicoherence(epoch.samples, epoch.fs, n_segments, fc, normalize)[0]


def bicoherence_table(epochs, n_segments=BICOHERENCE_SEGMENTS, fc=BICOHERENCE_FC, channel=None,
                      normalize=True, n_jobs=1):
    """
    Estimate the bicoherence matrix of every epoch of a channel.

    The output is what extract_bispectrum_features expects: one matrix per
    epoch, the labels in epoch order, and the shared frequency axis.
    """
    epochs = resolve_epochs(epochs, channel)
    if not epochs:
        return [], [], np.array([])

    first = epochs[0]
    segment_length = len(first.samples) // n_segments
    freq = np.arange(_frequency_bins(first.fs, segment_length, fc)) * first.fs / segment_length

    func = partial(_epoch_bicoherence, n_segments=n_segments, fc=fc, normalize=normalize)
    matrices = map_epochs(func, epochs, n_jobs)
    return matrices, labels_of(epochs), freq
