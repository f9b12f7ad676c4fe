"""
Cepstral coefficients of EEG / ECG epochs.

Every 30 s epoch is cut into K partitions of dt seconds (M samples each).
Each partition is Hann-windowed and its cepstrum is estimated; the K
cepstra are averaged to obtain one coefficient vector per epoch.

Two estimators are available:

  real    : real(ifft(log|fft(x)|))
  complex : the complex cepstrum, i.e. the log-magnitude plus the unwrapped
            phase with its linear trend removed (same convention as MATLAB's
            cceps)
"""

from functools import partial

import numpy as np
import pandas as pd

from feat_extraction.config import CEPSTRUM_KIND, EPOCH_SEC_LENGTH
from feat_extraction.epochs.epoch_segmentation import labels_of, map_epochs, partition_signal, resolve_epochs
from feat_extraction.errors import ConfigurationError, ShapeError

# Spectral magnitudes are floored here so that log() stays finite on silent partitions
_MIN_MAGNITUDE = np.finfo(float).tiny


def _log_magnitude(spectrum):
    return np.log(np.maximum(np.abs(spectrum), _MIN_MAGNITUDE))


def _round_half_away(x):
    return np.sign(x) * np.floor(np.abs(x) + 0.5)


def real_cepstrum(x, axis=-1):
    """Real cepstrum of x along axis."""
    spectrum = np.fft.fft(np.asarray(x, dtype=float), axis=axis)
    return np.real(np.fft.ifft(_log_magnitude(spectrum), axis=axis))


def _unwrap_without_linear_phase(phase):
    n = phase.shape[-1]
    unwrapped = np.unwrap(phase, axis=-1)
    half = (n + 1) // 2
    # Integer number of pi at the centre bin defines the linear phase term
    nd = _round_half_away(unwrapped[..., half] / np.pi)
    ramp = np.arange(n) / half
    return unwrapped - np.pi * nd[..., np.newaxis] * ramp


def complex_cepstrum(x):
    """
    Complex cepstrum of x (last axis).

    Parameters:
      x : array of shape (..., M) with M >= 2

    Returns:
      Array of the same shape as x.
    """
    x = np.asarray(x, dtype=float)
    if x.shape[-1] < 2:
        raise ShapeError("The complex cepstrum needs at least 2 samples.")
    spectrum = np.fft.fft(x, axis=-1)
    log_spectrum = _log_magnitude(spectrum) + 1j * _unwrap_without_linear_phase(np.angle(spectrum))
    return np.real(np.fft.ifft(log_spectrum, axis=-1))


_ESTIMATORS = {
    "real": real_cepstrum,
    "complex": complex_cepstrum,
}


def partition_counts(fs, dt, epoch_duration=EPOCH_SEC_LENGTH):
    """
    Number of partitions per epoch and samples per partition.

    Returns:
      (K, M) with K = floor(epoch_duration / dt) and M = floor(dt * fs).
    """
    if dt <= 0:
        raise ConfigurationError(f"Partition duration must be positive, got dt={dt}.")
    if dt > epoch_duration:
        raise ConfigurationError(f"Partition duration dt={dt} s exceeds the epoch duration of {epoch_duration} s.")
    K = int(np.floor(epoch_duration / dt))
    M = int(np.floor(dt * fs))
    if K < 1 or M < 1:
        raise ConfigurationError(f"dt={dt} s at fs={fs} Hz gives {K} partitions of {M} samples.")
    return K, M


def quefrency_axis(fs, dt):
    """M evenly spaced quefrencies (s) from 0 to dt."""
    return np.linspace(0, dt, int(np.floor(dt * fs)))


def epoch_cepstrum(samples, n_partitions, partition_length, kind=CEPSTRUM_KIND):
    """
    Partition-averaged cepstrum of one epoch.

    The first K*M samples are cut into K partitions, each multiplied by a
    Hann window; the cepstra of the partitions are averaged.
    """
    if kind not in _ESTIMATORS:
        raise ConfigurationError(f"Unknown cepstrum kind '{kind}'. Choose from {sorted(_ESTIMATORS)}.")
    parts = partition_signal(samples, n_partitions, partition_length, window="hann")
    return _ESTIMATORS[kind](parts).mean(axis=0)


def _cepstrum_of_epoch(epoch, n_partitions, partition_length, kind):
    return epoch_cepstrum(epoch.samples, n_partitions, partition_length, kind)


def extract_cepstrum(epochs, fs=None, dt=5.0, channel=None, epoch_duration=EPOCH_SEC_LENGTH,
                     kind=CEPSTRUM_KIND, n_jobs=1):
    """
    Estimate the cepstral coefficients of every epoch of a channel.

    Parameters:
    -----------
    epochs : EpochTable or list of Epoch
        Input epochs. With an EpochTable, `channel` selects the channel by
        name or by column index.
    fs : float, optional
        Sampling frequency in Hz. Defaults to the sampling frequency of the
        selected epochs.
    dt : float
        Duration of every partition in seconds, e.g. 5.0 gives 6 partitions
        per 30 s epoch.
    channel : str or int, optional
        Selected channel when `epochs` is an EpochTable.
    epoch_duration : float, optional
        Duration of an epoch in seconds, default 30.
    kind : {'real', 'complex'}
        Cepstrum estimator.
    n_jobs : int
        Number of joblib workers.

    Returns:
    --------
    (pandas.DataFrame, numpy.ndarray)
        Table with columns 'cepstrum' (1-D array of M coefficients) and
        'label', and the quefrency axis in seconds.
    """
    epochs = resolve_epochs(epochs, channel)
    if fs is None:
        if not epochs:
            raise ConfigurationError("fs must be given when there are no epochs to infer it from.")
        fs = epochs[0].fs

    K, M = partition_counts(fs, dt, epoch_duration)
    t = quefrency_axis(fs, dt)

    func = partial(_cepstrum_of_epoch, n_partitions=K, partition_length=M, kind=kind)
    cepstra = map_epochs(func, epochs, n_jobs)

    table = pd.DataFrame({
        "cepstrum": pd.Series(cepstra, dtype=object),
        "label": pd.Series(labels_of(epochs), dtype=object),
    })
    return table, t


def cepstrum_matrix(table, n_coefficients=None):
    """Stack the 'cepstrum' column into an array (n_epochs, M), optionally keeping the first coefficients."""
    if len(table) == 0:
        return np.empty((0, n_coefficients or 0))
    matrix = np.vstack(table["cepstrum"].to_list())
    if n_coefficients is not None:
        matrix = matrix[:, :n_coefficients]
    return matrix
