"""
Multi-resolution analysis (MRA) of a whole recording and sliding-window
higher order statistics of every frequency scale.

1) The recording is decomposed into L detail scales plus the residual
   approximation. The scales are additive: their sum is the recording.
   Scale i (1 = finest) covers fs/2^(i+1) - fs/2^i Hz, the last scale
   covers 0 - fs/2^(L+1) Hz.
2) An approximation of the recording is rebuilt from the selected scales.
3) For every selected scale the standard deviation, skewness and kurtosis
   are estimated in consecutive 30 s windows, one window per hypnogram
   label.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd
import pywt
from scipy import stats

from feat_extraction.config import DEGENERATE_MOMENT_VALUE, EPOCH_SEC_LENGTH, FS, WaveletConfig
from feat_extraction.errors import ConfigurationError, ShapeError

MOMENT_FEATURES = ("std", "skewness", "kurtosis")
_TRANSFORMS = ("swt", "dwt")


def scale_frequency_bounds(fs, level) -> List[Tuple[float, float]]:
    """
    Frequency band (f_low, f_high) in Hz of every scale, finest first.

    E.g. fs = 256 Hz and level = 6 gives 64-128, 32-64, ..., 2-4, 0-2 Hz.
    """
    freq = (fs / 2) * 2.0 ** -np.arange(level + 1)
    freq = np.append(freq, 0.0)
    return [(float(freq[i + 1]), float(freq[i])) for i in range(level + 1)]


@dataclass(frozen=True)
class ScaleDecomposition:
    """
    Additive frequency scales of a signal.

    bands has shape (level + 1, n_samples): rows 0 .. level-1 are the detail
    scales from finest to coarsest, the last row is the residual
    approximation.
    """
    bands: np.ndarray
    fs: float
    level: int
    wavelet: str = "db2"

    def __post_init__(self):
        bands = np.array(self.bands, dtype=float)
        if bands.ndim != 2 or bands.shape[0] != self.level + 1:
            raise ShapeError(f"Expected {self.level + 1} scales, got an array of shape {bands.shape}.")
        bands.flags.writeable = False
        object.__setattr__(self, "bands", bands)

    @property
    def n_scales(self):
        return self.bands.shape[0]

    def frequency_bounds(self):
        return scale_frequency_bounds(self.fs, self.level)


def check_selection_mask(selection_mask):
    """
    Validate a reconstruction mask and return it with the decomposition level.

    The mask holds one flag per scale (finest first), so level = len(mask) - 1.
    At least one decomposition level and at least one selected scale are
    required.
    """
    mask = np.asarray(selection_mask, dtype=bool).ravel()
    level = len(mask) - 1
    if level < 1:
        raise ConfigurationError("MRA requires at least one decomposition level (a mask of 2 or more scales).")
    if not mask.any():
        raise ConfigurationError("Select at least one frequency scale.")
    return mask, level


def mra_decompose(signal, level, wavelet_config=None, fs=FS):
    """
    Decompose a signal into level + 1 additive scales.

    Args:
        signal (array_like): full-length single channel recording
        level (int): number of decomposition levels L (>= 1)
        wavelet_config (WaveletConfig): wavelet name and transform ('swt' or 'dwt')
        fs (float): sampling frequency, stored for the frequency bounds

    Returns:
        ScaleDecomposition: finest detail first, approximation last
    """
    if wavelet_config is None:
        wavelet_config = WaveletConfig()
    if level < 1:
        raise ConfigurationError("MRA requires at least one decomposition level.")
    if wavelet_config.transform not in _TRANSFORMS:
        raise ConfigurationError(f"Unknown transform '{wavelet_config.transform}', use one of {_TRANSFORMS}.")

    x = np.asarray(signal, dtype=float).ravel()
    n = len(x)
    if n == 0:
        raise ShapeError("Cannot decompose an empty signal.")

    if wavelet_config.transform == "swt":
        # The stationary transform needs a length divisible by 2**level
        block = 2 ** level
        padded = int(np.ceil(n / block)) * block
        if padded != n:
            x = np.pad(x, (0, padded - n), mode="symmetric")

    components = pywt.mra(x, wavelet_config.wavelet, level=level, transform=wavelet_config.transform)
    # pywt orders the scales [approximation, coarsest detail, ..., finest detail]
    bands = np.vstack([c[:n] for c in components[:0:-1]] + [components[0][:n]])
    return ScaleDecomposition(bands=bands, fs=fs, level=level, wavelet=wavelet_config.wavelet)


def reconstruct(decomposition, selection_mask):
    """Sum the selected scales of a decomposition."""
    mask = np.asarray(selection_mask, dtype=bool).ravel()
    if len(mask) != decomposition.n_scales:
        raise ConfigurationError(
            f"Selection mask has {len(mask)} entries but the decomposition has {decomposition.n_scales} scales.")
    if not mask.any():
        raise ConfigurationError("Select at least one frequency scale.")
    return decomposition.bands[mask].sum(axis=0)


def window_samples(fs, window_sec):
    samples = int(round(window_sec * fs))
    if samples <= 0:
        raise ConfigurationError(f"A {window_sec} s window at {fs} Hz holds no samples.")
    return samples


def sliding_moments(x, window_length, n_windows, degenerate_value=DEGENERATE_MOMENT_VALUE):
    """
    Mean, variance, standard deviation, skewness and kurtosis of consecutive windows.

    Moments are population moments (divided by the window length). A constant
    window has std = 0; its skewness and kurtosis are set to
    `degenerate_value`, as are those of windows whose spread is so small that
    the moment ratios underflow.

    Parameters:
      x               : 1-D signal with at least n_windows * window_length samples.
      window_length   : samples per window.
      n_windows       : number of windows.
      degenerate_value: skewness / kurtosis reported for degenerate windows.

    Returns:
      dict of 1-D arrays of length n_windows: mean, variance, std, skewness, kurtosis.
    """
    x = np.asarray(x, dtype=float).ravel()
    l, K = int(window_length), int(n_windows)
    if l <= 0 or K <= 0:
        raise ShapeError(f"Need a positive window length and window count, got {l} and {K}.")
    if K * l > len(x):
        raise ShapeError(f"{K} windows of {l} samples need {K * l} samples, the signal has {len(x)}.")

    windows = x[:K * l].reshape(K, l)
    mean = windows.mean(axis=1)
    variance = windows.var(axis=1)
    std = np.sqrt(variance)

    constant = np.ptp(windows, axis=1) == 0
    skewness = np.full(K, degenerate_value, dtype=float)
    kurtosis = np.full(K, degenerate_value, dtype=float)
    varying = ~constant
    if varying.any():
        # m3 / m2**1.5 and m4 / m2**2 are 0/0 once the spread underflows
        with np.errstate(divide="ignore", invalid="ignore", under="ignore"):
            skewness[varying] = stats.skew(windows[varying], axis=1)
            kurtosis[varying] = stats.kurtosis(windows[varying], axis=1, fisher=False)

    degenerate = constant | (std == 0) | ~np.isfinite(skewness) | ~np.isfinite(kurtosis)
    skewness[degenerate] = degenerate_value
    kurtosis[degenerate] = degenerate_value

    return {
        "mean": mean,
        "variance": np.where(constant, 0.0, variance),
        "std": np.where(constant, 0.0, std),
        "skewness": skewness,
        "kurtosis": kurtosis,
    }


@dataclass(frozen=True)
class MRAResult:
    """Decomposition, reconstructed approximation and sliding statistics of one recording."""
    decomposition: ScaleDecomposition
    selection_mask: np.ndarray
    approximation: np.ndarray
    statistics: pd.DataFrame


def run_multiresolution_analysis(signal, fs, wavelet_config, selection_mask, labels,
                                 window_sec=EPOCH_SEC_LENGTH, degenerate_value=DEGENERATE_MOMENT_VALUE):
    """
    Decompose, reconstruct and compute sliding statistics of a recording.

    The configuration (mask, window, signal length) is fully validated before
    the decomposition starts.
    """
    mask, level = check_selection_mask(selection_mask)
    labels = list(labels)
    l = window_samples(fs, window_sec)
    n_windows = len(labels)
    if n_windows == 0:
        raise ConfigurationError("At least one label is required to place the windows.")
    n_samples = np.asarray(signal).size
    if n_windows * l > n_samples:
        raise ShapeError(f"{n_windows} windows of {window_sec} s need {n_windows * l} samples, "
                         f"the signal has {n_samples}.")

    decomposition = mra_decompose(signal, level, wavelet_config, fs)
    approximation = reconstruct(decomposition, mask)
    bounds = decomposition.frequency_bounds()

    frames = []
    window_index = np.arange(n_windows)
    for i in np.flatnonzero(mask):
        moments = sliding_moments(decomposition.bands[i], l, n_windows, degenerate_value)
        f_low, f_high = bounds[i]
        frames.append(pd.DataFrame({
            "scale": i + 1,
            "f_low": f_low,
            "f_high": f_high,
            "window": window_index,
            "time": window_index * float(window_sec),
            **moments,
            "label": labels,
        }))

    statistics = pd.concat(frames, ignore_index=True)
    return MRAResult(decomposition, mask, approximation, statistics)


def compute_multiresolution_statistics(signal, fs, wavelet_config, selection_mask, labels,
                                       window_sec=EPOCH_SEC_LENGTH, degenerate_value=DEGENERATE_MOMENT_VALUE):
    """
    Sliding-window statistics of every selected frequency scale.

    Parameters:
    -----------
    signal : array_like
        Full-length single channel recording.
    fs : float
        Sampling frequency in Hz.
    wavelet_config : WaveletConfig or None
        Wavelet and transform of the decomposition (default db2, swt).
    selection_mask : sequence of bool
        One flag per scale, finest first; len(mask) - 1 decomposition levels.
    labels : sequence of str
        Sleep stage of every window, one window per label.
    window_sec : float, optional
        Window duration in seconds, default 30.
    degenerate_value : float, optional
        Skewness / kurtosis reported for constant windows, default 0.0.

    Returns:
    --------
    pandas.DataFrame
        One row per selected scale and window with columns scale, f_low,
        f_high, window, time, mean, variance, std, skewness, kurtosis, label.
    """
    return run_multiresolution_analysis(signal, fs, wavelet_config, selection_mask, labels,
                                        window_sec, degenerate_value).statistics


def statistics_feature_matrix(statistics):
    """
    Pivot the long statistics table into one row per window.

    Columns are std_s{i}, skewness_s{i}, kurtosis_s{i} for every scale i,
    followed by label.
    """
    wide = statistics.pivot(index="window", columns="scale", values=list(MOMENT_FEATURES))
    wide.columns = [f"{stat}_s{scale}" for stat, scale in wide.columns]
    wide["label"] = statistics.groupby("window")["label"].first()
    return wide.reset_index(drop=True)
