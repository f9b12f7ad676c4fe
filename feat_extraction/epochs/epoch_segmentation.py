"""
Epoch data model and signal segmentation.

An Epoch is one fixed-duration segment (usually 30 s) of a single channel
together with its sleep stage label. An EpochTable holds the epochs of every
channel of one recording, aligned to a single hypnogram.

The module also provides the partitioning step shared by the spectral and
cepstral extractors: an epoch is cut into K equal partitions of M samples,
trailing samples are discarded and an optional window is applied to every
partition.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed
from scipy.signal import get_window

from feat_extraction.config import EPOCH_SEC_LENGTH
from feat_extraction.errors import ShapeError

STAGES = ("W", "N1", "N2", "N3", "R")
UNSCORED = "unscored"

# Annotation text used by EDF+ hypnograms and NSRR XML files
_STAGE_ALIASES = {
    "sleep stage w": "W",
    "sleep stage n1": "N1",
    "sleep stage 1": "N1",
    "sleep stage n2": "N2",
    "sleep stage 2": "N2",
    "sleep stage n3": "N3",
    "sleep stage 3": "N3",
    "sleep stage 4": "N3",
    "sleep stage r": "R",
    "sdo:wakestate": "W",
    "sdo:nonrapideyemovementsleep-n1": "N1",
    "sdo:nonrapideyemovementsleep-n2": "N2",
    "sdo:nonrapideyemovementsleep-n3": "N3",
    "sdo:nonrapideyemovementsleep-n4": "N3",
    "sdo:rapideyemovementsleep": "R",
    "wake": "W",
    "rem": "R",
}


def normalize_stage_label(raw):
    """
    Map an annotation string to one of W, N1, N2, N3, R or 'unscored'.

    Short labels ('W', 'n2', ...) are accepted as well as the long forms
    found in EDF+ hypnograms ('Sleep stage W', 'Sleep stage 4') and NSRR XML
    ('SDO:WakeState'). Stage 4 of the R&K scoring is merged into N3.
    """
    if raw is None:
        return UNSCORED
    text = str(raw).strip()
    if text.upper() in STAGES:
        return text.upper()
    return _STAGE_ALIASES.get(text.lower(), UNSCORED)


@dataclass(frozen=True)
class Epoch:
    """One epoch of one channel."""
    samples: np.ndarray
    fs: float
    label: str
    index: int = 0

    def __post_init__(self):
        samples = np.array(self.samples, dtype=float).ravel()
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    @property
    def duration(self):
        return len(self.samples) / self.fs


@dataclass(frozen=True)
class EpochTable:
    """
    Epochs of a recording, one 2-D array (n_epochs, samples_per_epoch) per channel.

    Channels may be sampled at different rates; `labels` is shared by all of
    them and holds one stage label per epoch.
    """
    signals: Mapping[str, np.ndarray]
    fs: Mapping[str, float]
    labels: Tuple[str, ...]
    epoch_duration: float = EPOCH_SEC_LENGTH

    def __post_init__(self):
        labels = tuple(self.labels)
        signals = {}
        for name, data in self.signals.items():
            data = np.array(data, dtype=float)
            if data.ndim != 2:
                raise ShapeError(f"Channel {name}: expected a 2-D array (epochs x samples), got {data.ndim}-D.")
            if data.shape[0] != len(labels):
                raise ShapeError(f"Channel {name} has {data.shape[0]} epochs but {len(labels)} labels were given.")
            if name not in self.fs:
                raise KeyError(f"No sampling frequency given for channel {name}.")
            data.flags.writeable = False
            signals[name] = data
        object.__setattr__(self, "signals", signals)
        object.__setattr__(self, "fs", {name: float(self.fs[name]) for name in signals})
        object.__setattr__(self, "labels", labels)

    @classmethod
    def from_signals(cls, signals, fs, labels, epoch_duration=EPOCH_SEC_LENGTH):
        """
        Build a table from continuous recordings.

        Every channel is split into whole epochs, then all channels and the
        labels are truncated to the shortest of them.

        Args:
            signals (dict): channel name -> 1-D continuous signal
            fs (float or dict): sampling frequency, shared or per channel
            labels (sequence): one stage label per epoch
            epoch_duration (float): epoch length in seconds

        Returns:
            EpochTable
        """
        if not isinstance(fs, Mapping):
            fs = {name: fs for name in signals}
        epochs = {name: segment_signal_into_epochs(np.asarray(sig), fs[name], epoch_duration)
                  for name, sig in signals.items()}
        n_epochs = min([len(labels)] + [len(e) for e in epochs.values()])
        if n_epochs == 0:
            raise ShapeError("Recording is shorter than one epoch or has no labels.")
        return cls(
            signals={name: np.vstack(e[:n_epochs]) for name, e in epochs.items()},
            fs=fs,
            labels=tuple(normalize_stage_label(label) for label in labels[:n_epochs]),
            epoch_duration=epoch_duration,
        )

    @property
    def channels(self):
        return list(self.signals)

    def __len__(self):
        return len(self.labels)

    def channel_name(self, channel):
        """Resolve a channel given by name or by column index."""
        if isinstance(channel, (int, np.integer)):
            names = self.channels
            if not 0 <= channel < len(names):
                raise IndexError(f"Channel index {channel} is out of bounds ({len(names)} channels).")
            return names[channel]
        if channel not in self.signals:
            raise KeyError(f"Channel {channel} not found. Available channels: {self.channels}")
        return channel

    def select(self, channel):
        """Return the epochs of one channel as a list of Epoch."""
        name = self.channel_name(channel)
        data = self.signals[name]
        return [Epoch(data[i], self.fs[name], self.labels[i], i) for i in range(len(self))]


EpochsLike = Union[EpochTable, Sequence[Epoch]]


def resolve_epochs(epochs: EpochsLike, channel=None) -> List[Epoch]:
    """Accept an EpochTable plus a channel, or an already selected list of Epoch."""
    if isinstance(epochs, EpochTable):
        if channel is None:
            raise ValueError("A channel must be given when passing an EpochTable.")
        return epochs.select(channel)
    return list(epochs)


def segment_signal_into_epochs(signal, fs, epoch_length_sec=EPOCH_SEC_LENGTH):
    """
    Splits a continuous signal into epochs of length epoch_length_sec.

    Parameters:
       signal           : 1D numpy array.
       fs               : Sampling frequency in Hz.
       epoch_length_sec : Duration of each epoch in seconds.

    Returns:
       epochs : List of 1D numpy arrays, one per epoch. An incomplete
                trailing epoch is dropped.
    """
    samples_per_epoch = int(round(epoch_length_sec * fs))
    if samples_per_epoch <= 0:
        raise ShapeError("Epoch length must span at least one sample.")
    signal = np.asarray(signal).ravel()
    n_epochs = len(signal) // samples_per_epoch
    return [signal[i * samples_per_epoch:(i + 1) * samples_per_epoch] for i in range(n_epochs)]


def hann_window(length):
    """
    Hann window without zero end-points, w[k] = 0.5 * (1 - cos(2*pi*k / (M+1))), k = 1..M.

    This is the `hanning` window of MATLAB, i.e. the inner M points of a
    symmetric Hann window of length M + 2.
    """
    if length <= 0:
        raise ShapeError("Window length must be positive.")
    return get_window("hann", length + 2, fftbins=False)[1:-1]


def partition_signal(x, n_partitions, partition_length, window=None):
    """
    Cut a signal into K equal partitions of M samples.

    Only the first K*M samples are used; the remainder is discarded, never
    padded. Row k of the result holds samples k*M .. k*M + M - 1.

    Parameters:
    -----------
    x : array_like
        Signal of length L >= K*M (flattened first).
    n_partitions : int
        Number of partitions K.
    partition_length : int
        Samples per partition M.
    window : None, str or array_like, optional
        Window applied to every partition: 'hann' for the MATLAB-style Hann
        window, any other name understood by scipy.signal.get_window, or an
        explicit array of length M.

    Returns:
    --------
    numpy.ndarray
        Array of shape (K, M).
    """
    x = np.asarray(x, dtype=float).ravel()
    K, M = int(n_partitions), int(partition_length)
    if M <= 0:
        raise ShapeError(f"Partition length must be positive, got {M}.")
    if K <= 0:
        raise ShapeError(f"Number of partitions must be positive, got {K}.")
    if K * M > len(x):
        raise ShapeError(f"Cannot cut {K} partitions of {M} samples from a signal of {len(x)} samples.")

    parts = x[:K * M].reshape(K, M)
    if window is None:
        return parts

    if isinstance(window, str):
        w = hann_window(M) if window in ("hann", "hanning") else get_window(window, M, fftbins=False)
    else:
        w = np.asarray(window, dtype=float).ravel()
        if len(w) != M:
            raise ShapeError(f"Window has {len(w)} points but partitions have {M} samples.")
    return parts * w


def map_epochs(func, items, n_jobs=1):
    """
    Apply func to every item, optionally on several workers.

    Results keep the order of the inputs, so labels stay aligned.
    """
    items = list(items)
    if n_jobs == 1 or len(items) < 2:
        return [func(item) for item in items]
    return Parallel(n_jobs=n_jobs)(delayed(func)(item) for item in items)


def labels_of(epochs: Sequence[Epoch]) -> List[str]:
    return [epoch.label for epoch in epochs]


def stage_counts(labels) -> Dict[str, int]:
    """Number of epochs per stage, in W, N1, N2, N3, R, unscored order."""
    labels = list(labels)
    return {stage: labels.count(stage) for stage in STAGES + (UNSCORED,)}
