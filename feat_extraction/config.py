"""
Default parameters of the feature extraction runs.

The UPPERCASE constants mirror the values used on the PSG dataset
(256 Hz recordings scored in 30 s epochs). A run never reads them directly:
they are gathered into an ExtractionConfig which is passed to every step.
"""

from dataclasses import dataclass, field, replace
from typing import Tuple

# --- Recording ---
FS = 256                    # Sampling frequency of the PSG recordings (Hz)
EPOCH_SEC_LENGTH = 30       # Duration of a scored epoch (s)

# --- Numerical stability ---
EPSILON = 1e-5

# --- Bicoherence ---
BICOHERENCE_SEGMENTS = 24   # Partitions per epoch
BICOHERENCE_FC = 32         # Upper bound of the frequency axis (Hz)

# --- Cepstrum ---
CEPSTRUM_DT = 5.0           # Partition duration (s), 6 partitions per epoch
CEPSTRUM_KIND = "real"
N_CEPSTRAL_COEFFICIENTS = 20

# --- Multi-resolution analysis ---
MRA_WAVELET = "db2"
MRA_TRANSFORM = "swt"
# Finest scale first. Frequency bounds assume fs = 256 Hz.
MRA_SELECTION_MASK = (
    False,  # scale 1 (64-128 Hz)
    False,  # scale 2 (32-64 Hz)
    True,   # scale 3 (16-32 Hz)
    True,   # scale 4 (8-16 Hz)
    True,   # scale 5 (4-8 Hz)
    True,   # scale 6 (2-4 Hz)
    True,   # scale 7 (0-2 Hz)
)
DEGENERATE_MOMENT_VALUE = 0.0

# --- Prefilter ---
BANDPASS_LOW = 0.5
BANDPASS_HIGH = 45.0
BANDPASS_ORDER = 4

EEG_CHANNELS = ("EEG F4-M1", "EEG C4-M1", "EEG O2-M1", "EEG C3-M2")


@dataclass(frozen=True)
class WaveletConfig:
    """Wavelet and transform used for the multi-resolution decomposition."""
    wavelet: str = MRA_WAVELET
    transform: str = MRA_TRANSFORM   # 'swt' (undecimated, like MODWT) or 'dwt'


@dataclass(frozen=True)
class ExtractionConfig:
    """All parameters of one feature extraction run."""
    epoch_duration: float = EPOCH_SEC_LENGTH
    channels: Tuple[str, ...] = EEG_CHANNELS
    epsilon: float = EPSILON
    bicoherence_segments: int = BICOHERENCE_SEGMENTS
    bicoherence_fc: float = BICOHERENCE_FC
    cepstrum_dt: float = CEPSTRUM_DT
    cepstrum_kind: str = CEPSTRUM_KIND
    n_cepstral_coefficients: int = N_CEPSTRAL_COEFFICIENTS
    wavelet: WaveletConfig = field(default_factory=WaveletConfig)
    selection_mask: Tuple[bool, ...] = MRA_SELECTION_MASK
    degenerate_value: float = DEGENERATE_MOMENT_VALUE
    prefilter: bool = True
    bandpass: Tuple[float, float] = (BANDPASS_LOW, BANDPASS_HIGH)
    bandpass_order: int = BANDPASS_ORDER
    n_jobs: int = 1
    verbose: bool = True

    def updated(self, **changes):
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
