import numpy as np
import pytest

from feat_extraction.epochs.epoch_segmentation import EpochTable

FS = 64
EPOCH = 30


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def small_table(rng):
    """Two channels, 4 epochs of 30 s at 64 Hz."""
    n = 4 * EPOCH * FS
    t = np.arange(n) / FS
    eeg1 = np.sin(2 * np.pi * 6 * t) + 0.5 * rng.standard_normal(n)
    eeg2 = np.sin(2 * np.pi * 11 * t) + 0.5 * rng.standard_normal(n)
    return EpochTable.from_signals(
        signals={"EEG F4-M1": eeg1, "EEG C4-M1": eeg2},
        fs=FS,
        labels=["W", "N1", "N2", "R"],
        epoch_duration=EPOCH,
    )
