"""
Tests for loading PSG recordings and hypnograms.

mne.io.read_raw_edf is replaced by an in-memory RawArray so no EDF file is
needed.
"""

import mne
import numpy as np
import pytest

from feat_extraction.data import edf_data_import
from feat_extraction.data.edf_data_import import (
    annotations_to_epoch_labels, channel_signal, load_recording, read_stage_labels,
)
from feat_extraction.epochs.epoch_segmentation import UNSCORED

FS = 64
CHANNELS = ["EEG F4-M1", "EEG C4-M1", "EOG E1-M2"]


def _raw(rng, n_epochs=4, annotations=None):
    data = 1e-6 * rng.standard_normal((len(CHANNELS), n_epochs * 30 * FS))
    info = mne.create_info(CHANNELS, sfreq=FS, ch_types="eeg")
    raw = mne.io.RawArray(data, info, verbose="ERROR")
    if annotations is not None:
        raw.set_annotations(annotations)
    return raw


@pytest.fixture
def edf_file(tmp_path):
    path = tmp_path / "SN001.edf"
    path.write_bytes(b"")
    return path


class TestAnnotations:

    def test_expand_to_epochs(self):
        annotations = mne.Annotations(
            onset=[0, 60, 90, 95],
            duration=[60, 30, 60, 0],
            description=["Sleep stage W", "Sleep stage 2", "Sleep stage R", "Lights on"],
        )
        assert annotations_to_epoch_labels(annotations, 30) == ["W", "W", "N2", "R", "R"]

    def test_gap_is_unscored(self):
        annotations = mne.Annotations(onset=[0, 60], duration=[30, 30],
                                      description=["Sleep stage W", "Sleep stage 3"])
        assert annotations_to_epoch_labels(annotations, 30) == ["W", UNSCORED, "N3"]

    def test_no_stage_annotations(self):
        annotations = mne.Annotations(onset=[10], duration=[0], description=["Lights off"])
        assert annotations_to_epoch_labels(annotations, 30) == []

    def test_edf_hypnogram(self, monkeypatch, tmp_path):
        annotations = mne.Annotations(onset=[0], duration=[60], description=["Sleep stage N1"])
        monkeypatch.setattr(mne, "read_annotations", lambda path: annotations)
        assert read_stage_labels(tmp_path / "SN001_sleepscoring.edf") == ["N1", "N1"]


class TestLoadRecording:

    def test_signals_in_microvolts(self, monkeypatch, rng, edf_file):
        raw = _raw(rng)
        monkeypatch.setattr(mne.io, "read_raw_edf", lambda *args, **kwargs: raw)

        table = load_recording(edf_file, channels=["EEG C4-M1", "EEG F4-M1"], verbose=False)

        assert table.channels == ["EEG C4-M1", "EEG F4-M1"]
        assert len(table) == 4
        assert table.fs["EEG F4-M1"] == FS
        assert table.labels == (UNSCORED,) * 4
        np.testing.assert_allclose(channel_signal(table, "EEG C4-M1"), raw.get_data()[1] * 1e6)

    def test_labels_from_embedded_annotations(self, monkeypatch, rng, edf_file):
        annotations = mne.Annotations(onset=[0, 30, 60, 90], duration=[30, 30, 30, 30],
                                      description=["Sleep stage W", "Sleep stage 1",
                                                   "Sleep stage 2", "Sleep stage R"])
        raw = _raw(rng, annotations=annotations)
        monkeypatch.setattr(mne.io, "read_raw_edf", lambda *args, **kwargs: raw)

        table = load_recording(edf_file, channels=["EEG F4-M1"], verbose=True)
        assert table.labels == ("W", "N1", "N2", "R")

    def test_labels_from_hypnogram_file(self, monkeypatch, rng, edf_file):
        monkeypatch.setattr(mne.io, "read_raw_edf", lambda *args, **kwargs: _raw(rng))
        monkeypatch.setattr(edf_data_import, "read_stage_labels", lambda path, epoch_duration: ["W", "N2"])

        table = load_recording(edf_file, edf_file.with_name("SN001_sleepscoring.edf"), verbose=False)
        # the recording holds 4 epochs but only 2 are scored
        assert len(table) == 2
        assert table.labels == ("W", "N2")
        assert table.channels == CHANNELS

    def test_missing_channel(self, monkeypatch, rng, edf_file):
        monkeypatch.setattr(mne.io, "read_raw_edf", lambda *args, **kwargs: _raw(rng))
        with pytest.raises(KeyError):
            load_recording(edf_file, channels=["EEG O2-M1"], verbose=False)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_recording(tmp_path / "SN999.edf", verbose=False)
