"""
Tests for the per-patient feature extraction and the batch runner.
"""

import argparse

import numpy as np
import pytest

from feat_extraction import pipeline
from feat_extraction.config import ExtractionConfig, WaveletConfig
from feat_extraction.data.feature_export import load_feature_matrix
from feat_extraction.pipeline import channel_prefix, extract_patient_features, process_patient, run_batch
from scripts.run_feature_pipeline import build_config


@pytest.fixture
def config():
    return ExtractionConfig(
        channels=("EEG F4-M1", "EEG C4-M1"),
        bicoherence_segments=8,
        bicoherence_fc=16,
        cepstrum_dt=5.0,
        n_cepstral_coefficients=10,
        selection_mask=(False, True, True, True),
        prefilter=False,
        verbose=False,
    )


class TestPatientFeatures:

    def test_channel_prefix(self):
        assert channel_prefix("EEG F4-M1") == "EEG_F4_M1"
        assert channel_prefix("ECG") == "ECG"

    def test_feature_table(self, small_table, config):
        features = extract_patient_features(small_table, config)

        # 3 scales x 3 moments + 5 bispectrum features + 10 cepstral coefficients per channel
        assert features.shape == (4, 2 * 24 + 1)
        assert features.columns[-1] == "label"
        assert features["label"].tolist() == ["W", "N1", "N2", "R"]
        assert "EEG_F4_M1_std_s2" in features.columns
        assert "EEG_C4_M1_ent1" in features.columns
        assert "EEG_C4_M1_cep10" in features.columns
        assert np.all(np.isfinite(features.drop(columns="label").to_numpy()))

    def test_unknown_channel(self, small_table, config):
        with pytest.raises(KeyError):
            extract_patient_features(small_table, config.updated(channels=("EEG O2-M1",)))

    def test_process_patient(self, monkeypatch, tmp_path, small_table, config):
        monkeypatch.setattr(pipeline, "load_recording", lambda *args, **kwargs: small_table)
        config = config.updated(prefilter=True, bandpass=(0.5, 20.0), verbose=True)

        output_path = process_patient(1, tmp_path / "in", tmp_path / "out", config)

        assert output_path == tmp_path / "out" / "001.mat"
        X, y, columns = load_feature_matrix(output_path)
        assert X.shape == (4, 48)
        assert y == ["W", "N1", "N2", "R"]
        assert columns[0].startswith("EEG_F4_M1_")


class TestRunBatch:

    def test_missing_and_failed_patients(self, monkeypatch, tmp_path, config):
        input_dir = tmp_path / "in"
        input_dir.mkdir()
        (input_dir / "SN001.edf").write_bytes(b"")
        (input_dir / "SN002.edf").write_bytes(b"")

        def fake_process(patient_id, *args, **kwargs):
            if patient_id == 2:
                raise RuntimeError("corrupt file")
            return tmp_path / "out" / f"{patient_id:03d}.mat"

        monkeypatch.setattr(pipeline, "process_patient", fake_process)
        status = run_batch([1, 2, 3], input_dir, tmp_path / "out", config.updated(verbose=True))

        assert status == {1: "ok", 2: "failed: corrupt file", 3: "missing"}


class TestCommandLine:

    def test_build_config(self):
        args = argparse.Namespace(quiet=True, no_prefilter=False, n_jobs=2, channels=["EEG C4-M1"],
                                  dt=10.0, segments=12, fc=20.0, wavelet="db4")
        config = build_config(args)

        assert config.verbose is False
        assert config.prefilter is True
        assert config.channels == ("EEG C4-M1",)
        assert config.cepstrum_dt == 10.0
        assert config.bicoherence_segments == 12
        assert config.wavelet == WaveletConfig("db4", "swt")

    def test_defaults_kept(self):
        args = argparse.Namespace(quiet=False, no_prefilter=True, n_jobs=1, channels=None,
                                  dt=None, segments=None, fc=None, wavelet=None)
        config = build_config(args)
        assert config.channels == ExtractionConfig().channels
        assert config.prefilter is False
