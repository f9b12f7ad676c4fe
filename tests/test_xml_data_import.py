"""
Tests for the NSRR XML scoring reader.
"""

import pytest

from feat_extraction.data.xml_data_import import read_xml, read_xml_labels, stages_to_epoch_labels

SCORING = """<?xml version="1.0" encoding="UTF-8"?>
<PSGAnnotation>
  <EpochLength>30</EpochLength>
  <ScoredEvents>
    <ScoredEvent>
      <EventConcept>SDO:WakeState</EventConcept>
      <Start>0</Start>
      <Duration>60</Duration>
    </ScoredEvent>
    <ScoredEvent>
      <EventConcept>SDO:NonRapidEyeMovementSleep-N2</EventConcept>
      <Start>60</Start>
      <Duration>30</Duration>
    </ScoredEvent>
    <ScoredEvent>
      <EventConcept>Arousal</EventConcept>
      <Start>65</Start>
      <Duration>3</Duration>
    </ScoredEvent>
    <ScoredEvent>
      <EventConcept>SDO:NonRapidEyeMovementSleep-N4</EventConcept>
      <Start>90</Start>
      <Duration>30</Duration>
    </ScoredEvent>
    <ScoredEvent>
      <EventConcept>SDO:RapidEyeMovementSleep</EventConcept>
      <Start>120</Start>
      <Duration>30</Duration>
    </ScoredEvent>
  </ScoredEvents>
</PSGAnnotation>
"""


@pytest.fixture
def scoring_file(tmp_path):
    path = tmp_path / "scoring.xml"
    path.write_text(SCORING)
    return path


class TestReadXml:

    def test_events_and_stages(self, scoring_file):
        events, stages, epoch_length = read_xml(scoring_file)

        assert epoch_length == 30
        assert len(stages) == 150
        assert len(events) == 1
        assert events[0]["EventConcept"] == "Arousal"
        assert events[0]["Start"] == 65.0

    def test_labels(self, scoring_file):
        assert read_xml_labels(scoring_file) == ["W", "W", "N2", "N3", "R"]

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<PSGAnnotation><ScoredEvents>")
        with pytest.raises(RuntimeError):
            read_xml(path)


class TestStagesToEpochLabels:

    def test_majority_rule(self):
        # 20 s of wake followed by 10 s of N2
        assert stages_to_epoch_labels([5] * 20 + [3] * 10, 30) == ["W"]

    def test_incomplete_epoch_dropped(self):
        assert stages_to_epoch_labels([0] * 45, 30) == ["R"]
