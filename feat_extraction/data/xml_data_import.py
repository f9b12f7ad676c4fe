"""
xml_data_import.py

Reads NSRR-style XML scoring files (<PSGAnnotation>) and turns the scored
sleep stages into one label per epoch.
"""

import xml.etree.ElementTree as ET

import numpy as np
from scipy import stats

from feat_extraction.config import EPOCH_SEC_LENGTH
from feat_extraction.epochs.epoch_segmentation import UNSCORED

# Sleep stage mapping of the XML event concepts (one code per second)
STAGE_MAPPING = {
    "SDO:NonRapidEyeMovementSleep-N1": 4,
    "SDO:NonRapidEyeMovementSleep-N2": 3,
    "SDO:NonRapidEyeMovementSleep-N3": 2,
    "SDO:NonRapidEyeMovementSleep-N4": 1,
    "SDO:RapidEyeMovementSleep": 0,  # REM sleep
    "SDO:WakeState": 5               # Wake state
}

# N4 is merged into N3 (AASM)
STAGE_CODES = {0: "R", 1: "N3", 2: "N3", 3: "N2", 4: "N1", 5: "W"}


def read_xml(xml_filename):
    """
    Parses the XML file and extracts events, sleep stages and the epoch length.

    Returns:
        tuple: (events, stages, epoch_length)
            events       : list of dicts for the scored events that are not sleep stages
            stages       : list of stage codes, one per second (see STAGE_MAPPING)
            epoch_length : epoch length in seconds
    """
    try:
        tree = ET.parse(xml_filename)
        root = tree.getroot()
    except (ET.ParseError, OSError) as e:
        raise RuntimeError(f"Failed to read XML file {xml_filename}: {e}") from e

    epoch_element = root.find("EpochLength")
    epoch_length = int(float(epoch_element.text)) if epoch_element is not None else EPOCH_SEC_LENGTH

    events = []
    stages = []
    scored_events = root.find("ScoredEvents")
    if scored_events is None:
        return events, stages, epoch_length

    for scored_event in scored_events:
        event_concept = scored_event.findtext("EventConcept", default="").strip()
        start = float(scored_event.findtext("Start", default="0"))
        duration = float(scored_event.findtext("Duration", default="0"))

        if event_concept in STAGE_MAPPING:
            stages.extend([STAGE_MAPPING[event_concept]] * int(duration))
        else:
            events.append({
                "EventConcept": event_concept,
                "Start": start,
                "Duration": duration,
            })

    return events, stages, epoch_length


def stages_to_epoch_labels(stages, epoch_length=EPOCH_SEC_LENGTH):
    """
    Reduce a per-second stage sequence to one label per whole epoch.

    The dominant stage of every epoch is kept (majority rule); seconds
    beyond the last whole epoch are dropped.
    """
    stages = np.asarray(stages, dtype=int)
    n_epochs = len(stages) // int(epoch_length)
    labels = []
    for epoch_idx in range(n_epochs):
        epoch_data = stages[epoch_idx * epoch_length:(epoch_idx + 1) * epoch_length]
        dominant_stage = int(stats.mode(epoch_data, keepdims=False)[0])
        labels.append(STAGE_CODES.get(dominant_stage, UNSCORED))
    return labels


def read_xml_labels(xml_filename, epoch_duration=EPOCH_SEC_LENGTH):
    """Per-epoch stage labels of an XML scoring file."""
    _, stages, epoch_length = read_xml(xml_filename)
    if epoch_length != epoch_duration:
        print(f"Warning: {xml_filename} is scored in {epoch_length} s epochs, "
              f"labels are regrouped into {epoch_duration} s epochs.")
    return stages_to_epoch_labels(stages, int(epoch_duration))
