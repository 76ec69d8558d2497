from __future__ import annotations

import pytest

from puretone.analysis import air_bone_gap, average_threshold, classify, summarize
from puretone.screening.records import ThresholdRecord


@pytest.mark.parametrize("avg, label", [
    (-10, "Normal"),
    (25, "Normal"),
    (26, "Mild Loss"),
    (40, "Mild Loss"),
    (55, "Moderate Loss"),
    (70, "Moderately Severe"),
    (71, "Severe Loss"),
])
def test_classify(avg, label):
    assert classify(avg) == label


def test_average_rounds_half_up():
    assert average_threshold([20, 25]) == 23
    assert average_threshold([]) == 0


def test_summary_with_air_bone_gap():
    records = [
        ThresholdRecord(500, 40.0, "left", "air"),
        ThresholdRecord(1000, 45.0, "left", "air"),
        ThresholdRecord(2000, 50.0, "left", "air"),
        ThresholdRecord(500, 10.0, "left", "bone"),
        ThresholdRecord(1000, 15.0, "left", "bone"),
    ]
    assert air_bone_gap(records, "left") == {500: 30.0, 1000: 30.0}
    summary = summarize(records)
    air = summary[0]
    assert (air["ear"], air["mode"]) == ("left", "air")
    assert air["average_db"] == 45
    assert air["classification"] == "Moderate Loss"
    assert air["pta_db"] == pytest.approx(45.0)
    assert air["air_bone_gap"] == {500: 30.0, 1000: 30.0}
    assert "air_bone_gap" not in summary[1]
