from __future__ import annotations

from typing import Any, List, Tuple

import pytest

from puretone.audio.calibration import CalibrationTable
from puretone.screening.threshold_run import RunConfig


class FakePlayer:
    """Registra le chiamate del collaboratore di riproduzione."""

    def __init__(self) -> None:
        self.played: List[Tuple[float, int, str]] = []
        self.stops = 0

    def play_tone(self, amplitude, freq_hz, ear) -> None:
        self.played.append((amplitude, freq_hz, ear))

    def stop(self) -> None:
        self.stops += 1


class Collector:
    def __init__(self) -> None:
        self.calls: List[Any] = []

    def __call__(self, payload) -> None:
        self.calls.append(payload)


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def flat_table() -> CalibrationTable:
    return CalibrationTable({"air": {1000: 0.0, 2000: 0.0}, "bone": {1000: 0.0, 2000: 0.0}})


@pytest.fixture
def two_freq_config() -> RunConfig:
    return RunConfig(frequencies=(1000, 2000), start_level=30, step=5, min_level=-10, max_level=90)


@pytest.fixture
def appdata(tmp_path, monkeypatch):
    """Cartella dati applicazione isolata per settings e log."""
    import puretone.paths as paths

    root = tmp_path / "appdata"
    root.mkdir()
    monkeypatch.setattr(paths, "get_app_data_dir", lambda create=True: str(root))
    return root
