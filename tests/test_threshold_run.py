from __future__ import annotations

import pytest

from puretone.audio.calibration import AIR, CalibrationTable
from puretone.errors import ConfigurationError, PlaybackUnavailable
from puretone.screening.records import ThresholdRecord
from puretone.screening.threshold_run import Complete, Ready, RunConfig, ThresholdRun, build_run


def test_initial_state(two_freq_config, flat_table):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR)
    assert run.state == Ready(0, 30.0)
    assert run.accepted == ()
    assert run.current_freq() == 1000


def test_decrease_settles_at_floor(two_freq_config, flat_table):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR)
    for _ in range(20):
        run.decrease_level()
        assert -10 <= run.level <= 90
    assert run.level == -10


def test_increase_settles_at_ceiling(two_freq_config, flat_table):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR)
    for _ in range(30):
        run.increase_level()
    assert run.level == 90
    run.increase_level()
    assert run.state == Ready(0, 90)


def test_clamp_with_step_not_dividing_range(flat_table):
    config = RunConfig(frequencies=(1000,), start_level=30, step=7, min_level=-10, max_level=90)
    run = ThresholdRun(config, flat_table, "right", AIR)
    for _ in range(20):
        run.increase_level()
    assert run.level == 90
    for _ in range(20):
        run.decrease_level()
    assert run.level == -10


def test_request_play_hands_amplitude_to_player(player):
    config = RunConfig(frequencies=(1000,), start_level=30, step=5, min_level=-10, max_level=90,
                       device_reference_db=90)
    run = ThresholdRun(config, CalibrationTable({AIR: {1000: 0.0}}), "right", AIR, player=player)
    amp = run.request_play()
    assert amp == pytest.approx(0.001)
    assert player.played == [(amp, 1000, "right")]
    assert run.state == Ready(0, 30.0)


def test_accept_advances_and_resets_level(two_freq_config, flat_table, collector):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, on_complete=collector)
    run.increase_level()
    state = run.accept_threshold()
    assert state == Ready(1, 30.0)
    assert len(run.accepted) == 1
    assert run.accepted[0] == ThresholdRecord(1000, 35.0, "left", AIR)

    state = run.accept_threshold()
    assert isinstance(state, Complete)
    assert [r.frequency for r in state.records] == [1000, 2000]
    assert collector.calls == [list(state.records)]


class _StopFails:
    def play_tone(self, amplitude, freq_hz, ear):
        pass

    def stop(self):
        raise RuntimeError("stream chiuso")


def test_accept_advances_before_stopping_tone(two_freq_config, flat_table):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, player=_StopFails())
    with pytest.raises(RuntimeError):
        run.accept_threshold()
    assert run.state == Ready(1, 30.0)
    assert run.accepted == (ThresholdRecord(1000, 30.0, "left", AIR),)


def test_accept_stops_tone_on_advance_and_completion(two_freq_config, flat_table, player):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, player=player)
    run.accept_threshold()
    assert player.stops == 1
    run.accept_threshold()
    assert run.is_complete
    assert player.stops == 2


def test_one_record_per_frequency():
    config = RunConfig(frequencies=(250, 500, 1000, 2000, 4000, 8000))
    run = ThresholdRun(config, CalibrationTable.default(), "right", AIR)
    for i in range(6):
        for _ in range(i):
            run.decrease_level()
        run.accept_threshold()
    assert run.is_complete
    assert [r.frequency for r in run.accepted] == [250, 500, 1000, 2000, 4000, 8000]
    assert [r.level for r in run.accepted] == [30, 25, 20, 15, 10, 5]


def test_undo_at_first_frequency_is_noop(two_freq_config, flat_table, player):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, player=player)
    run.decrease_level()
    before = run.state
    assert run.undo() == before
    assert run.accepted == ()
    assert player.stops == 0


def test_undo_restores_previous_frequency_and_level(two_freq_config, flat_table, player):
    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, player=player)
    run.increase_level()
    run.increase_level()
    run.accept_threshold()
    run.decrease_level()
    assert run.undo() == Ready(0, 40.0)
    assert run.accepted == ()
    assert player.stops == 2


def test_undo_then_reaccept_reproduces_records(flat_table):
    config = RunConfig(frequencies=(1000, 2000, 4000))
    run = ThresholdRun(config, flat_table, "right", AIR)
    run.decrease_level()
    run.accept_threshold()
    run.increase_level()
    run.accept_threshold()
    before = run.accepted
    run.undo()
    run.accept_threshold()
    assert run.accepted == before


def test_intents_after_complete_are_noops(flat_table, player, collector):
    config = RunConfig(frequencies=(1000,))
    run = ThresholdRun(config, flat_table, "left", AIR, player=player, on_complete=collector)
    run.accept_threshold()
    done = run.state
    run.increase_level()
    run.undo()
    run.accept_threshold()
    assert run.request_play() is None
    assert run.state == done
    assert len(collector.calls) == 1
    assert player.played == []


def test_playback_failure_preserves_state(two_freq_config, flat_table, collector):
    class BrokenPlayer:
        def play_tone(self, amplitude, freq_hz, ear):
            raise PlaybackUnavailable("nessun dispositivo")

        def stop(self):
            pass

    run = ThresholdRun(two_freq_config, flat_table, "left", AIR, player=BrokenPlayer(), on_error=collector)
    run.increase_level()
    assert run.request_play() is None
    assert run.state == Ready(0, 35.0)
    assert collector.calls == ["nessun dispositivo"]


@pytest.mark.parametrize("kwargs", [
    {"frequencies": ()},
    {"frequencies": (1000, 0)},
    {"frequencies": (1000, 1000)},
    {"start_level": 95},
    {"start_level": -20},
    {"step": 0},
    {"step": float("nan")},
    {"start_level": float("nan")},
    {"max_level": float("inf")},
    {"device_reference_db": float("nan")},
    {"min_level": 50, "max_level": 40, "start_level": 45},
    {"amplitude_strategy": "boh"},
])
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        RunConfig(**kwargs)


def test_invalid_ear_or_mode_rejected(two_freq_config, flat_table):
    with pytest.raises(ConfigurationError):
        ThresholdRun(two_freq_config, flat_table, "center", AIR)
    with pytest.raises(ConfigurationError):
        ThresholdRun(two_freq_config, flat_table, "left", "laser")


def test_build_run_shortcut(flat_table, player):
    run = build_run([1000], flat_table, "right", AIR, start_level=20, player=player)
    assert run.state == Ready(0, 20.0)
    run.request_play()
    assert player.played[0][1:] == (1000, "right")
