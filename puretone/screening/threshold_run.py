from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ..audio.calibration import AMPLITUDE_STRATEGIES, DEVICE_REFERENCE_DB, STD_FREQS, CalibrationTable
from ..errors import ConfigurationError, PlaybackUnavailable
from .records import ThresholdRecord, check_ear, check_mode

log = logging.getLogger("puretone.screening")

DEFAULT_START_LEVEL = 30.0
DEFAULT_STEP_DB = 5.0
MIN_DB_HL = -10.0
MAX_DB_HL = 90.0


@dataclass(frozen=True)
class RunConfig:
    """Parametri di una passata (orecchio/modalità); validati alla costruzione."""

    frequencies: Tuple[int, ...] = field(default_factory=lambda: tuple(STD_FREQS))
    start_level: float = DEFAULT_START_LEVEL
    step: float = DEFAULT_STEP_DB
    min_level: float = MIN_DB_HL
    max_level: float = MAX_DB_HL
    device_reference_db: float = DEVICE_REFERENCE_DB
    amplitude_strategy: str = "offset_table"

    def __post_init__(self):
        freqs = tuple(self.frequencies)
        if not freqs:
            raise ConfigurationError("La sequenza di frequenze non può essere vuota.")
        for f in freqs:
            if isinstance(f, bool) or not isinstance(f, int) or f <= 0:
                raise ConfigurationError(f"Frequenza non valida: {f!r} (attesi interi positivi).")
        if len(set(freqs)) != len(freqs):
            raise ConfigurationError("La sequenza di frequenze contiene duplicati.")
        object.__setattr__(self, "frequencies", freqs)
        for name in ("start_level", "step", "min_level", "max_level", "device_reference_db"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigurationError(f"Valore non valido per {name}: {value!r} (atteso numero finito).")
        if self.step <= 0:
            raise ConfigurationError("Il passo in dB deve essere positivo.")
        if self.min_level > self.max_level:
            raise ConfigurationError("Livello minimo maggiore del massimo.")
        if not (self.min_level <= self.start_level <= self.max_level):
            raise ConfigurationError(
                f"Livello iniziale {self.start_level} fuori da [{self.min_level}, {self.max_level}] dB HL."
            )
        if self.amplitude_strategy not in AMPLITUDE_STRATEGIES:
            raise ConfigurationError(f"Strategia di ampiezza sconosciuta: {self.amplitude_strategy!r}.")


@dataclass(frozen=True)
class Ready:
    index: int
    level: float


@dataclass(frozen=True)
class Complete:
    records: Tuple[ThresholdRecord, ...]


RunState = Union[Ready, Complete]


class ThresholdRun:
    """Macchina a stati per l'acquisizione delle soglie di un orecchio in una modalità.

    Intenti dalla UI: increase_level, decrease_level, request_play,
    accept_threshold, undo. Ogni transizione è totale: i limiti di livello sono
    applicati in silenzio e gli intenti non applicabili non fanno nulla.

    - player: oggetto con play_tone(amplitude, freq_hz, ear) e stop()
    - on_complete: riceve la lista ordinata dei ThresholdRecord a fine passata
    - on_error: riceve il messaggio quando la riproduzione non è disponibile
    """

    def __init__(self, config: RunConfig, calibration: CalibrationTable, ear: str, mode: str,
                 player=None,
                 on_complete: Optional[Callable[[List[ThresholdRecord]], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None):
        self.config = config
        self.calibration = calibration
        self.ear = check_ear(ear)
        self.mode = check_mode(mode)
        self.player = player
        self.on_complete = on_complete
        self.on_error = on_error
        self._amplitude_fn = AMPLITUDE_STRATEGIES[config.amplitude_strategy]

        missing = [f for f, m in calibration.missing_entries(config.frequencies) if m == self.mode]
        if missing:
            log.info("Offset di calibrazione assenti per %s (%s): uso 0 dB", missing, self.mode)

        self._index = 0
        self._level = float(config.start_level)
        self._accepted: List[ThresholdRecord] = []
        self._complete = False

    # ---------------- Stato ----------------
    @property
    def state(self) -> RunState:
        if self._complete:
            return Complete(tuple(self._accepted))
        return Ready(self._index, self._level)

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def index(self) -> int:
        return self._index

    @property
    def level(self) -> float:
        return self._level

    @property
    def accepted(self) -> Tuple[ThresholdRecord, ...]:
        return tuple(self._accepted)

    def current_freq(self) -> int:
        return self.config.frequencies[self._index]

    def current_amplitude(self) -> float:
        return self._amplitude_fn(self._level, self.current_freq(), self.mode, self.calibration,
                                  self.config.device_reference_db)

    # ---------------- Intenti ----------------
    def increase_level(self) -> RunState:
        if not self._complete:
            self._level = min(self._level + self.config.step, self.config.max_level)
            log.debug("%s/%s %s Hz: livello %.1f dB HL", self.ear, self.mode, self.current_freq(), self._level)
        return self.state

    def decrease_level(self) -> RunState:
        if not self._complete:
            self._level = max(self._level - self.config.step, self.config.min_level)
            log.debug("%s/%s %s Hz: livello %.1f dB HL", self.ear, self.mode, self.current_freq(), self._level)
        return self.state

    def request_play(self) -> Optional[float]:
        """Chiede al player il tono corrente; ritorna l'ampiezza inviata (None se non suonato)."""
        if self._complete:
            return None
        freq = self.current_freq()
        amp = self.current_amplitude()
        if self.player is None:
            return amp
        try:
            self.player.play_tone(amp, freq, self.ear)
        except PlaybackUnavailable as e:
            log.error("Impossibile riprodurre il tono %s Hz: %s", freq, e)
            if self.on_error is not None:
                self.on_error(str(e))
            return None
        return amp

    def accept_threshold(self) -> RunState:
        if self._complete:
            return self.state
        record = ThresholdRecord(frequency=self.current_freq(), level=self._level, ear=self.ear, mode=self.mode)
        self._accepted.append(record)
        log.debug("Soglia %s/%s %s Hz = %.1f dB HL", self.ear, self.mode, record.frequency, record.level)
        if self._index + 1 < len(self.config.frequencies):
            self._index += 1
            self._level = float(self.config.start_level)
            self._stop_tone()
            return self.state
        self._complete = True
        self._stop_tone()
        records = list(self._accepted)
        log.info("Passata %s/%s completata: %d soglie", self.ear, self.mode, len(records))
        if self.on_complete is not None:
            self.on_complete(records)
        return self.state

    def undo(self) -> RunState:
        if self._complete or self._index == 0:
            return self.state
        last = self._accepted.pop()
        self._index -= 1
        self._level = last.level
        self._stop_tone()
        log.debug("Annullata soglia %s Hz, ritorno a %.1f dB HL", last.frequency, last.level)
        return self.state

    def _stop_tone(self):
        if self.player is not None:
            self.player.stop()


def build_run(frequencies: Sequence[int], calibration: CalibrationTable, ear: str, mode: str, **kwargs) -> ThresholdRun:
    """Scorciatoia: costruisce RunConfig + ThresholdRun dai parametri espliciti."""
    run_kwargs = {k: kwargs.pop(k) for k in ("player", "on_complete", "on_error") if k in kwargs}
    config = RunConfig(frequencies=tuple(frequencies), **kwargs)
    return ThresholdRun(config, calibration, ear, mode, **run_kwargs)
