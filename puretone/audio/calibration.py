from __future__ import annotations
import json
import logging
import math
import os
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import yaml

from ..errors import ConfigurationError

log = logging.getLogger("puretone.audio")

AIR = "air"
BONE = "bone"
MODES = (AIR, BONE)

STD_FREQS = [250, 500, 1000, 2000, 4000, 8000]

# Livello (dB) che corrisponde al fondo scala dell'uscita: 20 dB HL->SPL, 110 dB SPL max.
DEVICE_REFERENCE_DB = 90.0
REFERENCE_FREQ = 1000

DEFAULT_AIR_OFFSETS = {250: -20.0, 500: -15.0, 1000: 0.0, 2000: 5.0, 4000: 10.0, 8000: 15.0}
# Il vibratore osseo richiede più pilotaggio; valori di partenza da sostituire con la calibrazione del dispositivo.
DEFAULT_BONE_OFFSETS = {250: -5.0, 500: 0.0, 1000: 10.0, 2000: 15.0, 4000: 20.0, 8000: 25.0}


class CalibrationTable:
    """Offset di riferimento (dB) per frequenza e modalità di conduzione.

    Struttura serializzata (JSON o YAML):
    {
      "air":  { "250": -20.0, ... },
      "bone": { "250": -5.0, ... }
    }

    Le voci mancanti valgono 0 dB: è un fallback documentato, non un errore.
    """

    def __init__(self, offsets: Optional[Mapping[str, Mapping]] = None):
        self._offsets: Dict[str, Dict[int, float]] = {mode: {} for mode in MODES}
        for mode, raw_map in (offsets or {}).items():
            if mode not in MODES:
                raise ConfigurationError(f"Modalità di conduzione sconosciuta: {mode!r}.")
            self._offsets[mode] = _normalise_offsets(raw_map)

    @classmethod
    def default(cls) -> "CalibrationTable":
        return cls({AIR: DEFAULT_AIR_OFFSETS, BONE: DEFAULT_BONE_OFFSETS})

    def get_offset(self, freq_hz: int, mode: str) -> float:
        return float(self._offsets.get(mode, {}).get(int(freq_hz), 0.0))

    def missing_entries(self, frequencies: Iterable[int]) -> list[tuple[int, str]]:
        return [(int(f), mode) for mode in MODES for f in frequencies if int(f) not in self._offsets[mode]]

    def with_offsets(self, mode: str, updates: Mapping[int, float]) -> "CalibrationTable":
        merged = {m: dict(v) for m, v in self._offsets.items()}
        if mode not in MODES:
            raise ConfigurationError(f"Modalità di conduzione sconosciuta: {mode!r}.")
        merged[mode].update(_normalise_offsets(updates))
        return CalibrationTable(merged)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {mode: {str(f): v for f, v in sorted(m.items())} for mode, m in self._offsets.items()}

    def __eq__(self, other):
        if not isinstance(other, CalibrationTable):
            return NotImplemented
        return self._offsets == other._offsets

    def __repr__(self):
        return f"CalibrationTable({self.to_dict()!r})"


def _normalise_offsets(raw_map) -> Dict[int, float]:
    if raw_map is None:
        return {}
    if not isinstance(raw_map, Mapping):
        raise ConfigurationError('Calibrazione non valida: attesa mappa frequenza->offset.')
    converted: Dict[int, float] = {}
    for freq_key, value in raw_map.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ConfigurationError('Calibrazione non valida: gli offset devono essere numeri finiti.')
        try:
            freq = int(float(freq_key))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Frequenza non valida nella calibrazione: {freq_key!r}.") from exc
        if freq <= 0:
            raise ConfigurationError('Le frequenze devono essere positive.')
        converted[freq] = float(value)
    return converted


def load_table(path: str | os.PathLike) -> CalibrationTable:
    """Carica una tabella di calibrazione .json/.yaml."""
    table_path = Path(path)
    try:
        with table_path.open('r', encoding='utf-8') as handle:
            if table_path.suffix.lower() in {'.yaml', '.yml'}:
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Impossibile leggere la calibrazione {table_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError('Calibrazione non valida: atteso oggetto di tipo dizionario.')
    table = CalibrationTable(data)
    log.info("Calibrazione caricata da %s", table_path)
    return table


def save_table(table: CalibrationTable, path: str | os.PathLike) -> str:
    table_path = Path(path)
    table_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = table_path.with_name(table_path.name + '.tmp')
    with tmp_path.open('w', encoding='utf-8') as f:
        json.dump(table.to_dict(), f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, table_path)
    return str(table_path)


def _db_to_amplitude(effective_db: float) -> float:
    # NaN/inf: nessun tono piuttosto che fondo scala
    if not math.isfinite(effective_db):
        return 0.0
    # 10**x va in overflow per x grandi: sopra 0 dB il risultato è comunque fondo scala
    if effective_db >= 0.0:
        return 1.0
    amplitude = 10 ** (effective_db / 20.0)
    return float(max(0.0, min(1.0, amplitude)))


def compute_amplitude(level_db_hl: float, freq_hz: int, mode: str, table: CalibrationTable,
                      device_reference_db: float = DEVICE_REFERENCE_DB) -> float:
    """Converte un livello dB HL in ampiezza normalizzata [0, 1].

    Il livello deve essere già limitato a [min, max] dal chiamante.
    """
    offset = table.get_offset(freq_hz, mode)
    return _db_to_amplitude(float(level_db_hl) + offset - float(device_reference_db))


def reference_tone_amplitude(level_db_hl: float, freq_hz: int, mode: str, table: CalibrationTable,
                             device_reference_db: float = DEVICE_REFERENCE_DB) -> float:
    """Variante a tono di riferimento unico (1 kHz): ignora gli offset per frequenza."""
    offset = table.get_offset(REFERENCE_FREQ, mode)
    return _db_to_amplitude(float(level_db_hl) + offset - float(device_reference_db))


AMPLITUDE_STRATEGIES = {
    "offset_table": compute_amplitude,
    "reference_tone": reference_tone_amplitude,
}


def offsets_from_thresholds(records, base: Optional[CalibrationTable] = None) -> CalibrationTable:
    """Calibrazione 'normoudente': aggiunge la soglia all'offset per ogni (freq, modalità) misurata.

    Con la nuova tabella la soglia di quell'ascoltatore cade a 0 dB HL.
    """
    table = base if base is not None else CalibrationTable.default()
    shifts: Dict[str, Dict[int, float]] = {mode: {} for mode in MODES}
    for r in records:
        shifts[r.mode][int(r.frequency)] = table.get_offset(r.frequency, r.mode) + float(r.level)
    for mode, updates in shifts.items():
        if updates:
            table = table.with_offsets(mode, updates)
    return table
