from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from ..audio.calibration import AIR, BONE, MODES
from ..errors import ConfigurationError, HandoffError

log = logging.getLogger("puretone.screening")

LEFT = "left"
RIGHT = "right"
EARS = (LEFT, RIGHT)

# Codici di modalità nel payload JSON di passaggio
WIRE_TYPES = {AIR: "AC", BONE: "BC"}
_MODE_FROM_WIRE = {v: k for k, v in WIRE_TYPES.items()}


def check_ear(ear: str) -> str:
    if ear not in EARS:
        raise ConfigurationError(f"Orecchio non valido: {ear!r} (atteso 'left' o 'right').")
    return ear


def check_mode(mode: str) -> str:
    if mode not in MODES:
        raise ConfigurationError(f"Modalità non valida: {mode!r} (attesa 'air' o 'bone').")
    return mode


@dataclass(frozen=True)
class ThresholdRecord:
    frequency: int
    level: float
    ear: str
    mode: str

    def to_wire(self) -> Dict[str, Any]:
        return {"freq": self.frequency, "dbLevel": self.level, "ear": self.ear, "type": WIRE_TYPES[self.mode]}

    @staticmethod
    def from_wire(d: Dict[str, Any]) -> "ThresholdRecord":
        mode = _MODE_FROM_WIRE.get(d["type"])
        if mode is None:
            raise ValueError(f"tipo di conduzione sconosciuto: {d['type']!r}")
        ear = str(d["ear"]).lower()
        if ear not in EARS:
            raise ValueError(f"orecchio sconosciuto: {d['ear']!r}")
        level = d["dbLevel"]
        freq = d["freq"]
        if isinstance(level, bool) or not isinstance(level, (int, float)):
            raise ValueError("dbLevel deve essere numerico")
        if isinstance(freq, bool) or not isinstance(freq, (int, float)) or freq <= 0:
            raise ValueError("freq deve essere un numero positivo")
        return ThresholdRecord(frequency=int(freq), level=float(level), ear=ear, mode=mode)


def dumps_records(records: Iterable[ThresholdRecord]) -> str:
    return json.dumps([r.to_wire() for r in records])


def loads_records(payload: str | None, strict: bool = False) -> List[ThresholdRecord]:
    """Interpreta il payload di passaggio tra orecchi.

    Un payload malformato vale come lista vuota (e viene loggato), a meno di strict=True.
    """
    if not payload:
        return []
    try:
        data = json.loads(payload)
        if not isinstance(data, list):
            raise ValueError("atteso un array JSON")
        return [ThresholdRecord.from_wire(item) for item in data]
    except (ValueError, KeyError, TypeError) as exc:
        if strict:
            raise HandoffError(f"Payload risultati non valido: {exc}") from exc
        log.warning("Payload risultati non valido, ignorato: %s", exc)
        return []


class ResultsStore:
    def __init__(self):
        # passate completate concatenate nell'ordine di arrivo
        self.rows: List[ThresholdRecord] = []

    def add_records(self, records: Iterable[ThresholdRecord]) -> None:
        self.rows.extend(records)

    def for_pass(self, ear, mode) -> List[ThresholdRecord]:
        return [r for r in self.rows if r.ear == ear and r.mode == mode]

    def to_rows(self):
        # Righe tabellari per la UI
        return [[r.ear, WIRE_TYPES[r.mode], r.frequency, r.level] for r in self.rows]

    def to_map_by_ear(self, mode=AIR):
        """Aggrega risultati in {'left': {freq: db}, 'right': {...}} (ultima misura per freq vince)."""
        out = {LEFT: {}, RIGHT: {}}
        for r in self.rows:
            if r.mode == mode:
                out[r.ear][r.frequency] = r.level
        return out

    def to_wire(self) -> str:
        return dumps_records(self.rows)
