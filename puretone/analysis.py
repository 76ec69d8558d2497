from __future__ import annotations
import math
from typing import Dict, Iterable, List, Optional

from .audio.calibration import AIR, BONE
from .screening.records import ThresholdRecord


# (limite superiore incluso, etichetta)
SEVERITY = [
    (25, "Normal"),
    (40, "Mild Loss"),
    (55, "Moderate Loss"),
    (70, "Moderately Severe"),
]
SEVERE = "Severe Loss"

PTA_BANDS = (500, 1000, 2000)


def classify(avg_db: float) -> str:
    for hi, label in SEVERITY:
        if avg_db <= hi:
            return label
    return SEVERE


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def average_threshold(levels: Iterable[float]) -> int:
    vals = [_round_half_up(v) for v in levels]
    if not vals:
        return 0
    return _round_half_up(sum(vals) / len(vals))


def _pta(map_: Dict[int, float], bands=PTA_BANDS) -> Optional[float]:
    vals = [map_[f] for f in bands if f in map_]
    if not vals:
        return None
    return sum(vals) / len(vals)


def air_bone_gap(records: Iterable[ThresholdRecord], ear: str) -> Dict[int, float]:
    """Differenza aria-osso per frequenza (solo dove esistono entrambe le misure)."""
    air: Dict[int, float] = {}
    bone: Dict[int, float] = {}
    for r in records:
        if r.ear != ear:
            continue
        (air if r.mode == AIR else bone)[r.frequency] = r.level
    return {f: air[f] - bone[f] for f in air if f in bone}


def summarize(records: Iterable[ThresholdRecord]) -> List[Dict]:
    """Sintesi per (orecchio, modalità) nell'ordine in cui compaiono le passate."""
    records = list(records)
    groups: Dict[tuple, Dict[int, float]] = {}
    for r in records:
        groups.setdefault((r.ear, r.mode), {})[r.frequency] = r.level
    out = []
    for (ear, mode), levels in groups.items():
        avg = average_threshold(levels.values())
        entry = {
            "ear": ear,
            "mode": mode,
            "average_db": avg,
            "classification": classify(avg),
            "pta_db": _pta(levels),
        }
        if mode == AIR and any(r.ear == ear and r.mode == BONE for r in records):
            entry["air_bone_gap"] = air_bone_gap(records, ear)
        out.append(entry)
    return out
