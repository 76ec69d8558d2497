from __future__ import annotations
from typing import Any, Dict, Optional
import json
import logging
import os

from .audio.calibration import DEVICE_REFERENCE_DB, STD_FREQS
from .errors import ConfigurationError
from .paths import path_settings
from .screening.threshold_run import DEFAULT_START_LEVEL, DEFAULT_STEP_DB, MAX_DB_HL, MIN_DB_HL, RunConfig

log = logging.getLogger("puretone")


def _default_settings() -> Dict[str, Any]:
    return {
        'frequencies_hz': list(STD_FREQS),
        'start_level_dbhl': DEFAULT_START_LEVEL,
        'step_db': DEFAULT_STEP_DB,
        'min_level_dbhl': MIN_DB_HL,
        'max_level_dbhl': MAX_DB_HL,
        'device_reference_db': DEVICE_REFERENCE_DB,
        'amplitude_strategy': 'offset_table',
        'tone_duration_ms': 1500,
        'sample_rate': 48000,
        'left_channel_index': 0,
        'right_channel_index': 1,
        'calibration_file': None,
        'log_level': 'INFO',
    }


def load_settings(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or path_settings()
    defaults = _default_settings()
    if not os.path.exists(path):
        return defaults
    try:
        with open(path, 'r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("Impostazioni illeggibili (%s), uso i valori predefiniti: %s", path, exc)
        return defaults
    if not isinstance(data, dict):
        log.warning("Impostazioni non valide in %s, uso i valori predefiniti", path)
        return defaults
    for key, value in defaults.items():
        data.setdefault(key, value)
    return data


def save_settings(settings: Dict[str, Any], path: Optional[str] = None) -> str:
    path = path or path_settings()
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, 'w', encoding='utf-8') as handle:
        json.dump(settings, handle, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)
    return path


def run_config_from_settings(settings: Dict[str, Any]) -> RunConfig:
    try:
        return RunConfig(
            frequencies=tuple(int(f) for f in settings['frequencies_hz']),
            start_level=float(settings['start_level_dbhl']),
            step=float(settings['step_db']),
            min_level=float(settings['min_level_dbhl']),
            max_level=float(settings['max_level_dbhl']),
            device_reference_db=float(settings['device_reference_db']),
            amplitude_strategy=str(settings['amplitude_strategy']),
        )
    except ConfigurationError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Impostazioni di test non valide: {exc}") from exc
