from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Callable, Optional

from .analysis import summarize
from .audio.calibration import AIR, BONE, CalibrationTable, load_table, offsets_from_thresholds, save_table
from .audio.playback import TonePlayer
from .errors import ConfigurationError, HandoffError
from .logs import configure_logging
from .paths import path_calibration
from .screening.records import EARS, LEFT, ResultsStore
from .screening.session import AudiogramSession, plan_for
from .settings import load_settings, run_config_from_settings

log = logging.getLogger("puretone")

COMMANDS = {
    "+": "increase_level",
    "-": "decrease_level",
    "p": "request_play",
    "m": "accept_threshold",
    "b": "undo",
}

HELP = "Comandi: p=suona, +=alza livello, -=abbassa livello, m=segna soglia, b=indietro, q=esci"


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="puretone", description="Audiometria tonale guidata")
    parser.add_argument("--ear", choices=EARS, default=LEFT, help="Orecchio da testare per primo")
    parser.add_argument("--both-ears", action="store_true", help="Testa entrambi gli orecchi in sequenza")
    parser.add_argument("--bone", action="store_true", help="Aggiunge le passate in conduzione ossea")
    parser.add_argument("--results", help="Payload JSON di una passata precedente (o @file)")
    parser.add_argument("--strict", action="store_true", help="Errore se il payload --results non è valido")
    parser.add_argument("--calibration", help="Tabella di calibrazione .json/.yaml")
    parser.add_argument("--calibrate", action="store_true",
                        help="Calibrazione con ascoltatore normoudente: salva gli offset corretti")
    parser.add_argument("--settings", help="File settings.json alternativo")
    parser.add_argument("--log-level", help="Livello di log (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def _read_payload(value: Optional[str]) -> Optional[str]:
    if value and value.startswith("@"):
        with open(value[1:], "r", encoding="utf-8") as f:
            return f.read()
    return value


def run_console(session: AudiogramSession, input_fn: Callable[[str], str] = input,
                out: Callable[[str], None] = print) -> bool:
    """Guida la sessione da console; ritorna True se tutte le passate sono state completate."""
    run = session.start()
    out(HELP)
    while run is not None:
        freqs = run.config.frequencies
        out(f"[{run.ear} {run.mode}] {run.current_freq()} Hz  {run.level:g} dB HL  ({run.index + 1}/{len(freqs)})")
        try:
            cmd = input_fn("> ").strip().lower()
        except EOFError:
            cmd = "q"
        if cmd == "q":
            return False
        action = COMMANDS.get(cmd)
        if action is None:
            out(HELP)
            continue
        getattr(run, action)()
        run = session.current
    return session.is_finished


def main(argv: Optional[list[str]] = None, input_fn: Callable[[str], str] = input,
         out: Callable[[str], None] = print, player=None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    settings = load_settings(args.settings)
    configure_logging(args.log_level or settings.get("log_level", "INFO"))
    try:
        config = run_config_from_settings(settings)
        cal_path = args.calibration or settings.get("calibration_file")
        if not cal_path and os.path.exists(path_calibration()):
            cal_path = path_calibration()
        calibration = load_table(cal_path) if cal_path else CalibrationTable.default()
        ears = [args.ear] + ([e for e in EARS if e != args.ear] if args.both_ears else [])
        modes = [AIR, BONE] if args.bone else [AIR]
        if player is None:
            player = TonePlayer(settings["sample_rate"], settings["tone_duration_ms"],
                                left_index=settings["left_channel_index"],
                                right_index=settings["right_channel_index"])
        session = AudiogramSession.resume(config, calibration, _read_payload(args.results),
                                          plan=plan_for(ears, modes), strict=args.strict,
                                          player=player, results=ResultsStore(),
                                          on_error=lambda msg: out(f"Impossibile riprodurre il tono: {msg}"))
    except (ConfigurationError, HandoffError, OSError) as e:
        log.error("%s", e)
        out(f"Errore: {e}")
        return 2
    finished = run_console(session, input_fn=input_fn, out=out)
    player.stop()
    out(session.results.to_wire())
    for entry in summarize(session.records()):
        out(f"{entry['ear']} {entry['mode']}: media {entry['average_db']} dB HL ({entry['classification']})")
    if args.calibrate and finished:
        saved = save_table(offsets_from_thresholds(session.records(), calibration), path_calibration())
        out(f"Calibrazione salvata in {saved}")
    return 0 if finished else 1
