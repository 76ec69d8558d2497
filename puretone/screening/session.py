from __future__ import annotations
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..audio.calibration import AIR, CalibrationTable
from .records import LEFT, RIGHT, ResultsStore, ThresholdRecord, check_ear, check_mode, loads_records
from .threshold_run import RunConfig, ThresholdRun

log = logging.getLogger("puretone.screening")

DEFAULT_PLAN: Tuple[Tuple[str, str], ...] = ((LEFT, AIR), (RIGHT, AIR))


class AudiogramSession:
    """Concatena le passate (orecchio, modalità) di un esame.

    Una passata nuova nasce solo quando la precedente è completa: le passate
    sono sequenziali per costruzione. I risultati finiscono nel ResultsStore.
    """

    def __init__(self, config: RunConfig, calibration: CalibrationTable,
                 plan: Sequence[Tuple[str, str]] = DEFAULT_PLAN, player=None,
                 results: Optional[ResultsStore] = None,
                 on_error: Optional[Callable[[str], None]] = None,
                 on_finished: Optional[Callable[[ResultsStore], None]] = None):
        self.config = config
        self.calibration = calibration
        self.plan = [(check_ear(ear), check_mode(mode)) for ear, mode in plan]
        self.player = player
        self.results = results if results is not None else ResultsStore()
        self.on_error = on_error
        self.on_finished = on_finished
        self._pass_index = 0
        self._notified = False
        self.current: Optional[ThresholdRun] = None

    @classmethod
    def resume(cls, config, calibration, handoff_payload: str | None, plan=DEFAULT_PLAN, strict=False, **kwargs):
        """Riprende una sessione da un payload JSON di una passata precedente.

        Una passata del payload conta come fatta solo se copre tutte le
        frequenze della configurazione; le passate parziali vengono scartate
        e ripetute. Se non resta nulla da fare, on_finished scatta a start().
        """
        session = cls(config, calibration, plan=plan, **kwargs)
        prior = ResultsStore()
        prior.add_records(loads_records(handoff_payload, strict=strict))
        done = set()
        for ear, mode in dict.fromkeys((r.ear, r.mode) for r in prior.rows):
            records = prior.for_pass(ear, mode)
            missing = set(config.frequencies) - {r.frequency for r in records}
            if missing:
                log.warning("Passata %s %s incompleta nel payload (mancano %s Hz): verrà ripetuta",
                            ear, mode, sorted(missing))
                continue
            session.results.add_records(records)
            done.add((ear, mode))
        session.plan = [p for p in session.plan if p not in done]
        return session

    @property
    def is_finished(self) -> bool:
        return self._pass_index >= len(self.plan)

    def start(self) -> Optional[ThresholdRun]:
        if self.current is not None and not self.current.is_complete:
            return self.current
        return self._next_pass()

    def _next_pass(self) -> Optional[ThresholdRun]:
        if self.is_finished:
            self._finish()
            return None
        ear, mode = self.plan[self._pass_index]
        if self.player is not None:
            self.player.stop()
        self.current = ThresholdRun(self.config, self.calibration, ear, mode,
                                    player=self.player, on_complete=self._on_pass_complete,
                                    on_error=self.on_error)
        log.info("Inizio passata %d/%d: %s %s", self._pass_index + 1, len(self.plan), ear, mode)
        return self.current

    def _on_pass_complete(self, records: List[ThresholdRecord]) -> None:
        self.results.add_records(records)
        self._pass_index += 1
        self._next_pass()

    def _finish(self) -> None:
        self.current = None
        if self._notified:
            return
        self._notified = True
        log.info("Sessione completata: %d soglie", len(self.results.rows))
        if self.on_finished is not None:
            self.on_finished(self.results)

    def records(self) -> List[ThresholdRecord]:
        return list(self.results.rows)


def plan_for(ears: Iterable[str], modes: Iterable[str]) -> List[Tuple[str, str]]:
    """Piano modalità-per-modalità: prima tutte le passate in aria, poi in osso."""
    ears = list(ears)
    return [(ear, mode) for mode in modes for ear in ears]
