from __future__ import annotations
import logging

import numpy as np

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio assente
    sd = None

from ..errors import PlaybackUnavailable
from .tone_generator import sine_wave

log = logging.getLogger("puretone.audio")


class TonePlayer:
    """Collaboratore di riproduzione: un tono alla volta, durata fissa, nessuna attesa.

    Ogni nuova richiesta ferma il tono precedente; lo stop automatico è dato
    dalla lunghezza del buffer.
    """

    def __init__(self, sample_rate=48000, tone_duration_ms=1500, left_index=0, right_index=1):
        self.sample_rate = int(sample_rate)
        self.tone_duration_ms = int(tone_duration_ms)
        self.channel_map = {"left": int(left_index), "right": int(right_index)}

    def _channel_count(self) -> int:
        idxs = [idx for idx in self.channel_map.values() if isinstance(idx, int) and idx >= 0]
        if not idxs:
            return 2
        return max(max(idxs) + 1, 1)

    def build_buffer(self, amplitude, freq_hz, ear):
        channel_key = "right" if ear == "right" else "left"
        channel_index = self.channel_map.get(channel_key)
        if not isinstance(channel_index, int) or channel_index < 0:
            channel_index = 0 if channel_key == "left" else 1
        channel_count = max(channel_index + 1, self._channel_count())
        mono = sine_wave(freq_hz, self.tone_duration_ms / 1000.0, self.sample_rate, amplitude=amplitude)
        buffer = np.zeros((len(mono), channel_count), dtype=np.float32)
        buffer[:, channel_index] = mono
        return buffer

    def play_tone(self, amplitude, freq_hz, ear):
        if sd is None:
            raise PlaybackUnavailable("sounddevice non disponibile: installa la dipendenza e PortAudio.")
        buffer = self.build_buffer(amplitude, freq_hz, ear)
        try:
            sd.stop()
            sd.play(buffer, self.sample_rate, blocking=False)
        except Exception as e:
            raise PlaybackUnavailable(f"Riproduzione audio fallita: {e}") from e
        log.debug("Tono %s Hz su %s, ampiezza %.6f", freq_hz, ear, amplitude)

    def stop(self):
        if sd is None:
            return
        try:
            sd.stop()
        except Exception as e:
            log.warning("Stop audio fallito: %s", e)
