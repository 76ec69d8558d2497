class ConfigurationError(ValueError):
    """Parametri di test o di calibrazione non validi (rilevati alla costruzione)."""


class HandoffError(ValueError):
    """Payload JSON di passaggio tra orecchi non interpretabile (solo in modalità strict)."""


class PlaybackUnavailable(RuntimeError):
    """Riproduzione audio non disponibile o fallita sul dispositivo di uscita."""
