import numpy as np

def sine_wave(freq_hz, duration_s, sample_rate, amplitude=0.2, phase=0.0, ramp_s=0.02):
    t = np.arange(int(duration_s * sample_rate)) / sample_rate
    wave = amplitude * np.sin(2 * np.pi * freq_hz * t + phase)
    # rampa coseno su attacco/rilascio per evitare click
    n_ramp = min(int(ramp_s * sample_rate), len(wave) // 2)
    if n_ramp > 0:
        ramp = 0.5 * (1 - np.cos(np.pi * np.arange(n_ramp) / n_ramp))
        wave[:n_ramp] *= ramp
        wave[-n_ramp:] *= ramp[::-1]
    return wave.astype(np.float32)
