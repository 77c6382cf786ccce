"""
Post-run Analysis

Force coefficient statistics and vortex shedding frequency (Strouhal
number) from the diagnostics of a finished run.

    St = f * D / U
"""

import numpy as np
from scipy import signal
from scipy.fft import rfft, rfftfreq


def force_coefficients(samples):
    """
    Split force samples into arrays.

    Parameters
    ----------
    samples : list of ForceSample

    Returns
    -------
    t, cd, cl : ndarray
        Sample times and drag / lift coefficients
    """
    t = np.array([s.t for s in samples], dtype=np.float64)
    cd = np.array([s.Cd for s in samples], dtype=np.float64)
    cl = np.array([s.Cl for s in samples], dtype=np.float64)
    return t, cd, cl


def _tail(values, discard_fraction):
    if not 0.0 <= discard_fraction < 1.0:
        raise ValueError(f"discard_fraction must be in [0, 1), got {discard_fraction}")
    start = int(len(values) * discard_fraction)
    return values[start:]


def summarize_forces(samples, discard_fraction=0.5):
    """
    Mean drag and lift statistics over the settled part of a run.

    Parameters
    ----------
    samples : list of ForceSample
    discard_fraction : float
        Leading fraction of the samples treated as transient

    Returns
    -------
    summary : dict
        'C_D', 'C_D_std', 'C_L_rms', 'C_L_amplitude'
    """
    _, cd, cl = force_coefficients(samples)
    cd = _tail(cd, discard_fraction)
    cl = _tail(cl, discard_fraction)

    if len(cd) == 0:
        raise ValueError("no force samples left after discarding the transient")

    return {
        "C_D": float(np.mean(cd)),
        "C_D_std": float(np.std(cd)),
        "C_L_rms": float(np.sqrt(np.mean(cl ** 2))),
        "C_L_amplitude": float(0.5 * (np.max(cl) - np.min(cl))),
    }


def shedding_frequency(series, dt=1.0, discard_fraction=0.5):
    """
    Dominant frequency of a periodic signal.

    The transient is discarded, the linear trend removed, and the peak of the
    one-sided amplitude spectrum (excluding the zero bin) is returned.

    Parameters
    ----------
    series : array_like
        Probe or lift-coefficient samples
    dt : float
        Time between samples in lattice steps
    discard_fraction : float
        Leading fraction treated as transient

    Returns
    -------
    frequency : float
        Dominant frequency in 1 / lattice step
    """
    values = _tail(np.asarray(series, dtype=np.float64), discard_fraction)
    if len(values) < 4:
        raise ValueError(f"need at least 4 samples for a spectrum, got {len(values)}")

    values = signal.detrend(values)
    spectrum = np.abs(rfft(values))
    freqs = rfftfreq(len(values), d=dt)

    peak = np.argmax(spectrum[1:]) + 1
    return float(freqs[peak])


def strouhal_number(series, d_char, u_char, dt=1.0, discard_fraction=0.5):
    """
    Strouhal number St = f * D / U from a shedding signal.

    Parameters
    ----------
    series : array_like
        Probe velocity (every step) or lift coefficient samples
    d_char : float
        Characteristic length D
    u_char : float
        Characteristic velocity U
    dt : float
        Sampling interval of ``series`` in lattice steps

    Returns
    -------
    st : float
    """
    return shedding_frequency(series, dt=dt, discard_fraction=discard_fraction) * d_char / u_char
