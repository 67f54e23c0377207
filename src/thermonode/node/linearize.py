"""
Cold-junction compensation for Type K thermocouples.

Amplifiers such as the MAX31855 report a probe temperature computed with a
fixed sensitivity of 41.276 µV/°C. That straight line drifts from the real
thermocouple curve as soon as the cold junction leaves 0 °C, so the reading is
converted back to a voltage, the cold junction's own voltage is added from the
NIST ITS-90 reference polynomials, and the sum is inverted with the NIST
inverse polynomials.

Coefficients are copied verbatim from NIST Monograph 175 (Type K).
"""
from __future__ import annotations

import math

import numpy as np

SENSITIVITY_MV_PER_C = 0.041276

# Temperature -> voltage (mV), -270 °C .. 0 °C
_T2V_NEGATIVE = np.array(
    [
        0.000000000000e00,
        0.394501280250e-01,
        0.236223735980e-04,
        -0.328589067840e-06,
        -0.499048287770e-08,
        -0.675090591730e-10,
        -0.574103274280e-12,
        -0.310888728940e-14,
        -0.104516093650e-16,
        -0.198892668780e-19,
        -0.163226974860e-22,
    ]
)

# Temperature -> voltage (mV), 0 °C .. 1372 °C
_T2V_POSITIVE = np.array(
    [
        -0.176004136860e-01,
        0.389212049750e-01,
        0.185587700320e-04,
        -0.994575928740e-07,
        0.318409457190e-09,
        -0.560728448890e-12,
        0.560750590590e-15,
        -0.320207200030e-18,
        0.971511471520e-22,
        -0.121047212750e-25,
    ]
)
_T2V_EXP_A0 = 0.118597600000e00
_T2V_EXP_A1 = -0.118343200000e-03
_T2V_EXP_A2 = 0.126968600000e03

# Voltage (mV) -> temperature, -5.891 mV .. 0 mV
_V2T_NEGATIVE = np.array(
    [
        0.0000000e00,
        2.5173462e01,
        -1.1662878e00,
        -1.0833638e00,
        -8.9773540e-01,
        -3.7342377e-01,
        -8.6632643e-02,
        -1.0450598e-02,
        -5.1920577e-04,
        0.0000000e00,
    ]
)

# Voltage (mV) -> temperature, 0 mV .. 20.644 mV
_V2T_LOW = np.array(
    [
        0.000000e00,
        2.508355e01,
        7.860106e-02,
        -2.503131e-01,
        8.315270e-02,
        -1.228034e-02,
        9.804036e-04,
        -4.413030e-05,
        1.057734e-06,
        -1.052755e-08,
    ]
)

# Voltage (mV) -> temperature, 20.644 mV .. 54.886 mV
_V2T_HIGH = np.array(
    [
        -1.318058e02,
        4.830222e01,
        -1.646031e00,
        5.464731e-02,
        -9.650715e-04,
        8.802193e-06,
        -3.110810e-08,
        0.000000e00,
        0.000000e00,
        0.000000e00,
    ]
)

MIN_MV = -5.891
SPLIT_MV = 20.644
MAX_MV = 54.886

OUT_OF_RANGE = float("nan")


def is_out_of_range(value: float) -> bool:
    return math.isnan(value)


def _polyval(coefficients: np.ndarray, x: float) -> float:
    # coefficients are stored lowest order first, as in the NIST tables
    return float(np.polynomial.polynomial.polyval(x, coefficients))


def cold_junction_mv(internal_c: float) -> float:
    """Thermoelectric voltage of the reference junction at ``internal_c``."""
    if internal_c < 0:
        return _polyval(_T2V_NEGATIVE, internal_c)
    exponential = _T2V_EXP_A0 * math.exp(_T2V_EXP_A1 * (internal_c - _T2V_EXP_A2) ** 2)
    return _polyval(_T2V_POSITIVE, internal_c) + exponential


def mv_to_celsius(millivolts: float) -> float:
    """Invert a Type K voltage, or return ``OUT_OF_RANGE``."""
    if millivolts < MIN_MV or millivolts > MAX_MV:
        return OUT_OF_RANGE
    if millivolts < 0:
        return _polyval(_V2T_NEGATIVE, millivolts)
    if millivolts < SPLIT_MV:
        return _polyval(_V2T_LOW, millivolts)
    return _polyval(_V2T_HIGH, millivolts)


def linearize(internal_c: float, raw_c: float) -> float:
    """
    Compensate an amplifier probe reading for cold-junction drift.

    Parameters
    ----------
    internal_c:
        Cold-junction (amplifier die) temperature in °C.
    raw_c:
        Probe temperature in °C as reported by the amplifier.

    Returns
    -------
    float
        Compensated probe temperature in °C, or ``OUT_OF_RANGE`` when the
        summed voltage leaves the NIST table range.
    """
    probe_mv = SENSITIVITY_MV_PER_C * (raw_c - internal_c)
    return mv_to_celsius(probe_mv + cold_junction_mv(internal_c))
