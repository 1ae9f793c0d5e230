"""
oceants.ocean.oxygen

Dissolved oxygen from SBE 43 sensor voltages.

References:

- Seabird SBE 43 Calibration Worksheet (without the tau/dvdt correction).
- Seabird Application Note 64-2, SBE 43 Dissolved Oxygen Sensor
  Calibration & Data Corrections (with the tau/dvdt correction).
"""

import logging
from typing import Mapping, Union

import numpy as np
import xarray as xr

from oceants.ocean.empirical import oxygen_solubility

logger = logging.getLogger(__name__)

SALINITY = "Salinity (psu)"
TEMPERATURE = "Temperature (degC)"
PRESSURE = "Pressure (dbars)"
OXYGEN = "Oxygen (ml_per_l)"

SBE43_COEFFICIENTS = ("Soc", "offset", "Tau20", "A", "B", "C", "E", "D1", "D2")


def oxygen(
    ds: xr.Dataset,
    voltage_var: str,
    coefficients: Mapping,
    coef_set: int = 1,
    tau_correction: bool = True,
) -> xr.Dataset:
    """
    Calculate dissolved oxygen (ml/l) from SBE 43 voltages (Application
    Note 64-2):

        tau = Tau20 * exp(D1*P + D2*(T - 20))
        oxygen = Soc * (V + offset + tau * dV/dt) * oxy_sol(S, T)
                 * (1 + A*T + B*T^2 + C*T^3) * exp(E*P / (T + 273.15))

    NOTE: dV/dt is the difference to the previous sample (0 for the first
    sample, or where the previous voltage is missing). The sampling interval
    is not used, so this is not the windowed (2 s) derivative of the
    application note.

    Parameters:
    - ds: Dataset containing "Salinity (psu)", "Temperature (degC)",
          "Pressure (dbars)" and *voltage_var*.
    - voltage_var: Name of the SBE 43 voltage variable (e.g.
          "External Voltage 0").
    - coefficients: Mapping with the calibration coefficients (Soc, offset,
          Tau20, A, B, C, E, D1, D2), or a calibration record with a list
          under "CalibrationCoefficients".
    - coef_set: Which entry of "CalibrationCoefficients" to use (if
          applicable). Default is 1.
    - tau_correction: Include the tau * dV/dt term. Set to False to match
          the calibration worksheet. Default is True.

    Returns:
    - A copy of *ds* with the variable "Oxygen (ml_per_l)" added.

    Raises:
    - KeyError: If required variables or coefficients are missing.
    """
    missing = [var_name for var_name in (SALINITY, TEMPERATURE, PRESSURE,
                                         voltage_var) if var_name not in ds]
    if missing:
        raise KeyError(
            f"Cannot calculate oxygen: missing variable(s) {missing}.")

    c = _get_coefficients(coefficients, coef_set)

    S = ds[SALINITY].values.astype(float)
    T = ds[TEMPERATURE].values.astype(float)
    P = ds[PRESSURE].values.astype(float)
    V = ds[voltage_var].values.astype(float)

    if tau_correction:
        tau = c["Tau20"] * np.exp(c["D1"] * P + c["D2"] * (T - 20))
        dvdt = _voltage_change(V)
    else:
        tau, dvdt = 0.0, 0.0

    K = T + 273.15
    oxy = (c["Soc"] * (V + c["offset"] + tau * dvdt)
           * oxygen_solubility(S, T)
           * (1.0 + c["A"] * T + c["B"] * T**2 + c["C"] * T**3)
           * np.exp(c["E"] * P / K))

    ds = ds.copy()
    ds[OXYGEN] = (ds[voltage_var].dims, oxy, {
        "long_name": "Dissolved oxygen (SBE 43)",
        "units": "ml l-1",
        "SBE_source_variable": voltage_var,
        "tau_correction": "yes" if tau_correction else "no",
    })
    logger.debug("Calculated %s from %s", OXYGEN, voltage_var)

    return ds


def _voltage_change(V: np.ndarray) -> np.ndarray:
    """
    Change in voltage since the previous sample.
    0 for the first sample and where the previous voltage is not finite.
    """
    if V.size == 0:
        return np.zeros_like(V)
    V_prev = np.concatenate([[np.nan], V[:-1]])
    dvdt = V - V_prev
    dvdt[~np.isfinite(V_prev)] = 0.0
    return dvdt


def _get_coefficients(
    coefficients: Mapping, coef_set: int = 1
) -> Mapping[str, Union[int, float]]:
    """
    Pick out the SBE 43 coefficients, checking that all are there.
    """
    if "CalibrationCoefficients" in coefficients:
        coef_sets = coefficients["CalibrationCoefficients"]
        try:
            coefficients = coef_sets[coef_set]
        except IndexError:
            raise KeyError(
                f"No calibration coefficient set {coef_set} (record has "
                f"{len(coef_sets)} set(s)).") from None

    missing = [key for key in SBE43_COEFFICIENTS if key not in coefficients]
    if missing:
        raise KeyError(
            f"Missing SBE 43 calibration coefficient(s): {missing}.")

    return {key: float(coefficients[key]) for key in SBE43_COEFFICIENTS}
