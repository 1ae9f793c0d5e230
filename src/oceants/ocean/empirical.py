'''
EMPIRICAL.PY

Collection of empirical formulas used in oceanography.

- Oxygen solubility (Garcia & Gordon, 1992)
'''

import numpy as np

# Garcia & Gordon (1992) constants, as given in the Seabird Data Processing
# Manual (rev. 7.26.8, p. 158)
_GG_A = (2.00907, 3.22014, 4.0501, 4.94457, -0.256847, 3.88767)
_GG_B = (-0.00624523, -0.00737614, -0.010341, -0.00817083)
_GG_C0 = -0.000000488682


def oxygen_solubility(salinity, temperature):
    '''
    Oxygen solubility (ml/l) of seawater in equilibrium with a standard
    moist atmosphere, per Garcia & Gordon (1992).

    salinity: Practical salinity (psu)
    temperature: Temperature (degC)

    Works on scalars and numpy arrays alike.
    '''
    salinity = np.asarray(salinity, dtype=float)
    temperature = np.asarray(temperature, dtype=float)

    Ts = np.log((298.15 - temperature) / (273.15 + temperature))

    A0, A1, A2, A3, A4, A5 = _GG_A
    B0, B1, B2, B3 = _GG_B

    oxy_sol = np.exp(
        A0 + A1*Ts + A2*Ts**2 + A3*Ts**3 + A4*Ts**4 + A5*Ts**5
        + salinity * (B0 + B1*Ts + B2*Ts**2 + B3*Ts**3)
        + _GG_C0 * salinity**2)

    return oxy_sol
