'''
Full pipeline from a .hex file to dissolved oxygen.

Temperature, pressure and salinity would normally come from the
calibration equations of the respective sensors. Here we just assign fixed
values so that the oxygen step can run on the decoded voltages.
'''

import os
import pytest
import numpy as np
import xarray as xr
from oceants.file import sbe19
from oceants.ocean import oxygen


@pytest.fixture
def hex_file():
    '''
    Returns the path of the SBE19plus test file.
    '''
    return os.path.join(
        os.path.dirname(__file__), '..', '..', 'test_data', 'sbe_files',
        'sbe19plus', 'SBE19plus_01907035_2019_05_26.hex')


def test_hex_oxygen_pipeline(hex_file):
    '''
    Decode -> cast numbers -> oxygen from External Voltage 0
    '''
    out = sbe19.read_hex(hex_file)
    ds = sbe19.add_cast_variable(out['ds'], out['casts'])

    n = ds.sizes['scan_count']
    ds['Temperature (degC)'] = ('scan_count', np.full(n, 10.0))
    ds['Pressure (dbars)'] = ('scan_count', np.linspace(0, 30, n))
    ds['Salinity (psu)'] = ('scan_count', np.full(n, 34.0))

    coefficients = {'Soc': 0.4664, 'offset': -0.5153, 'Tau20': 1.49,
                    'A': -3.9628e-3, 'B': 1.8060e-4, 'C': -2.3781e-6,
                    'E': 0.036, 'D1': 1.92634e-4, 'D2': -4.64803e-2}
    ds = oxygen.oxygen(ds, 'External Voltage 0', coefficients)

    assert isinstance(ds, xr.Dataset)
    assert 'Oxygen (ml_per_l)' in ds
    assert ds['Oxygen (ml_per_l)'].sizes['scan_count'] == n
    assert np.isfinite(ds['Oxygen (ml_per_l)'].values).all()
    assert (ds['Oxygen (ml_per_l)'].values > 0).all()
    np.testing.assert_array_equal(ds['CAST'].values, [1, 1, 2, 2])
