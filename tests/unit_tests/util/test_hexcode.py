import numpy as np
import pytest
from oceants.util import hexcode


def test_hex_to_int_even_length():
    assert hexcode.hex_to_int('0C3500') == 800000


def test_hex_to_int_odd_length():
    assert hexcode.hex_to_int('ABC') == 2748


def test_hex_to_int_lower_case():
    assert hexcode.hex_to_int('ff') == 255


@pytest.mark.parametrize('bad', ['', 'XYZ', ' 1F', '0x1F', '-1', '1_F',
                                 None])
def test_hex_to_int_invalid_is_nan(bad):
    assert np.isnan(hexcode.hex_to_int(bad))
