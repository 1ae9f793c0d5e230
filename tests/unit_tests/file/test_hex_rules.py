import pytest
from oceants.file import _hex_rules
from oceants.file._hex_rules import HEX_RULES, apply_operations, get_rule


def test_rule_order_and_widths():
    assert [rule.variable for rule in HEX_RULES[:4]] == [
        'Temperature A/D Counts', 'Conductivity Frequency',
        'Pressure A/D Counts', 'Pressure Temperature Compensation Voltage']
    assert HEX_RULES[-1].sensor == _hex_rules.CLOCK_SENSOR
    assert HEX_RULES[-1].size == 8
    assert len(HEX_RULES) == 20


def test_variable_names_are_unique():
    names = [rule.variable for rule in HEX_RULES]
    assert len(names) == len(set(names))


def test_six_external_voltages():
    volts = [rule.variable for rule in HEX_RULES
             if rule.sensor == _hex_rules.VOLTAGE_SENSOR]
    assert volts == [f'External Voltage {n}' for n in range(6)]


def test_ad_count_rules_have_no_scaling():
    for rule in HEX_RULES:
        if rule.is_ad_count:
            assert rule.operations == ()


def test_operations_divide_then_subtract():
    '''
    Order matters: 1500000 / 100000 - 10 = 5 (and not
    (1500000 - 10) / 100000).
    '''
    rule = get_rule('SBE38 Temperature')
    assert apply_operations(1500000, rule.operations) == pytest.approx(5.0)


def test_conductivity_scaling():
    rule = get_rule('Conductivity Frequency')
    assert apply_operations(800000, rule.operations) == 3125.0


def test_no_operations_returns_value():
    assert apply_operations(42, ()) == 42


def test_get_rule_unknown():
    with pytest.raises(KeyError):
        get_rule('Not a variable')
