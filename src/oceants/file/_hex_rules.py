"""
Decoding rules for SBE 19plus V2 raw HEX data lines.

Every data line is a run of hex characters with no delimiters. The fields
appear in the order of HEX_RULES below; fields belonging to sensors that are
not installed (according to the file header) are simply absent from the
line, so the rule order also determines the character offset of each field.

Scaling follows the SBE 19plus V2 manual ("Data Formats", output format 0 -
raw HEX). Operations are applied left to right.

New sensors are supported by adding a rule at the right position.
"""

import operator
from typing import NamedTuple, Tuple, Callable


class HexRule(NamedTuple):
    sensor: str
    variable: str
    size: int
    is_ad_count: bool = False
    operations: Tuple[Tuple[Callable, float], ...] = ()


VOLTAGE_SENSOR = "Voltage"
CLOCK_SENSOR = "Clock"

# No header flag exists for these, so we cannot tell whether their fields are
# present in the data lines. They are always treated as absent.
UNSUPPORTED_SENSORS = ("SeaFET", "DualGTP", "DualGasTensionDevice")

_div = operator.truediv
_sub = operator.sub

HEX_RULES = (
    HexRule("Temperature", "Temperature A/D Counts", 6, is_ad_count=True),
    HexRule("Conductivity", "Conductivity Frequency", 6,
            operations=((_div, 256),)),
    HexRule("Pressure", "Pressure A/D Counts", 6, is_ad_count=True),
    HexRule("Pressure", "Pressure Temperature Compensation Voltage", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 0", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 1", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 2", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 3", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 4", 4,
            operations=((_div, 13107),)),
    HexRule(VOLTAGE_SENSOR, "External Voltage 5", 4,
            operations=((_div, 13107),)),
    HexRule("SBE38", "SBE38 Temperature", 6,
            operations=((_div, 100000), (_sub, 10))),
    HexRule("WETLABS", "WETLABS Signal Counts", 12),
    HexRule("GasTensionDevice", "GTD Pressure", 6,
            operations=((_div, 100000),)),
    HexRule("GasTensionDevice", "GTD Temperature", 6,
            operations=((_div, 100000), (_sub, 10))),
    HexRule("OPTODE", "OPTODE Oxygen", 6,
            operations=((_div, 10000), (_sub, 10))),
    HexRule("SBE63", "SBE63 Oxygen Phase", 6,
            operations=((_div, 100000), (_sub, 10))),
    HexRule("SBE63", "SBE63 Oxygen Temperature Voltage", 6,
            operations=((_div, 1000000), (_sub, 1))),
    HexRule("SeaFET", "SeaFET Internal Reference Cell Voltage", 7,
            operations=((_div, 1000000), (_sub, 8))),
    HexRule("SeaFET", "SeaFET External Reference Cell Voltage", 12,
            operations=((_div, 1000000), (_sub, 8))),
    HexRule(CLOCK_SENSOR, "Time, Seconds since January 1, 2000", 8),
)


def apply_operations(value, operations):
    """
    Apply the (operator, operand) pairs of a rule to a decoded value, in
    order.
    """
    for op, operand in operations:
        value = op(value, operand)
    return value


def get_rule(variable: str) -> HexRule:
    """
    Look up a rule by its variable (column) name.
    """
    for rule in HEX_RULES:
        if rule.variable == variable:
            return rule
    raise KeyError(f"No hex decoding rule for variable '{variable}'.")
