"""
### OCEANTS.FILE.SBE19 ###

Parsing raw data from SBE 19plus V2 CTDs (.hex files) to xarray Datasets.

A .hex file consists of a text header (lines starting with "*") followed by
one line of hex characters per sample. The header tells us which optional
sensors and external voltage channels are installed, which in turn decides
which fields are present in each data line (see _hex_rules.py).

Key functions
-------------

read_hex:
  Decode a .hex file in a single pass. Returns a dictionary with the decoded
  data (an xarray Dataset with dimension 'scan_count') along with the cast
  records, voltage calibration offsets and pump delay from the header.

read_header:
  Parse the header of a .hex file into a dictionary. Used within read_hex,
  but may have its additional uses.

add_cast_variable, apply_voltage_calibration, convert_clock_time:
  Optional steps applied to a Dataset returned by read_hex.

to_netcdf:
  Export to a netCDF file.

Calibration equations (e.g. oxygen) live in oceants.ocean.
"""

# IMPORTS

import logging
import os
import warnings
from typing import Optional

import numpy as np
import pandas as pd
import xarray as xr

from oceants.file._hex_rules import (
    HEX_RULES,
    CLOCK_SENSOR,
    VOLTAGE_SENSOR,
    UNSUPPORTED_SENSORS,
    apply_operations,
    get_rule,
)
from oceants.util import hexcode, time

logger = logging.getLogger(__name__)

BANNER = "* SBE 19plus V 2.5.2"
END_FLAG = "*END*"
DEFAULT_TIME_ZONE = "America/Los_Angeles"
CLOCK_VARIABLE = "Time, Seconds since January 1, 2000"


# KEY FUNCTIONS


def read_hex(
    source_file: str,
    time_zone: Optional[str] = DEFAULT_TIME_ZONE,
    time_dim: Optional[bool] = False,
) -> dict:
    """
    Reads raw data and header information from a SBE 19plus V2 .hex file.

    The columns of the output Dataset are decided by the first data line:
    a field that is not decoded there (sensor not installed according to the
    header, or line too short) is left out for all following lines too.
    Values that cannot be decoded in later lines are NaN.

    If the file has no data section (no *END* line, or nothing decodable
    after it), a warning is issued and an empty Dataset is returned.

    Parameters
    ----------
    source_file : str
        Path to a .hex file.

    time_zone : str, optional
        Time zone in which the header date/times (cast start times, upload
        time) are interpreted. Default is "America/Los_Angeles". Set to None
        to keep naive time stamps.

    time_dim : bool, optional
        Convert the instrument clock (only recorded in non-profiling modes)
        to a TIME coordinate. Default is False.

    Returns
    -------
    dict
        "ds": xr.Dataset with the decoded data,
        "casts": list of cast records (dicts),
        "voltage_offsets": {"External Voltage N": {"offset", "slope"}},
        "pump_delay": pump delay in seconds (or None),
        "header": the full header dictionary (see read_header).
    """
    hdict = _new_header_dict(time_zone=time_zone)
    columns = None
    n_read = 0

    try:
        with open(source_file, "r", encoding="latin-1") as f:
            for n_line, line in enumerate(f):
                n_read = n_line + 1
                line = line.rstrip("\r\n")

                # Header lines (up to and including *END*)
                if columns is None:
                    hdict = _parse_header_line(line, hdict, n_line)
                    if hdict["hdr_end_line"] is not None:
                        columns = _HexColumns(hdict)
                    continue

                # Data lines
                columns.add_line(line)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"File not found: {source_file}") from e
    except OSError as e:
        raise OSError(
            f"Failed reading {source_file} at line {n_read + 1}: {e}") from e

    try:
        ds = _assemble_dataset(columns)
    except ValueError as err:
        warnings.warn(f"No data read from {source_file}: {err}")
        ds = xr.Dataset()
    else:
        logger.info(
            "Decoded %d data lines (%d variables) from %s",
            columns.n_rows, len(columns.schema), source_file)
        ds = _add_header_attrs(ds, hdict, source_file)
        if time_dim:
            ds = convert_clock_time(ds)

    return {
        "ds": ds,
        "casts": hdict["casts"],
        "voltage_offsets": hdict["voltage_offsets"],
        "pump_delay": hdict["pump_delay"],
        "header": hdict,
    }


def read_header(
    source_file: str, time_zone: Optional[str] = DEFAULT_TIME_ZONE
) -> dict:
    """
    Reads the header of a SBE 19plus V2 .hex file and returns a dictionary
    with the instrument configuration.

    Reading stops at the *END* line.

    Parameters:
    ----------
    source_file : str
        The path to the .hex file.
    time_zone : str, optional
        Time zone of the header date/times (see read_hex).

    Returns:
    -------
    dict
        Keys: instrument_model, serial_number, end_time, samples, mode,
        pump_delay, pressure_sensor, extra_sensors, voltages,
        voltage_offsets, casts, hdr_end_line (None if there is no *END*
        line), time_zone.
    """
    hdict = _new_header_dict(time_zone=time_zone)
    try:
        with open(source_file, "r", encoding="latin-1") as f:
            for n_line, line in enumerate(f):
                hdict = _parse_header_line(line.rstrip("\r\n"), hdict, n_line)
                if hdict["hdr_end_line"] is not None:
                    break
    except FileNotFoundError as e:
        raise FileNotFoundError(f"File not found: {source_file}") from e

    return hdict


def convert_clock_time(ds: xr.Dataset, epoch: str = "1970-01-01") -> xr.Dataset:
    """
    Convert the instrument clock (seconds since 2000-01-01) to a TIME
    coordinate along scan_count, in days since *epoch*.

    The clock is only part of the data lines when the instrument is not in
    profiling mode; if it is missing, a warning is issued and the Dataset is
    returned unchanged.
    """
    if CLOCK_VARIABLE not in ds:
        warnings.warn(
            f'No "{CLOCK_VARIABLE}" variable (profiling mode?). '
            "Unable to assign a TIME coordinate.")
        return ds

    time_stamps = time.sbe_seconds_to_datetime(ds[CLOCK_VARIABLE].values)
    time_num = time.dt64_to_datenum(
        np.asarray(time_stamps, dtype="datetime64[ns]"), epoch=epoch)

    ds = ds.assign_coords(TIME=("scan_count", time_num))
    ds.TIME.attrs["units"] = f"Days since {epoch} 00:00:00"
    ds.TIME.attrs["SBE_source_variable"] = CLOCK_VARIABLE

    return ds


def add_cast_variable(ds: xr.Dataset, casts: list) -> xr.Dataset:
    """
    Add a CAST variable holding the cast number of each sample.

    Cast sample ranges in the header are 1-based and inclusive. Samples
    outside any cast are NaN. Returns a copy of *ds*; the input is left
    unchanged.
    """
    ds = ds.copy()
    n_rows = ds.sizes.get("scan_count", 0)
    cast_num = np.full(n_rows, np.nan)

    for cast in casts:
        start = max(cast["start_sample"] - 1, 0)
        end = min(cast["end_sample"], n_rows)
        cast_num[start:end] = cast["cast"]

    ds["CAST"] = (("scan_count",), cast_num, {
        "long_name": "Cast number",
        "comment": "From the cast records (* cast) in the .hex header.",
    })

    return ds


def apply_voltage_calibration(
    ds: xr.Dataset, voltage_offsets: dict
) -> xr.Dataset:
    """
    Apply the per-channel calibration from the header
    ("* volt N: offset = ..., slope = ...") to the external voltages:

        V = offset + slope * V

    Channels without calibration info (or not present in the Dataset) are
    left as they are.
    """
    ds = ds.copy()
    applied = []

    for var_name, cal in voltage_offsets.items():
        if var_name not in ds:
            continue
        attrs = dict(ds[var_name].attrs)
        ds[var_name] = cal["offset"] + cal["slope"] * ds[var_name]
        attrs["calibration"] = (
            f"offset = {cal['offset']}, slope = {cal['slope']}")
        ds[var_name].attrs = attrs
        applied.append(var_name)

    if applied:
        now_str = pd.Timestamp.now().strftime("%Y-%m-%d")
        ds.attrs["history"] = ds.attrs.get("history", "") + (
            f"\n{now_str}: Applied header voltage calibration "
            f"({', '.join(applied)}).")

    return ds


def to_netcdf(
    ds: xr.Dataset,
    path: str = "./",
    file_name: Optional[str] = None,
) -> str:
    """
    Export a dataset produced by read_hex() to a netCDF file.

    Parameters:
    ----------
    ds : xr.Dataset
        The dataset produced by read_hex().
    path : str, optional
        Directory in which the netCDF file will be located.
    file_name : str, optional
        Name of the netCDF file. If None (default), the name of the .hex
        file will be used (no ".nc" suffix necessary).

    Returns:
    -------
    str
        The path of the netCDF file.
    """
    if file_name is None:
        file_name = ds.attrs.get("source_file", "sbe19plus.hex").replace(
            ".hex", ".nc")
    if not file_name.endswith(".nc"):
        file_name += ".nc"

    # "/" in variable names not allowed in netcdf
    ds_out = ds.rename(
        {var: var.replace("/", "_") for var in ds.variables if "/" in var})

    out_path = os.path.join(path, file_name)
    ds_out.to_netcdf(out_path)
    logger.info("Exported to %s", out_path)

    return out_path


# INTERNAL FUNCTIONS: HEADER


def _new_header_dict(time_zone: Optional[str] = DEFAULT_TIME_ZONE) -> dict:
    """
    Empty header dictionary: Will fill these parameters up as we go
    """
    return {
        "instrument_model": None,
        "serial_number": None,
        "end_time": None,
        "samples": None,
        "mode": "",
        "pump_delay": None,
        "pressure_sensor": {},
        "extra_sensors": {},
        "voltages": {},
        "voltage_offsets": {},
        "casts": [],
        "hdr_end_line": None,
        "time_zone": time_zone,
    }


def _parse_header_line(line: str, hdict: dict, n_line: int) -> dict:
    """
    Update the header dictionary from a single header line.

    Lines we don't recognize are ignored. Lines we recognize but that
    don't have the expected structure are skipped (logged at debug level).
    """
    if line.startswith(END_FLAG):
        # The data start on the following line
        if hdict["hdr_end_line"] is None:
            hdict["hdr_end_line"] = n_line
        return hdict

    for prefix, parser in _HEADER_PARSERS:
        if line.startswith(prefix):
            try:
                parser(line, hdict)
            except (ValueError, IndexError) as err:
                logger.debug(
                    "Skipping malformed header line %d (%r): %s",
                    n_line, line, err)
            break

    return hdict


def _parse_banner(line, hdict):
    """
    '* SBE 19plus V 2.5.2  SERIAL NO. 7035    05 Jun 2019 10:20:44'
    -> serial number, end date/time (first occurrence only)
    """
    if hdict["end_time"] is not None:
        return

    line_parts = [part.strip() for part in line.split("SERIAL NO.")]
    if len(line_parts) != 2:
        return

    serial_number = line_parts[1].split(" ")[0]
    end_time_str = line_parts[1].replace(serial_number, "", 1).strip()

    hdict["instrument_model"] = line_parts[0].replace("*", "").strip()
    hdict["serial_number"] = serial_number
    try:
        hdict["end_time"] = time.parse_sbe_datetime(
            end_time_str, time_zone=hdict["time_zone"])
    except ValueError:
        hdict["end_time"] = end_time_str


def _parse_samples(line, hdict):
    """
    '* samples = 3400, free = 4383000, casts = 1'
    """
    parts = [part.replace("*", "").strip() for part in line.split(",")]
    hdict["samples"] = int(parts[0].split("=")[1])


def _parse_mode(line, hdict):
    """
    '* mode = profile, minimum cond freq = 3000, pump delay = 60 sec'
    """
    parts = line.split(", ")
    if len(parts) != 3:
        return
    mode = parts[0].replace("* mode =", "").strip()
    pump_delay = float(
        parts[2].replace("pump delay =", "").replace("sec", ""))
    hdict["mode"], hdict["pump_delay"] = mode, pump_delay


def _key_value_pairs(line):
    """
    Split '* a = 1, b = 2' into [('a', '1'), ('b', '2')], dropping parts
    that are not key = value.
    """
    pairs = []
    for part in line.split(","):
        subparts = [s.replace("*", "").strip() for s in part.split("=")]
        if len(subparts) == 2:
            pairs.append(tuple(subparts))
    return pairs


def _parse_pressure_sensor(line, hdict):
    """
    '* pressure sensor = strain gauge, range = 508.0'
    """
    for key, value in _key_value_pairs(line):
        hdict["pressure_sensor"][key] = value


def _parse_extra_sensors(line, hdict):
    """
    '* SBE 38 = no, WETLABS = no, OPTODE = no, SBE63 = no, Gas Tension
    Device = no'

    Keys are stored without spaces so they match the rule sensor names
    ("SBE38", "GasTensionDevice").
    """
    for key, value in _key_value_pairs(line):
        hdict["extra_sensors"][key.replace(" ", "")] = value == "yes"


def _parse_voltages(line, hdict):
    """
    '* Ext Volt 0 = yes, Ext Volt 1 = no, ...'
    -> {'External Voltage 0': True, 'External Voltage 1': False, ...}
    """
    for key, value in _key_value_pairs(line):
        var_name = key.replace("Ext", "External").replace("Volt", "Voltage")
        hdict["voltages"][var_name] = value == "yes"


def _parse_voltage_offset(line, hdict):
    """
    '* volt 0: offset = -4.650526e-02, slope =  1.251855e+00'
    """
    if "offset =" not in line:
        return
    parts = line.split(":")
    if len(parts) != 2:
        return

    channel = parts[0].replace("* volt", "").strip()
    subparts = parts[1].split(",")
    hdict["voltage_offsets"][f"External Voltage {channel}"] = {
        "offset": float(subparts[0].replace("offset =", "").strip()),
        "slope": float(subparts[1].replace("slope =", "").strip()),
    }


def _parse_cast(line, hdict):
    """
    '* cast   1 26 May 2019 07:12:24 samples 1 to 3400, avg = 1, stop = mag
    switch'
    """
    parts = line.replace("* cast", "", 1).strip().split(",")

    subparts = [s.strip() for s in parts[0].split("samples")]
    cast_num, start_time_str = subparts[0].split(maxsplit=1)
    start_end = [s.strip() for s in subparts[1].split("to")]
    start_sample, end_sample = int(start_end[0]), int(start_end[1])
    avg = int(parts[1].split("=")[1].strip())

    if start_sample > end_sample:
        raise ValueError(
            f"Cast starts after it ends (samples {start_sample} to "
            f"{end_sample})")

    hdict["casts"].append({
        "cast": int(cast_num),
        "start_time": time.parse_sbe_datetime(
            start_time_str, time_zone=hdict["time_zone"]),
        "start_sample": start_sample,
        "end_sample": end_sample,
        "avg": avg,
    })


# (line prefix, parser) - the first matching prefix is used
_HEADER_PARSERS = (
    (BANNER, _parse_banner),
    ("* samples", _parse_samples),
    ("* mode =", _parse_mode),
    ("* pressure sensor", _parse_pressure_sensor),
    ("* SBE 38", _parse_extra_sensors),
    ("* Ext Volt", _parse_voltages),
    ("* volt ", _parse_voltage_offset),
    ("* cast", _parse_cast),
)


# INTERNAL FUNCTIONS: DATA


def _skip_rule(rule, hdict) -> bool:
    """
    Check whether the header tells us that the field described by *rule*
    is absent from the data lines.
    """
    if rule.sensor in UNSUPPORTED_SENSORS:
        return True
    if rule.sensor == VOLTAGE_SENSOR and not hdict["voltages"].get(
            rule.variable, False):
        return True
    if rule.sensor in hdict["extra_sensors"] and not hdict["extra_sensors"][
            rule.sensor]:
        return True
    if rule.sensor == CLOCK_SENSOR and hdict["mode"] == "profile":
        return True
    return False


def _decode_line(line: str, rules) -> dict:
    """
    Decode a single data line according to *rules* (in order).

    Returns {variable: value} for the fields that could be decoded. A field
    that runs past the end of the line, or is not valid hex, is skipped
    without moving on in the line.
    """
    values = {}
    n_char = 0

    for rule in rules:
        try:
            if n_char + rule.size > len(line):
                continue

            value = hexcode.hex_to_int(line[n_char:n_char + rule.size])
            if not np.isfinite(value):
                logger.debug(
                    "Invalid hex for %s at character %d: %r",
                    rule.variable, n_char, line)
                continue

            value = apply_operations(value, rule.operations)
            values[rule.variable] = float(value)
            n_char += rule.size

        except (ArithmeticError, TypeError, ValueError) as err:
            logger.warning(
                "Failed to decode %s from line %r: %s",
                rule.variable, line, err)

    return values


class _HexColumns:
    """
    Collects decoded data lines into columns (one numpy array per variable).

    The columns are decided by the first data line and stay fixed after
    that. Arrays are sized from the header sample count, and grown if the
    file holds more data lines than that.
    """

    def __init__(self, hdict: dict):
        self.rules = tuple(
            rule for rule in HEX_RULES if not _skip_rule(rule, hdict))
        self.n_samples = hdict["samples"] or 0
        self.schema = None
        self.data = {}
        self.n_rows = 0
        self._n_alloc = self.n_samples

    def add_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        values = _decode_line(line, self.rules)

        if self.schema is None:
            self.schema = tuple(values)
            self.rules = tuple(
                rule for rule in self.rules if rule.variable in values)
            self.data = {
                var_name: np.full(self._n_alloc, np.nan)
                for var_name in self.schema}

        if self.n_rows >= self._n_alloc:
            self._grow()

        for var_name, value in values.items():
            self.data[var_name][self.n_rows] = value

        self.n_rows += 1

    def _grow(self) -> None:
        if self._n_alloc == self.n_samples:
            if self.n_samples:
                warnings.warn(
                    f"More data lines than the header sample count "
                    f"({self.n_samples}). Extending the output.")
            else:
                warnings.warn(
                    "No sample count (* samples) in the header. Sizing the "
                    "output from the data lines.")
        n_new = max(2 * self._n_alloc, 1024)
        for var_name, arr in self.data.items():
            self.data[var_name] = np.concatenate(
                [arr, np.full(n_new - self._n_alloc, np.nan)])
        self._n_alloc = n_new


def _assemble_dataset(columns: Optional[_HexColumns]) -> xr.Dataset:
    """
    Build a Dataset from the decoded columns (in the order they were found
    in the first data line).

    Raises ValueError if no columns were decoded.
    """
    if columns is None:
        raise ValueError("No end of header (*END*) found.")
    if not columns.schema:
        raise ValueError("No decodable data lines after the header.")

    n_rows = max(columns.n_samples, columns.n_rows)
    ds = xr.Dataset()

    for var_name in columns.schema:
        rule = get_rule(var_name)
        attrs = {"long_name": var_name, "sensor": rule.sensor}
        if rule.is_ad_count:
            attrs["comment"] = "Raw A/D counts."
        ds[var_name] = xr.DataArray(
            columns.data[var_name][:n_rows], dims="scan_count", attrs=attrs)

    return ds


def _add_header_attrs(ds: xr.Dataset, hdict: dict, source_file: str):
    """
    Add global attributes read from the header.
    """
    ds.attrs["instrument_model"] = hdict["instrument_model"] or "SBE 19plus V2"
    if hdict["serial_number"] is not None:
        ds.attrs["instrument_serial_number"] = hdict["serial_number"]
    ds.attrs["source_file"] = os.path.basename(source_file)
    ds.attrs["sampling_mode"] = hdict["mode"]
    if hdict["pump_delay"] is not None:
        ds.attrs["pump_delay_s"] = hdict["pump_delay"]

    history = ""
    if isinstance(hdict["end_time"], pd.Timestamp):
        end_time = hdict["end_time"]
        if end_time.tzinfo is not None:
            end_time = end_time.tz_convert("UTC")
        ds.attrs["time_uploaded"] = time.datetime_to_ISO8601(end_time)
        history += f"{end_time.strftime('%Y-%m-%d')}: Data collection.\n"

    now_str = pd.Timestamp.now().strftime("%Y-%m-%d")
    history += f"{now_str}: Data decoded from .hex file."
    ds.attrs["history"] = history

    return ds
