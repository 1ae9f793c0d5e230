from typing import Union, Optional
import pandas as pd
from datetime import datetime
import numpy as np

# Date formats used in SBE 19plus V2 headers, e.g. "26 May 2019 07:12:24"
SBE_DATETIME_FORMATS = ("%d %b %Y %H:%M:%S", "%d %B %Y %H:%M:%S")

# The SBE 19plus V2 real-time clock counts seconds since this time
SBE_CLOCK_EPOCH = "2000-01-01"


def datetime_to_ISO8601(time_dt: datetime, zone: str = "Z") -> str:
    """
    Convert datetime to YYYY-MM-DDThh:mm:ss<zone>
    """
    time_fmt = f"%Y-%m-%dT%H:%M:%S{zone}"
    iso8601_time = time_dt.strftime(time_fmt)
    return iso8601_time


def dt64_to_datenum(dt64: np.datetime64, epoch: str = "1970-01-01") -> float:
    '''
    Convert numpy datetime64 to timenum (days since epoch)
    '''
    days_since_epoch = (
        (dt64 - np.datetime64(epoch)) / np.timedelta64(1, 'D'))
    return days_since_epoch


def parse_sbe_datetime(
    time_str: str, time_zone: Optional[str] = None
) -> pd.Timestamp:
    """
    Parse a date/time string as written in SBE headers
    ("DD Mon YYYY hh:mm:ss", month abbreviated or written out).

    If *time_zone* is given (e.g. "America/Los_Angeles"), the (naive) header
    time is interpreted as local time in that zone. Times in the repeated
    hour when daylight saving ends are taken as daylight time; times in the
    skipped hour when it starts are moved forward to the first valid time.

    E.g.:

    '26 May 2019 07:12:24' --> Timestamp('2019-05-26 07:12:24')

    Raises:
    - ValueError if the string does not match any known format.
    """
    time_str = " ".join(time_str.split())
    for fmt in SBE_DATETIME_FORMATS:
        try:
            time_stamp = pd.to_datetime(time_str, format=fmt)
        except ValueError:
            continue
        if time_zone is not None:
            time_stamp = time_stamp.tz_localize(
                time_zone, ambiguous=True, nonexistent="shift_forward")
        return time_stamp

    raise ValueError(
        f'Unable to parse "{time_str}" as a SBE date/time '
        '(expected e.g. "26 May 2019 07:12:24").')


def sbe_seconds_to_datetime(
    seconds: Union[float, np.ndarray],
    epoch: str = SBE_CLOCK_EPOCH,
) -> Union[pd.Timestamp, pd.DatetimeIndex]:
    """
    Convert SBE clock counts (seconds since 2000-01-01) to time stamps.
    NaN counts become NaT.
    """
    return pd.to_datetime(seconds, unit="s", origin=pd.Timestamp(epoch))
