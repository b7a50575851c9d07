"""Date manipulation utilities"""

from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def weekday_name(moment: datetime) -> str:
    """Lower-case English weekday name (datetime.weekday() order)"""
    return WEEKDAY_NAMES[moment.weekday()]


def at_time_of_day(moment: datetime, time_of_day: time) -> datetime:
    """Same calendar date as `moment`, with the clock set to `time_of_day`"""
    return moment.replace(
        hour=time_of_day.hour,
        minute=time_of_day.minute,
        second=0,
        microsecond=0,
    )


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)


def to_shop_local(moment: datetime, tz_name: str) -> datetime:
    """Naive wall-clock time in the shop's timezone; naive input is already shop-local"""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_now(tz_name: str) -> datetime:
    """Naive wall-clock time in the shop's timezone"""
    return to_shop_local(datetime.now(ZoneInfo(tz_name)), tz_name)
