"""Recurring delivery scheduler - next-delivery computation and delivery status rules"""

import re
from datetime import datetime, time, timedelta
from typing import Dict, FrozenSet, Iterable, Optional, Set, Union

from kirana_gateway.domain.exceptions import InvalidScheduleError, InvalidTransitionError, ValidationError
from kirana_gateway.domain.models import DeliveryStatus, Frequency
from kirana_gateway.utils.date_utils import WEEKDAY_NAMES, add_days, at_time_of_day, weekday_name

_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

DELIVERY_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.SCHEDULED: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.SKIPPED,
        DeliveryStatus.CANCELLED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.SKIPPED: set(),
    DeliveryStatus.CANCELLED: set(),
    DeliveryStatus.FAILED: set(),
}


def parse_delivery_time(value: str) -> time:
    """Parse an `HH:MM` delivery time (00:00 - 23:59)."""
    match = _TIME_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"Invalid delivery time {value!r}, expected HH:MM")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def parse_frequency(value: Union[str, Frequency]) -> Frequency:
    try:
        return Frequency(value)
    except ValueError:
        raise ValidationError(f"Invalid frequency {value!r}") from None


def parse_delivery_days(mask: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """
    Normalise a weekday mask such as "Monday, thursday" into {"monday", "thursday"}.

    Raises:
        InvalidScheduleError: mask is empty or names an unknown weekday
    """
    if mask is None:
        raise InvalidScheduleError("Custom frequency requires delivery days")

    parts = mask.split(",") if isinstance(mask, str) else list(mask)
    days = frozenset(p.strip().lower() for p in parts if p and p.strip())

    if not days:
        raise InvalidScheduleError("Custom frequency requires at least one delivery day")

    unknown = days - set(WEEKDAY_NAMES)
    if unknown:
        raise InvalidScheduleError(f"Unknown delivery days: {', '.join(sorted(unknown))}")

    return days


def compute_next_delivery(
    frequency: Union[str, Frequency],
    delivery_time: Union[str, time],
    delivery_days: Union[str, Iterable[str], None],
    reference: datetime,
    now: datetime,
    max_iterations: int = 366,
) -> datetime:
    """
    Compute the next delivery instant for a subscription.

    Starts at max(reference, now) with the delivery time applied, then advances
    until the candidate is strictly after `now`:
    - daily:  one day at a time
    - weekly: seven days at a time
    - custom: one day at a time, only landing on weekdays in `delivery_days`

    Raises:
        ValidationError: bad frequency or time format
        InvalidScheduleError: custom mask is empty/unparseable, or no valid
            day found within `max_iterations` steps

    Example:
        weekly at 06:00, now = Monday 07:00 → next Monday 06:00
    """
    frequency = parse_frequency(frequency)
    time_of_day = delivery_time if isinstance(delivery_time, time) else parse_delivery_time(delivery_time)

    start = max(reference, now)
    candidate = at_time_of_day(start, time_of_day)

    if frequency == Frequency.DAILY:
        while candidate <= now:
            candidate = add_days(candidate, 1)
        return candidate

    if frequency == Frequency.WEEKLY:
        while candidate <= now:
            candidate = add_days(candidate, 7)
        return candidate

    allowed_days = parse_delivery_days(delivery_days)
    for _ in range(max_iterations):
        if candidate > now and weekday_name(candidate) in allowed_days:
            return candidate
        candidate = add_days(candidate, 1)

    raise InvalidScheduleError(
        f"No delivery day found within {max_iterations} days for days={sorted(allowed_days)}"
    )


def within_horizon(
    candidate: datetime,
    now: datetime,
    horizon_days: int = 30,
    end_date: Optional[datetime] = None,
) -> bool:
    """Whether a delivery at `candidate` should be materialised now"""
    if candidate > now + timedelta(days=horizon_days):
        return False
    if end_date is not None and candidate > end_date:
        return False
    return True


def ensure_delivery_transition(current: Union[str, DeliveryStatus], target: Union[str, DeliveryStatus]) -> None:
    """Deliveries only move forward out of SCHEDULED; there is no un-delivering."""
    current, target = DeliveryStatus(current), DeliveryStatus(target)
    if target not in DELIVERY_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move delivery from {current.value} to {target.value}")


def delivery_charge_paise(
    price_per_unit_paise: int,
    quantity: float,
    actual_quantity: Optional[float] = None,
    actual_price_paise: Optional[int] = None,
) -> int:
    """Amount to bill for a completed delivery: actual price, else unit price × delivered quantity"""
    if actual_price_paise is not None:
        return actual_price_paise
    delivered = actual_quantity if actual_quantity is not None else quantity
    return round(price_per_unit_paise * delivered)
