import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import Bill, BillingPeriod, Income
from months import MonthKey, clamp_day


logger = logging.getLogger(__name__)

RecurringEntity = Union[Bill, Income]


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def nth_weekday(key: MonthKey, week: int, weekday: int) -> date:
    """Date of the ``week``-th ``weekday`` of the month.

    ``weekday`` counts from 0=Sunday to 6=Saturday. Week 5 means the last such
    weekday, which falls back to the fourth one in months with only four.
    """
    py_weekday = (weekday - 1) % 7
    first = key.start
    offset = (py_weekday - first.weekday()) % 7
    candidate = first + timedelta(days=offset + 7 * (max(week, 1) - 1))
    while candidate.month != key.month:
        candidate -= timedelta(weeks=1)
    return candidate


def _monthly_occurrence(entity: RecurringEntity, key: MonthKey) -> date:
    if entity.day_of_month:
        return clamp_day(key, entity.day_of_month)
    if entity.recurrence_week and entity.recurrence_day is not None:
        return nth_weekday(key, entity.recurrence_week, entity.recurrence_day)
    if entity.start_date:
        return clamp_day(key, entity.start_date.day)
    return key.start


def _stepped_occurrences(start: date, step_days: int, key: MonthKey) -> list[date]:
    if start > key.end:
        return []
    current = start
    if current < key.start:
        steps = (key.start - current).days // step_days
        current += timedelta(days=steps * step_days)
        if current < key.start:
            current += timedelta(days=step_days)
    occurrences = []
    while current <= key.end:
        occurrences.append(current)
        current += timedelta(days=step_days)
    return occurrences


def _semi_annual_occurrences(start: date, key: MonthKey) -> list[date]:
    months_apart = (key.year - start.year) * 12 + (key.month - start.month)
    if months_apart < 0 or months_apart % 6 != 0:
        return []
    return [clamp_day(key, start.day)]


def occurrences_in_month(entity: RecurringEntity, key: MonthKey) -> list[date]:
    period = entity.billing_period or BillingPeriod.monthly
    if period == BillingPeriod.monthly:
        occurrence = _monthly_occurrence(entity, key)
        if entity.start_date and occurrence < entity.start_date:
            return []
        return [occurrence]

    if entity.start_date is None:
        logger.warning(
            f"recurrence_missing_start: name={entity.name} "
            f"period={period.value} treated_as=monthly"
        )
        return [_monthly_occurrence(entity, key)]

    if period == BillingPeriod.weekly:
        return _stepped_occurrences(entity.start_date, 7, key)
    if period == BillingPeriod.bi_weekly:
        return _stepped_occurrences(entity.start_date, 14, key)
    return _semi_annual_occurrences(entity.start_date, key)


def due_date_for(
    entity: RecurringEntity, key: MonthKey, occurrences: Optional[list[date]] = None
) -> Optional[date]:
    if entity.due_day:
        return clamp_day(key, entity.due_day)
    if occurrences is None:
        occurrences = occurrences_in_month(entity, key)
    return occurrences[0] if occurrences else None


def expected_amount_for(
    entity: RecurringEntity, key: MonthKey, occurrences: Optional[list[date]] = None
) -> int:
    if occurrences is None:
        occurrences = occurrences_in_month(entity, key)
    return entity.amount * len(occurrences)
