"""Occurrence date arithmetic for recurring transactions.

Everything here is pure: no database access and no notion of "today". The
catch-up generator may call these functions any number of times without
side effects.

Day-of-week masks use bit 0 for Sunday through bit 6 for Saturday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from goldfinger.core.exceptions import InvalidRuleConfiguration
from goldfinger.recurring.models import CustomUnit, Frequency

ALL_DAYS_MASK = 0b1111111
MAX_PREVIEW = 12
DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

# Frequencies anchored on a day of month, with their step in months
_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def _coerce_date(value, field: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidRuleConfiguration(f"{field} is not a valid date: {value!r}") from None


@dataclass(frozen=True)
class RecurrencePattern:
    """The schedule part of a recurring rule, validated on construction."""

    frequency: Frequency
    start_date: date
    custom_interval: int | None = None
    custom_unit: CustomUnit | None = None
    day_of_week_mask: int = 0
    day_of_month: int | None = None
    end_date: date | None = None

    def __post_init__(self):
        try:
            frequency = Frequency(self.frequency)
        except ValueError:
            raise InvalidRuleConfiguration(f"Unknown frequency: {self.frequency!r}") from None
        object.__setattr__(self, "frequency", frequency)

        start_date = _coerce_date(self.start_date, "start_date")
        if start_date is None:
            raise InvalidRuleConfiguration("start_date is required")
        object.__setattr__(self, "start_date", start_date)
        object.__setattr__(self, "end_date", _coerce_date(self.end_date, "end_date"))

        mask = self.day_of_week_mask or 0
        if not 0 <= mask <= ALL_DAYS_MASK:
            raise InvalidRuleConfiguration("day_of_week_mask must be between 0 and 127")
        object.__setattr__(self, "day_of_week_mask", mask)

        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise InvalidRuleConfiguration("day_of_month must be between 1 and 31")

        if frequency == Frequency.CUSTOM:
            if not self.custom_interval or self.custom_unit is None:
                raise InvalidRuleConfiguration(
                    "Custom frequency requires custom_interval and custom_unit"
                )
            if self.custom_interval < 1:
                raise InvalidRuleConfiguration("custom_interval must be at least 1")
            try:
                object.__setattr__(self, "custom_unit", CustomUnit(self.custom_unit))
            except ValueError:
                raise InvalidRuleConfiguration(
                    f"Unknown custom_unit: {self.custom_unit!r}"
                ) from None

    @classmethod
    def from_rule(cls, rule) -> RecurrencePattern:
        return cls(
            frequency=rule.frequency,
            start_date=rule.start_date,
            custom_interval=rule.custom_interval,
            custom_unit=rule.custom_unit,
            day_of_week_mask=rule.day_of_week_mask,
            day_of_month=rule.day_of_month,
            end_date=rule.end_date,
        )

    @property
    def anchor_day(self) -> int:
        """Day of month for month-based frequencies."""
        return self.day_of_month or self.start_date.day


def weekday_bit(day: date) -> int:
    return 1 << (day.isoweekday() % 7)


def is_day_selected(mask: int, day: date) -> bool:
    return bool(mask & weekday_bit(day))


def day_of_week_mask(days: list[int]) -> int:
    """Build a mask from day indices (0=Sunday .. 6=Saturday)."""
    mask = 0
    for day in days:
        mask |= 1 << day
    return mask


def days_from_mask(mask: int) -> list[int]:
    return [i for i in range(7) if mask & (1 << i)]


def _next_selected_day(after: date, mask: int) -> date:
    """First day strictly after ``after`` whose weekday is in ``mask``."""
    for offset in range(1, 8):
        candidate = after + timedelta(days=offset)
        if is_day_selected(mask, candidate):
            return candidate
    raise InvalidRuleConfiguration("day_of_week_mask selects no weekday")


def compute_first_occurrence(pattern: RecurrencePattern) -> date:
    """First occurrence on or after ``start_date``.

    The result may lie past ``end_date``; callers deactivate the rule in
    that case.
    """
    start = pattern.start_date

    if pattern.frequency == Frequency.WEEKLY and pattern.day_of_week_mask:
        return _next_selected_day(start - timedelta(days=1), pattern.day_of_week_mask)

    step = _MONTH_STEPS.get(pattern.frequency)
    if step is not None:
        candidate = start + relativedelta(day=pattern.anchor_day)
        if candidate < start:
            candidate = start + relativedelta(months=step, day=pattern.anchor_day)
        return candidate

    return start


def compute_next_occurrence(current: date, pattern: RecurrencePattern) -> date:
    """Occurrence following ``current``; always strictly later than it.

    Month-based steps clamp to the month length on every step using the
    pattern's day of month, so Jan 31 -> Feb 29 -> Mar 31.
    """
    frequency = pattern.frequency

    if frequency == Frequency.DAILY:
        return current + timedelta(days=1)

    if frequency == Frequency.WEEKLY:
        if pattern.day_of_week_mask:
            return _next_selected_day(current, pattern.day_of_week_mask)
        return current + timedelta(weeks=1)

    if frequency == Frequency.BIWEEKLY:
        return current + timedelta(weeks=2)

    if frequency in _MONTH_STEPS:
        return current + relativedelta(months=_MONTH_STEPS[frequency], day=pattern.anchor_day)

    # Custom
    interval = pattern.custom_interval
    if pattern.custom_unit == CustomUnit.DAYS:
        return current + timedelta(days=interval)
    if pattern.custom_unit == CustomUnit.WEEKS:
        return current + timedelta(weeks=interval)
    if pattern.custom_unit == CustomUnit.MONTHS:
        return current + relativedelta(months=interval)
    return current + relativedelta(years=interval)


def first_occurrence_on_or_after(
    pattern: RecurrencePattern, floor: date, max_steps: int = 100_000
) -> date:
    """Earliest occurrence of the pattern that is not before ``floor``."""
    occurrence = compute_first_occurrence(pattern)
    steps = 0
    while occurrence < floor:
        occurrence = compute_next_occurrence(occurrence, pattern)
        steps += 1
        if steps > max_steps:
            raise InvalidRuleConfiguration("Schedule does not reach the requested date")
    return occurrence


def preview_occurrences(
    pattern: RecurrencePattern, count: int = 5, from_date: date | None = None
) -> list[date]:
    """Upcoming occurrence dates, capped at ``MAX_PREVIEW`` and ``end_date``."""
    limit = max(0, min(count, MAX_PREVIEW))
    current = from_date or compute_first_occurrence(pattern)
    end = pattern.end_date

    occurrences: list[date] = []
    while len(occurrences) < limit and (end is None or current <= end):
        occurrences.append(current)
        current = compute_next_occurrence(current, pattern)
    return occurrences


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def describe_pattern(pattern: RecurrencePattern) -> str:
    """Human readable summary, e.g. ``Weekly on Mon, Thu``."""
    frequency = pattern.frequency

    if frequency == Frequency.DAILY:
        return "Daily"
    if frequency == Frequency.WEEKLY:
        if pattern.day_of_week_mask:
            days = ", ".join(DAY_NAMES[i] for i in days_from_mask(pattern.day_of_week_mask))
            return f"Weekly on {days}"
        return "Weekly"
    if frequency == Frequency.BIWEEKLY:
        return "Every 2 weeks"
    if frequency in (Frequency.MONTHLY, Frequency.QUARTERLY):
        label = "Monthly" if frequency == Frequency.MONTHLY else "Quarterly"
        if pattern.day_of_month:
            return f"{label} on the {_ordinal(pattern.day_of_month)}"
        return label
    if frequency == Frequency.YEARLY:
        return "Yearly"

    unit = pattern.custom_unit.value
    if pattern.custom_interval == 1:
        unit = unit[:-1]
    return f"Every {pattern.custom_interval} {unit}"
