import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from errors import ValidationError


_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True)
class MonthKey:
    year: int
    month: int

    @property
    def slug(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return self.next().start - date.resolution

    @property
    def days(self) -> int:
        return self.end.day

    def next(self) -> "MonthKey":
        if self.month == 12:
            return MonthKey(self.year + 1, 1)
        return MonthKey(self.year, self.month + 1)

    def previous(self) -> "MonthKey":
        if self.month == 1:
            return MonthKey(self.year - 1, 12)
        return MonthKey(self.year, self.month - 1)

    def contains(self, target: date) -> bool:
        return target.year == self.year and target.month == self.month

    def __str__(self) -> str:
        return self.slug


def parse_month(value: Optional[str]) -> MonthKey:
    if not value:
        raise ValidationError("Month is required (expected YYYY-MM)")
    match = _MONTH_RE.match(value.strip())
    if not match:
        raise ValidationError(
            f"Invalid month format '{value}'. Expected YYYY-MM (e.g., 2025-01)"
        )
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month '{value}': month must be 01-12")
    if year < 1970:
        raise ValidationError(f"Invalid month '{value}': year must be 1970 or later")
    return MonthKey(year, month)


def month_of(target: date) -> MonthKey:
    return MonthKey(target.year, target.month)


def clamp_day(key: MonthKey, day: int) -> date:
    return date(key.year, key.month, min(max(day, 1), key.days))
