from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class MonthPeriod:
    year: int
    month: int
    start: datetime
    end: datetime  # exclusive

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def is_past(self, today: date) -> bool:
        return self.year < today.year or (
            self.year == today.year and self.month < today.month
        )


def month_period(year: int, month: int) -> MonthPeriod:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return MonthPeriod(year, month, start, end)


def previous_month(today: date) -> tuple[int, int]:
    first_this = today.replace(day=1)
    last_month_end = first_this - date.resolution
    return last_month_end.year, last_month_end.month

