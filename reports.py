"""Monthly cost reports.

A report groups one user's costs for one calendar month by category. Reports
for months that are already over are persisted in the ``reports`` table the
first time they are computed and served from there afterwards; the current and
future months are always computed from the ``costs`` table.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence, Union
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from models import Cost, CostCategory, Report
from periods import MonthPeriod, month_period
from schemas import ID_MAX, ID_MIN
from services import InternalError, InvalidRequest


logger = logging.getLogger(__name__)

CATEGORY_ORDER: tuple[str, ...] = tuple(member.value for member in CostCategory)

# the year after MAX_YEAR must still be a valid datetime year
MIN_YEAR = 1
MAX_YEAR = 9998

_INT_RE = re.compile(r"^[+-]?\d+$")

GroupedCosts = dict[str, list[dict[str, object]]]
RawParam = Union[int, str, None]


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def empty_buckets() -> GroupedCosts:
    return {name: [] for name in CATEGORY_ORDER}


def format_costs(grouped: GroupedCosts) -> list[dict[str, list[dict[str, object]]]]:
    return [{name: grouped.get(name, [])} for name in CATEGORY_ORDER]


@dataclass(frozen=True)
class ReportKey:
    user_id: int
    year: int
    month: int


@dataclass(frozen=True)
class MonthlyReport:
    key: ReportKey
    costs: GroupedCosts
    from_cache: bool
    persisted: bool


def _parse_int(name: str, value: RawParam) -> int:
    if isinstance(value, bool):
        raise InvalidRequest(f"{name} must be a number")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not _INT_RE.match(text):
        raise InvalidRequest(f"{name} must be a number")
    return int(text)


def parse_report_key(user_id: RawParam, year: RawParam, month: RawParam) -> ReportKey:
    if any(value is None or value == "" for value in (user_id, year, month)):
        raise InvalidRequest("Missing required query parameters: id, year, month")
    key = ReportKey(
        user_id=_parse_int("id", user_id),
        year=_parse_int("year", year),
        month=_parse_int("month", month),
    )
    if not ID_MIN <= key.user_id <= ID_MAX:
        raise InvalidRequest("id is out of range")
    if not 1 <= key.month <= 12:
        raise InvalidRequest("month must be between 1 and 12")
    if not MIN_YEAR <= key.year <= MAX_YEAR:
        raise InvalidRequest(f"year must be between {MIN_YEAR} and {MAX_YEAR}")
    return key


class CostRecord(Protocol):
    description: str
    category: object
    sum: float
    created_at: datetime


class CostStore(Protocol):
    def find(
        self, user_id: int, start: datetime, end: datetime
    ) -> Sequence[CostRecord]: ...


class ReportStore(Protocol):
    def find_one(self, user_id: int, year: int, month: int) -> Optional[GroupedCosts]: ...

    def insert(self, user_id: int, year: int, month: int, costs: GroupedCosts) -> bool: ...


class ReportObserver(Protocol):
    def report_served(self, report: MonthlyReport) -> None: ...


class SqlCostStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, user_id: int, start: datetime, end: datetime) -> list[Cost]:
        stmt = (
            select(Cost)
            .where(
                Cost.user_id == user_id,
                Cost.created_at >= start,
                Cost.created_at < end,
            )
            .order_by(Cost.id)
        )
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc


class SqlReportStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_one(self, user_id: int, year: int, month: int) -> Optional[GroupedCosts]:
        stmt = select(Report).where(
            Report.user_id == user_id,
            Report.year == year,
            Report.month == month,
        )
        try:
            report = self.session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc
        if report is None:
            return None
        return json.loads(report.costs_json)

    def insert(self, user_id: int, year: int, month: int, costs: GroupedCosts) -> bool:
        report = Report(
            user_id=user_id,
            year=year,
            month=month,
            costs_json=json.dumps(costs),
        )
        self.session.add(report)
        try:
            self.session.commit()
        except IntegrityError:
            # another request cached the same month first
            self.session.rollback()
            logger.info(
                f"report_cache_conflict: user_id={user_id} year={year} month={month}"
            )
            return False
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalError(str(exc)) from exc
        return True


class LoggingReportObserver:
    def report_served(self, report: MonthlyReport) -> None:
        key = report.key
        source = "cache" if report.from_cache else "computed"
        logger.info(
            f"report_served: user_id={key.user_id} year={key.year} "
            f"month={key.month} source={source} persisted={report.persisted}"
        )


def _category_name(category: object) -> str:
    if isinstance(category, CostCategory):
        return category.value
    return str(category)


def group_costs(records: Sequence[CostRecord]) -> GroupedCosts:
    grouped = empty_buckets()
    for record in records:
        bucket = grouped.get(_category_name(record.category))
        if bucket is None:
            continue
        bucket.append(
            {
                "day": record.created_at.day,
                "description": record.description,
                "sum": record.sum,
            }
        )
    return grouped


class ReportEngine:
    def __init__(
        self,
        costs: CostStore,
        reports: ReportStore,
        *,
        clock: Callable[[], datetime] = local_now,
        observer: Optional[ReportObserver] = None,
    ) -> None:
        self.costs = costs
        self.reports = reports
        self.clock = clock
        self.observer = observer

    def get_monthly_report(
        self, user_id: RawParam, year: RawParam, month: RawParam
    ) -> MonthlyReport:
        key = parse_report_key(user_id, year, month)

        cached = self.reports.find_one(key.user_id, key.year, key.month)
        if cached is not None:
            report = MonthlyReport(key, cached, from_cache=True, persisted=False)
            self._notify(report)
            return report

        period = month_period(key.year, key.month)
        grouped = self.compute(key.user_id, period)

        persisted = False
        if period.is_past(self.clock().date()):
            persisted = self.reports.insert(key.user_id, key.year, key.month, grouped)

        report = MonthlyReport(key, grouped, from_cache=False, persisted=persisted)
        self._notify(report)
        return report

    def compute(self, user_id: int, period: MonthPeriod) -> GroupedCosts:
        records = self.costs.find(user_id, period.start, period.end)
        return group_costs(records)

    def _notify(self, report: MonthlyReport) -> None:
        if self.observer is None:
            return
        try:
            self.observer.report_served(report)
        except Exception:
            logger.exception("report_observer_failed")


def build_report_engine(
    session: Session,
    *,
    clock: Callable[[], datetime] = local_now,
    observer: Optional[ReportObserver] = None,
) -> ReportEngine:
    return ReportEngine(
        SqlCostStore(session),
        SqlReportStore(session),
        clock=clock,
        observer=observer if observer is not None else LoggingReportObserver(),
    )
