from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import CostCategory
from schemas import CostIn, UserIn
from services import (
    CostService,
    InvalidRequest,
    LogService,
    NotFound,
    UserService,
    to_local_naive,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def add_user(session: Session, user_id: int = 123123) -> None:
    UserService(session).create(
        UserIn(
            id=user_id,
            first_name="Mosh",
            last_name="Israeli",
            birthday=date(1990, 1, 10),
        )
    )


class StaticDirectory:
    def __init__(self, known: set[int]) -> None:
        self.known = known

    def exists(self, user_id: int) -> bool:
        return user_id in self.known


def test_duplicate_user_id_is_rejected():
    session = make_session()
    add_user(session)

    with pytest.raises(InvalidRequest, match="already exists"):
        add_user(session)

    assert [u.id for u in UserService(session).list_all()] == [123123]


def test_user_details_include_total_of_all_costs():
    session = make_session()
    add_user(session)
    costs = CostService(session, UserService(session))
    costs.create(CostIn(description="Milk", category=CostCategory.food, userid=123123, sum=8))
    costs.create(
        CostIn(
            description="Rent",
            category=CostCategory.housing,
            userid=123123,
            sum=3000.5,
            created_at=datetime(2024, 3, 1, 9, 0),
        )
    )

    details = UserService(session).details(123123)

    assert details.first_name == "Mosh"
    assert details.last_name == "Israeli"
    assert details.id == 123123
    assert details.total == pytest.approx(3008.5)


def test_user_without_costs_has_zero_total():
    session = make_session()
    add_user(session)

    assert UserService(session).details(123123).total == 0


def test_unknown_user_lookup_raises_not_found():
    session = make_session()

    with pytest.raises(NotFound):
        UserService(session).details(42)


def test_cost_for_unknown_user_is_rejected():
    session = make_session()
    service = CostService(session, StaticDirectory(set()))

    with pytest.raises(InvalidRequest, match="User does not exist"):
        service.create(
            CostIn(description="Ghost", category=CostCategory.food, userid=999999, sum=100)
        )


def test_cost_defaults_to_creation_time():
    session = make_session()
    service = CostService(session, StaticDirectory({1}))

    cost = service.create(
        CostIn(description="Bus", category=CostCategory.education, userid=1, sum=0),
        now=datetime(2026, 10, 19, 8, 30),
    )

    assert cost.created_at == datetime(2026, 10, 19, 8, 30)
    assert cost.sum == 0


def test_aware_timestamps_are_stored_as_local_naive():
    session = make_session()
    service = CostService(session, StaticDirectory({123123}))

    cost = service.create(
        CostIn(
            description="Unit Test Item",
            category=CostCategory.food,
            userid=123123,
            sum=25,
            created_at=datetime(2050, 2, 15, 10, 0, tzinfo=timezone.utc),
        )
    )

    assert cost.created_at.tzinfo is None
    assert cost.created_at.date() == date(2050, 2, 15)


def test_to_local_naive_keeps_naive_values():
    moment = datetime(2025, 7, 1, 23, 30)
    assert to_local_naive(moment) is moment


def test_logs_are_listed_in_insertion_order():
    session = make_session()
    logs = LogService(session)
    logs.record("[Costs Service] GET /api/report")
    logs.record("[Users Service] POST /api/add", level="warning")

    entries = logs.list_all()

    assert [e.message for e in entries] == [
        "[Costs Service] GET /api/report",
        "[Users Service] POST /api/add",
    ]
    assert entries[1].level == "warning"
    assert entries[0].timestamp is not None
