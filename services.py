from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from models import Cost, Log, User
from schemas import CostIn, UserDetailsOut, UserIn


logger = logging.getLogger(__name__)


class InvalidRequest(ValueError):
    pass


class NotFound(LookupError):
    pass


class InternalError(RuntimeError):
    pass


class UserDirectory(Protocol):
    def exists(self, user_id: int) -> bool: ...


def to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    tz = ZoneInfo(get_settings().timezone)
    return moment.astimezone(tz).replace(tzinfo=None)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: UserIn) -> User:
        user = User(
            id=data.id,
            first_name=data.first_name,
            last_name=data.last_name,
            birthday=data.birthday,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise InvalidRequest("User ID already exists") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalError(str(exc)) from exc
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user

    def exists(self, user_id: int) -> bool:
        stmt = select(User.id).where(User.id == user_id).limit(1)
        try:
            return self.session.execute(stmt).scalar_one_or_none() is not None
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc

    def get(self, user_id: int) -> User:
        try:
            user = self.session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc
        if not user:
            raise NotFound("User not found")
        return user

    def total_costs(self, user_id: int) -> float:
        stmt = select(func.coalesce(func.sum(Cost.sum), 0)).where(
            Cost.user_id == user_id
        )
        try:
            return float(self.session.execute(stmt).scalar_one() or 0)
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc

    def details(self, user_id: int) -> UserDetailsOut:
        user = self.get(user_id)
        return UserDetailsOut(
            first_name=user.first_name,
            last_name=user.last_name,
            id=user.id,
            total=self.total_costs(user.id),
        )

    def list_all(self) -> list[User]:
        try:
            return list(self.session.scalars(select(User).order_by(User.id)).all())
        except SQLAlchemyError as exc:
            raise InternalError(str(exc)) from exc


class CostService:
    def __init__(self, session: Session, directory: UserDirectory) -> None:
        self.session = session
        self.directory = directory

    def create(self, data: CostIn, *, now: Optional[datetime] = None) -> Cost:
        if not self.directory.exists(data.userid):
            raise InvalidRequest("User does not exist.")
        if data.created_at is not None:
            created_at = to_local_naive(data.created_at)
        else:
            created_at = now or datetime.now(
                ZoneInfo(get_settings().timezone)
            ).replace(tzinfo=None)
        cost = Cost(
            user_id=data.userid,
            description=data.description,
            category=data.category,
            sum=data.sum,
            created_at=created_at,
        )
        self.session.add(cost)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalError(str(exc)) from exc
        self.session.refresh(cost)
        logger.info(
            f"cost_created: id={cost.id} user_id={cost.user_id} "
            f"category={cost.category.value}"
        )
        return cost


class LogService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def record(self, message: str, level: str = "info") -> Log:
        entry = Log(level=level, message=message)
        self.session.add(entry)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return entry

    def list_all(self) -> list[Log]:
        try:
            return list(self.session.scalars(select(Log).order_by(Log.id)).all())
        except SQLAlchemyError as exc:
            raise InternalError("Failed to fetch logs") from exc
