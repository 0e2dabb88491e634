from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import CostCategory


# range of a SQL BIGINT, which SQLite uses for INTEGER columns
ID_MIN = -(2**63)
ID_MAX = 2**63 - 1


class UserIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., ge=ID_MIN, le=ID_MAX)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    birthday: date


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    birthday: date


class UserDetailsOut(BaseModel):
    first_name: str
    last_name: str
    id: int
    total: float


class CostIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = Field(..., min_length=1, max_length=500)
    category: CostCategory
    userid: int = Field(..., ge=ID_MIN, le=ID_MAX)
    sum: float = Field(..., ge=0, allow_inf_nan=False)
    created_at: Optional[datetime] = None


class CostOut(BaseModel):
    id: int
    description: str
    category: CostCategory
    userid: int
    sum: float
    created_at: datetime


class ReportItem(BaseModel):
    day: int
    description: str
    sum: float


class ReportOut(BaseModel):
    userid: int
    year: int
    month: int
    costs: list[dict[str, list[ReportItem]]]


class LogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    level: str
    message: str
    timestamp: datetime


class TeamMemberOut(BaseModel):
    first_name: str
    last_name: str
