import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

LunationName = Literal["new", "first_quarter", "full", "last_quarter"]


class RetrogradePeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    station_retrograde: dt.datetime
    station_direct: dt.datetime
    longitude_retrograde: float
    longitude_direct: float
    sign: str  # sign at the retrograde station


class Lunation(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: LunationName
    exact_time: dt.datetime
    moon_longitude: float
    sign: str
    sign_degree: float
    illumination: float


class YearEventsRequest(BaseModel):
    year: int = Field(ge=1, le=9999)
    bodies: Optional[List[str]] = None  # retrogrades only; None = Mercury..Pluto
    phases: Optional[List[LunationName]] = None  # lunations only; None = all four


class RetrogradesResponse(BaseModel):
    year: int
    periods: List[RetrogradePeriod]


class LunationsResponse(BaseModel):
    year: int
    lunations: List[Lunation]
