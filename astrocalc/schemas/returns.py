import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .charts import BirthMoment, ChartOptions, ChartResult
from .transits import MoonPhase


class ReturnChart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["solar", "lunar"]
    body: str
    target_longitude: float
    exact_time: dt.datetime
    orb: float
    moment: BirthMoment
    chart: ChartResult
    moon_phase: MoonPhase


class ReturnLocation(BaseModel):
    """Place the return chart is cast for; defaults to the birthplace."""

    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)


class SolarReturnRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()
    year: int = Field(ge=1, le=9999)
    location: ReturnLocation = ReturnLocation()


class LunarReturnRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()
    after: dt.date
    location: ReturnLocation = ReturnLocation()
