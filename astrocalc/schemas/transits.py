import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .charts import AspectName, BirthMoment, ChartOptions

PLANETS = ["Sun","Moon","Mercury","Venus","Mars","Jupiter","Saturn","Uranus","Neptune","Pluto"]


class TransitOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    transit_bodies: List[str] = PLANETS
    natal_targets: Optional[List[str]] = None  # None = all planets (+ ASC/MC if time known)
    aspect_types: List[AspectName] = ["conjunction","opposition","square","trine","sextile"]
    orb: float = Field(default=3.0, gt=0.0, le=10.0)  # max orb for transit hits
    max_days: Optional[int] = Field(default=None, ge=1)


class TransitEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    transit_body: str
    natal_body: str
    aspect: AspectName
    start: dt.date
    peak: dt.date
    end: dt.date
    peak_time: dt.datetime
    orb: float
    applying_at_start: bool
    intensity: float = Field(ge=0.0, le=100.0)


class TransitsComputeRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()
    start_date: dt.date
    end_date: dt.date
    transit_options: TransitOptions = TransitOptions()

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class TransitsComputeResponse(BaseModel):
    meta: Dict[str, Any]
    events: List[TransitEvent]


class MoonPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: Literal[
        "new", "waxing_crescent", "first_quarter", "waxing_gibbous",
        "full", "waning_gibbous", "last_quarter", "waning_crescent",
    ]
    elongation: float
    illumination: float


class TransitHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    transit_body: str
    natal_body: str
    aspect: AspectName
    orb: float
    applying: bool


class CalendarDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    aspects: List[TransitHit]
    moon_phase: MoonPhase
    retrogrades: List[str]


class TransitCalendarRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()
    year: int = Field(ge=1, le=9999)
    month: int = Field(ge=1, le=12)


class TransitCalendarResponse(BaseModel):
    year: int
    month: int
    days: List[CalendarDay]


Duration = Literal["week", "month", "quarter", "year"]


class TransitForecastRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()
    duration: Duration = "month"
    today: Optional[dt.date] = None


class TransitForecastResponse(BaseModel):
    duration: Duration
    start_date: dt.date
    end_date: dt.date
    events: List[TransitEvent]
    by_aspect: Dict[str, int]
