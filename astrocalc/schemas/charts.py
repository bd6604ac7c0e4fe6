import datetime as dt
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..services.ephem import AYANAMSHA_MAP
from ..services.houses import HouseSystem

ZodiacType = Literal["tropical", "sidereal"]
AspectName = Literal["conjunction", "semi_sextile", "sextile", "square", "trine", "quincunx", "opposition"]

UNKNOWN_TIME = dt.time(12, 0, 0)


class BirthMoment(BaseModel):
    """Calendar moment and place of a chart. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    time: Optional[dt.time] = None
    time_unknown: bool = False
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {v!r}") from None
        return v

    @field_validator("time")
    @classmethod
    def _naive_time(cls, v: Optional[dt.time]) -> Optional[dt.time]:
        if v is not None and v.tzinfo is not None:
            raise ValueError("time must be local wall time without an offset")
        return v

    @model_validator(mode="before")
    @classmethod
    def _time_flag(cls, data):
        if isinstance(data, dict) and data.get("time") is None:
            data = {**data, "time_unknown": True}
        return data

    @property
    def effective_time(self) -> dt.time:
        if self.time_unknown or self.time is None:
            return UNKNOWN_TIME
        return self.time

    def local_datetime(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.effective_time).replace(tzinfo=ZoneInfo(self.timezone))

    def utc_datetime(self) -> dt.datetime:
        return self.local_datetime().astimezone(dt.timezone.utc)


class ChartOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    house_system: HouseSystem = HouseSystem.PLACIDUS
    zodiac_type: ZodiacType = "tropical"
    sidereal_mode: Optional[str] = None

    @field_validator("house_system", mode="before")
    @classmethod
    def _parse_house_system(cls, v):
        try:
            return HouseSystem.parse(v)
        except ValueError as exc:
            raise ValueError(str(exc)) from None

    @field_validator("sidereal_mode")
    @classmethod
    def _known_mode(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        key = v.strip().lower()
        if key not in AYANAMSHA_MAP:
            raise ValueError(f"unknown sidereal mode {v!r}; expected one of {', '.join(AYANAMSHA_MAP)}")
        return key

    @property
    def sidereal(self) -> bool:
        return self.zodiac_type == "sidereal"

    @property
    def ayanamsha(self) -> Optional[str]:
        if not self.sidereal:
            return None
        return self.sidereal_mode or "lahiri"


class CelestialBodyPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    longitude: float
    latitude: float
    distance: float
    speed: float
    retrograde: bool
    sign: str
    sign_degree: float
    house: Optional[int] = None


class HouseCusp(BaseModel):
    model_config = ConfigDict(frozen=True)

    house: int = Field(ge=1, le=12)
    longitude: float
    sign: str


class Aspect(BaseModel):
    model_config = ConfigDict(frozen=True)

    body1: str
    body2: str
    type: AspectName
    angle: float
    separation: float
    orb: float
    applying: bool


class ChartResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    planets: List[CelestialBodyPosition]
    houses: List[HouseCusp]
    ascendant: float
    midheaven: float
    aspects: List[Aspect]
    house_system: HouseSystem
    requested_house_system: HouseSystem
    convergence_fallback_used: bool = False
    fallback_reason: Optional[str] = None
    zodiac_type: ZodiacType = "tropical"
    sidereal_mode: Optional[str] = None
    julian_day: float
    time_unknown: bool = False
    elements: Dict[str, int] = Field(default_factory=dict)
    modalities: Dict[str, int] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    def planet(self, name: str) -> Optional[CelestialBodyPosition]:
        return next((p for p in self.planets if p.body == name), None)


class ComputeRequest(BaseModel):
    moment: BirthMoment
    options: ChartOptions = ChartOptions()


class MetaOut(BaseModel):
    engine: str = "astrocalc"
    engine_version: str
    zodiac: str
    house_system: str
    ayanamsha: Optional[str] = None
    backend: Optional[str] = None
    cached: bool = False
    warnings: Optional[List[str]] = None


class ComputeResponse(BaseModel):
    chart_id: str
    meta: MetaOut
    chart: ChartResult
