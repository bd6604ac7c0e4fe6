from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .charts import Aspect, AspectName, BirthMoment, ChartOptions


class SynastryAspect(BaseModel):
    model_config = ConfigDict(frozen=True)

    body_a: str
    body_b: str
    type: AspectName
    angle: float
    separation: float
    orb: float
    applying: bool
    weight: float


class CompositePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    longitude: float
    speed: float
    sign: str
    sign_degree: float


class CompositeChart(BaseModel):
    model_config = ConfigDict(frozen=True)

    points: List[CompositePoint]
    aspects: List[Aspect]


class SynastryOptions(BaseModel):
    aspect_types: Optional[List[AspectName]] = None  # None = every aspect type
    orbs: Dict[str, float] = Field(default_factory=dict)
    include_composite: bool = True

    def policy(self) -> Optional[Dict[str, Any]]:
        if self.aspect_types is None and not self.orbs:
            return None
        out: Dict[str, Any] = {}
        if self.aspect_types is not None:
            out["types"] = list(self.aspect_types)
        if self.orbs:
            out["orbs"] = dict(self.orbs)
        return out


class SynastryRequest(BaseModel):
    person_a: BirthMoment
    person_b: BirthMoment
    options: ChartOptions = ChartOptions()
    synastry_options: SynastryOptions = SynastryOptions()


class SynastryResponse(BaseModel):
    chart_a_id: str
    chart_b_id: str
    score: float = Field(ge=0.0, le=100.0)
    aspects: List[SynastryAspect]
    composite: Optional[CompositeChart] = None
