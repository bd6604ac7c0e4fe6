from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .charts import Aspect

PatternType = Literal[
    "grand_trine", "t_square", "grand_cross", "yod", "kite", "mystic_rectangle", "stellium",
]


class AspectPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PatternType
    bodies: List[str]
    apex: Optional[str] = None
    aspects: int
    intensity: float = Field(ge=0.0, le=100.0)


class PatternsRequest(BaseModel):
    aspects: List[Aspect]


class PatternsResponse(BaseModel):
    patterns: List[AspectPattern]
