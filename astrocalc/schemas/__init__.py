from .charts import (
    Aspect,
    BirthMoment,
    CelestialBodyPosition,
    ChartOptions,
    ChartResult,
    ComputeRequest,
    ComputeResponse,
    HouseCusp,
    MetaOut,
)
from .transits import (
    CalendarDay,
    MoonPhase,
    TransitCalendarRequest,
    TransitCalendarResponse,
    TransitEvent,
    TransitForecastRequest,
    TransitForecastResponse,
    TransitHit,
    TransitOptions,
    TransitsComputeRequest,
    TransitsComputeResponse,
)
from .patterns import AspectPattern, PatternsRequest, PatternsResponse
from .synastry import (
    CompositeChart,
    CompositePoint,
    SynastryAspect,
    SynastryOptions,
    SynastryRequest,
    SynastryResponse,
)
from .returns import LunarReturnRequest, ReturnChart, ReturnLocation, SolarReturnRequest
from .sky import (
    Lunation,
    LunationsResponse,
    RetrogradePeriod,
    RetrogradesResponse,
    YearEventsRequest,
)
