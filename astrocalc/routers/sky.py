from fastapi import APIRouter

from ..schemas import LunationsResponse, RetrogradesResponse, YearEventsRequest
from ..services.sky_events import lunations, retrograde_periods

router = APIRouter(prefix="/v1/sky", tags=["sky"])


@router.post("/retrogrades", response_model=RetrogradesResponse)
def retrogrades_route(req: YearEventsRequest):
    return RetrogradesResponse(year=req.year, periods=retrograde_periods(req.year, bodies=req.bodies))


@router.post("/lunations", response_model=LunationsResponse)
def lunations_route(req: YearEventsRequest):
    return LunationsResponse(year=req.year, lunations=lunations(req.year, phases=req.phases))
