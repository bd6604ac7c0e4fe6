from fastapi import APIRouter, Request

from ..schemas import (
    TransitCalendarRequest,
    TransitCalendarResponse,
    TransitForecastRequest,
    TransitForecastResponse,
    TransitsComputeRequest,
    TransitsComputeResponse,
)
from ..services.chart import cache_key, calculate_chart
from ..services.transits_engine import calculate_transits, transit_calendar, transit_forecast

router = APIRouter(prefix="/v1/transits", tags=["transits"])


def _natal(request: Request, moment, options):
    cache = request.app.state.chart_cache
    chart, _ = cache.get_or_generate(cache_key(moment, options), lambda: calculate_chart(moment, options))
    return chart


@router.post("/compute", response_model=TransitsComputeResponse)
def compute_transits_route(req: TransitsComputeRequest, request: Request):
    natal = _natal(request, req.moment, req.options)
    events = calculate_transits(natal, req.start_date, req.end_date, options=req.transit_options)
    meta = {
        "start_date": req.start_date.isoformat(),
        "end_date": req.end_date.isoformat(),
        "orb": req.transit_options.orb,
        "count": len(events),
    }
    return TransitsComputeResponse(meta=meta, events=events)


@router.post("/calendar", response_model=TransitCalendarResponse)
def transit_calendar_route(req: TransitCalendarRequest, request: Request):
    natal = _natal(request, req.moment, req.options)
    return transit_calendar(natal, req.year, req.month)


@router.post("/forecast", response_model=TransitForecastResponse)
def transit_forecast_route(req: TransitForecastRequest, request: Request):
    natal = _natal(request, req.moment, req.options)
    return transit_forecast(natal, req.duration, today=req.today)
