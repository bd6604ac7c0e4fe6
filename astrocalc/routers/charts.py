from fastapi import APIRouter, Request, Response

from ..schemas import ComputeRequest, ComputeResponse, MetaOut, PatternsRequest, PatternsResponse
from ..services import ephem
from ..services.chart import calculate_chart, cache_key
from ..services.patterns import detect_patterns

router = APIRouter(prefix="/v1/charts", tags=["charts"])


@router.post("/compute", response_model=ComputeResponse)
def compute_chart(req: ComputeRequest, request: Request, response: Response):
    chart_id = cache_key(req.moment, req.options)
    cache = request.app.state.chart_cache
    chart, cached = cache.get_or_generate(chart_id, lambda: calculate_chart(req.moment, req.options))
    response.headers["X-Chart-Cache"] = "hit" if cached else "miss"

    meta = MetaOut(
        engine_version=ephem.ENGINE_VERSION,
        zodiac=chart.zodiac_type,
        house_system=chart.house_system.value,
        ayanamsha=chart.sidereal_mode,
        backend=ephem.backend_name(),
        cached=cached,
        warnings=(chart.warnings or None),
    )
    return ComputeResponse(chart_id=chart_id, meta=meta, chart=chart)


@router.post("/patterns", response_model=PatternsResponse)
def chart_patterns(req: PatternsRequest):
    return PatternsResponse(patterns=detect_patterns(req.aspects))
