from fastapi import APIRouter, Request

from ..schemas import SynastryRequest, SynastryResponse
from ..services.chart import cache_key
from ..services.synastry import compatibility_score, composite_chart, synastry_aspects
from .transits import _natal

router = APIRouter(prefix="/v1/synastry", tags=["synastry"])


@router.post("/compute", response_model=SynastryResponse)
def compute_synastry(req: SynastryRequest, request: Request):
    chart_a = _natal(request, req.person_a, req.options)
    chart_b = _natal(request, req.person_b, req.options)
    aspects = synastry_aspects(chart_a, chart_b, policy=req.synastry_options.policy())
    composite = composite_chart(chart_a, chart_b) if req.synastry_options.include_composite else None
    return SynastryResponse(
        chart_a_id=cache_key(req.person_a, req.options),
        chart_b_id=cache_key(req.person_b, req.options),
        score=compatibility_score(aspects),
        aspects=aspects,
        composite=composite,
    )
