from fastapi import APIRouter

from ..schemas import LunarReturnRequest, ReturnChart, SolarReturnRequest
from ..services.returns import lunar_return, solar_return

router = APIRouter(prefix="/v1/returns", tags=["returns"])


@router.post("/solar", response_model=ReturnChart)
def solar_return_route(req: SolarReturnRequest):
    return solar_return(
        req.moment, req.year, options=req.options,
        latitude=req.location.latitude, longitude=req.location.longitude,
    )


@router.post("/lunar", response_model=ReturnChart)
def lunar_return_route(req: LunarReturnRequest):
    return lunar_return(
        req.moment, req.after, options=req.options,
        latitude=req.location.latitude, longitude=req.location.longitude,
    )
