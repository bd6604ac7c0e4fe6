import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import ChartCache
from .middleware.logging import LoggingMiddleware
from .routers import charts as charts_router
from .routers import returns as returns_router
from .routers import sky as sky_router
from .routers import synastry as synastry_router
from .routers import transits as transits_router
from .services import ephem
from .services.errors import (
    ChartEngineError,
    EphemerisRangeError,
    InternalComputationError,
    ScanCancelled,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first matching class decides the status
ERROR_STATUS = [
    (ValidationError, 422),
    (EphemerisRangeError, 422),
    (ScanCancelled, 409),
    (InternalComputationError, 500),
]


def _status_for(exc: ChartEngineError) -> int:
    return next((status for cls, status in ERROR_STATUS if isinstance(exc, cls)), 500)


async def _engine_error_handler(request: Request, exc: ChartEngineError):
    status = _status_for(exc)
    if status >= 500:
        logger.error("chart_engine_failure", extra={"path": request.url.path, "error": exc.message})
    else:
        logger.info("chart_engine_rejected", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse({"error": exc.to_dict()}, status_code=status)


def _add_cors(app: FastAPI) -> None:
    # Configure CORS - localhost for development, explicit origins otherwise
    app_env = os.getenv("APP_ENV")
    is_dev = app_env is None or app_env.lower() in {"dev", "development", "test"}

    if is_dev:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["Content-Length", "Content-Type", "X-Chart-Cache"],
            max_age=86400,
        )
    else:
        allowed = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
        preview = os.getenv("PREVIEW_ORIGIN")
        if preview:
            allowed.append(preview)

        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["Content-Length", "Content-Type", "X-Chart-Cache"],
            max_age=86400,
        )


def create_app(chart_cache: ChartCache | None = None) -> FastAPI:
    app = FastAPI(title="astrocalc", version="0.1.0")

    ephem.init_paths(os.getenv("EPHEMERIS_DIR"))
    app.state.chart_cache = chart_cache if chart_cache is not None else ChartCache.from_env()

    _add_cors(app)
    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(ChartEngineError, _engine_error_handler)

    app.include_router(charts_router.router)
    app.include_router(transits_router.router)
    app.include_router(synastry_router.router)
    app.include_router(returns_router.router)
    app.include_router(sky_router.router)

    @app.get("/__health")
    def health():
        return {
            "ok": True,
            "engine_version": ephem.ENGINE_VERSION,
            "backend": ephem.backend_name(),
            "chart_cache": app.state.chart_cache.stats(),
        }

    @app.get("/")
    def root():
        return {"message": "astrocalc API is running. See /__health and /docs."}

    return app


app = create_app()
