import asyncio
import contextlib
import hashlib
import logging
import os
import time
from typing import Dict
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .config import settings
from .errors import ChartDataError, ChartNotFoundError, ValidationError
from .routers.sizing import router as sizing_router
from .security import create_jwt, verify_api_key
from .services.charts_api import ChartsApiClient, refresh_loop
from .services.size_charts import default_repository


def _configure_logging() -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


_configure_logging()
logger = structlog.get_logger("sizing")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    # Load the bundled charts up front so bad reference data fails the start-up, not a request.
    repository = default_repository()
    refresher = None
    if settings.charts_api_base:
        interval = max(1, settings.chart_refresh_seconds)
        refresher = asyncio.create_task(refresh_loop(repository, ChartsApiClient(), interval))
    yield
    if refresher:
        refresher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresher


app = FastAPI(title="Size Recommendation Engine", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# In-memory token-bucket rate limit, per client ip
_buckets: Dict[str, tuple[float, float]] = {}


class RateLimitExceeded(Exception):
    pass


def _rate_limit(ident: str, requests_per_min: int, burst: int) -> None:
    refill_rate = requests_per_min / 60.0
    capacity = float(burst)
    now = time.time()
    tokens, last = _buckets.get(ident, (capacity, now))
    tokens = min(capacity, tokens + refill_rate * (now - last))
    if tokens < 1.0:
        _buckets[ident] = (tokens, now)
        raise RateLimitExceeded(ident)
    _buckets[ident] = (tokens - 1.0, now)


def _request_id(request: Request) -> str:
    return hashlib.md5(f"{request.client.host if request.client else 'unknown'}{time.time()}".encode()).hexdigest()[:8]


def _validate_config() -> None:
    strict = os.getenv("STRICT_CONFIG", "0") == "1"
    errors = []
    if not settings.api_key or settings.api_key == "change-me":
        errors.append("API_KEY must be set to a secure value")
    if settings.jwt_secret == "dev-secret":
        errors.append("JWT_SECRET must be set to a secure value")
    if not os.path.isfile(settings.size_charts_path):
        errors.append(f"SIZE_CHARTS_PATH does not exist: {settings.size_charts_path}")
    if settings.charts_api_base and settings.chart_refresh_seconds < 30:
        errors.append("CHART_REFRESH_SECONDS should be at least 30")
    if errors:
        if strict:
            raise RuntimeError("Configuration error: " + "; ".join(errors))
        else:
            for e in errors:
                logger.warning("config_warning", warning=e)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    request_id = _request_id(request)
    resp = None

    try:
        client_ip = request.client.host if request.client else "unknown"
        try:
            _rate_limit(client_ip, settings.rate_limit_per_min, settings.rate_limit_burst)
        except RateLimitExceeded:
            logger.warning("rate_limit_exceeded", client_ip=client_ip, request_id=request_id)
            resp = JSONResponse(status_code=429, content={"detail": "Too Many Requests", "error_code": "RATE_LIMITED"})
            return resp

        logger.info("request_started",
                    request_id=request_id,
                    path=str(request.url.path),
                    method=request.method,
                    client_ip=client_ip,
                    user_agent=request.headers.get("user-agent", "unknown"))

        resp = await call_next(request)
        return resp

    except Exception as e:
        duration_ms = int((time.time() - start) * 1000)
        logger.error("request_failed",
                     request_id=request_id,
                     path=str(request.url.path),
                     method=request.method,
                     error=str(e),
                     duration_ms=duration_ms,
                     exc_info=True)
        raise
    finally:
        duration_ms = int((time.time() - start) * 1000)
        status_code = getattr(resp, "status_code", 0) if resp else 0
        logger.info("request_completed",
                    request_id=request_id,
                    path=str(request.url.path),
                    method=request.method,
                    status=status_code,
                    duration_ms=duration_ms)


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    logger.info("sizing_input_rejected", path=str(request.url.path), field=exc.field, error=exc.message)
    return JSONResponse(
        status_code=400,
        content={"detail": f"Invalid {exc.field}: {exc.message}", "field": exc.field, "error_code": exc.error_code},
    )


@app.exception_handler(ChartNotFoundError)
async def handle_chart_not_found(request: Request, exc: ChartNotFoundError):
    return JSONResponse(
        status_code=404,
        content={
            "detail": (
                f"We don't have sizing data for {exc.gender} {exc.sport} {exc.product_type} yet. "
                "Please contact support for sizing help."
            ),
            "error_code": exc.error_code,
            "sport": exc.sport,
            "gender": exc.gender,
            "product_type": exc.product_type,
        },
    )


@app.exception_handler(ChartDataError)
async def handle_chart_data_error(request: Request, exc: ChartDataError):
    logger.error("chart_data_error", path=str(request.url.path), error=str(exc), key=exc.key)
    return JSONResponse(status_code=500, content={"detail": "Size chart data is invalid", "error_code": exc.error_code})


@app.exception_handler(Exception)
async def handle_exceptions(request: Request, exc: Exception):
    request_id = _request_id(request)

    logger.error("unhandled_exception",
                 request_id=request_id,
                 path=str(request.url.path),
                 method=request.method,
                 error=str(exc),
                 error_type=type(exc).__name__,
                 exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_code": "INTERNAL_ERROR",
            "request_id": request_id,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
    )


@app.get("/v1/health")
async def health():
    return {"status": "ok"}


@app.get("/v1/debug/status", dependencies=[Depends(verify_api_key)])
async def debug_status():
    """Chart snapshot and rate limiter state."""
    snapshot = default_repository().snapshot
    return {
        "status": "ok",
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "charts": {
            "count": len(snapshot.charts),
            "version": snapshot.version,
            "loaded_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(snapshot.loaded_at)),
            "remote_source": settings.charts_api_base,
        },
        "rate_limiting": {
            "requests_per_min": settings.rate_limit_per_min,
            "burst_capacity": settings.rate_limit_burst,
            "active_buckets": len(_buckets)
        }
    }


@app.post("/v1/auth/token", dependencies=[Depends(verify_api_key)])
async def issue_token():
    token = create_jwt("storefront")
    return {"token": token, "expires_in": settings.jwt_ttl_seconds}


app.include_router(sizing_router, prefix="/v1")

# Validate configuration at import time (warnings by default; set STRICT_CONFIG=1 to enforce)
_validate_config()
