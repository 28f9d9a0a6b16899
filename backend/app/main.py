import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import config
from app.auth import has_valid_api_key
from app.database import close_db, init_db, is_database_enabled
from app.dependencies import StorageDep
from app.errors import AppError, app_error_handler
from app.middleware.rate_limit import RateLimitMiddleware
from app.routers.prices import router as prices_router
from app.routers.properties import router as properties_router
from app.routers.webhooks import router as webhooks_router
from app.schemas import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    if is_database_enabled():
        await init_db()
    yield
    await close_db()


# Initialize FastAPI app
app = FastAPI(
    title="RateBoard API",
    description="Competitor price tracking for hospitality properties",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)


async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request shape errors are 400s with a field -> message map."""
    errors = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:]) or "body"
        errors[field] = err.get("msg", "Invalid value")
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})


app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

app.include_router(properties_router)
app.include_router(prices_router)
app.include_router(webhooks_router)


@app.get("/", response_model=HealthResponse)
async def root():
    """Root endpoint - basic health check"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        authenticated=False,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request, storage: StorageDep):
    """
    Health check endpoint.

    Anyone gets the basic status. Callers presenting the workflow API key
    also get a database check and 24h ingestion counts.
    """
    timestamp = datetime.now(timezone.utc)
    if not has_valid_api_key(request):
        return HealthResponse(status="healthy", timestamp=timestamp.isoformat(), authenticated=False)

    try:
        statistics = await storage.count_overview(since=timestamp - timedelta(hours=24))
    except Exception as e:
        logger.exception(f"Health check database query failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": timestamp.isoformat(),
                "authenticated": True,
                "database": {"connected": False},
            },
        )

    return HealthResponse(
        status="healthy",
        timestamp=timestamp.isoformat(),
        authenticated=True,
        database={"connected": True},
        statistics=statistics,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
