# Recipe Lineage API Main Entry Point
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .errors import (
    LineageError, ValidationError, NotFoundError, ConflictExhaustedError,
    ForkedRecipeError, SessionAlreadyFinalizedError, VersionDeleteError,
)
from .settings import settings
from .routers.ready import router as ready_router
from .routers.recipes import router as recipes_router
from .routers.sources import router as sources_router
from .routers.cook import router as cook_router

# Configure structured logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("lineage")

# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

app = FastAPI(title="Recipe Lineage API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = [
    (ValidationError, 422),
    (VersionDeleteError, 422),
    (NotFoundError, 404),
    (SessionAlreadyFinalizedError, 409),
    (ForkedRecipeError, 409),
    (ConflictExhaustedError, 503),
]


@app.exception_handler(LineageError)
async def lineage_error_handler(request: Request, exc: LineageError):
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return JSONResponse(status_code=status, content={"detail": str(exc)})
    logger.error(f"Unhandled lineage error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Failed to save recipe changes"})


app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(sources_router, prefix="/api", tags=["sources"])
app.include_router(cook_router, prefix="/api", tags=["cook"])
