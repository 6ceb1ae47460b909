"""FastAPI application for the prediction settlement surface."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from scoreline import __version__
from scoreline.database import close_db, init_db
from scoreline.routes import core_router, predictions_router
from scoreline.security import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Scoreline API...")
    await init_db()
    yield
    logger.info("Shutting down Scoreline API...")
    await close_db()


app = FastAPI(
    title="Scoreline",
    description="Football statistics sync and prediction settlement",
    version=__version__,
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(core_router)
app.include_router(predictions_router)
