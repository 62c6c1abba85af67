import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api import requests
from app.config import settings
from app.database import init_db
from app.limiter import limiter
from app.logging_config import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting UniTok account deletion service")
    if settings.storage_backend == "database":
        init_db()
        logger.info("Database initialized")
    else:
        logger.info(f"Storing deletion requests in {settings.data_dir}")
    yield
    logger.info("Shutting down UniTok account deletion service")


app = FastAPI(
    title="UniTok Account Deletion",
    description="Email-confirmed account deletion requests",
    version="2.0.0",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - use configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/")
def read_root():
    """Root endpoint"""
    return {"message": "UniTok Account Deletion", "request_form": "/request-deletion"}


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


# Include routers
app.include_router(requests.router, tags=["Account Deletion"])
