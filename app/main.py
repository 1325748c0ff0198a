import logging
import time
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Import models so they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.jobs.router import router as jobs_router
from .domain.scheduling.router import router as scheduling_router
from .rate_limiter import get_redis_client, redis_configured

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    if redis_configured():
        try:
            get_redis_client()
            logger.info("Redis connection established")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed - rate limits and caches run from memory: {e}")
    else:
        logger.info("Redis not configured - rate limits and caches run from memory")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Dispatch Sync API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw exception objects pydantic puts in ctx"""
    errors = []
    for error in exc.errors():
        cleaned = {k: v for k, v in error.items() if k != "ctx"}
        if "ctx" in error:
            cleaned["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(cleaned)
    return errors


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise
    duration_ms = (time.time() - start_time) * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.1f}ms)")
    return response


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(jobs_router)
app.include_router(scheduling_router)


@app.get("/")
def root():
    return {"message": "Dispatch Sync API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    if not redis_configured():
        return {"status": "disabled", "redis": {"connected": False}}

    try:
        client = get_redis_client()
        start_time = time.time()
        client.ping()
        response_time = (time.time() - start_time) * 1000
        info = client.info()
    except redis.RedisError as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}

    return {
        "status": "healthy",
        "redis": {
            "connected": True,
            "response_time_ms": round(response_time, 2),
            "version": info.get("redis_version", "unknown"),
            "used_memory_human": info.get("used_memory_human", "unknown"),
            "connected_clients": info.get("connected_clients", 0),
        },
    }
