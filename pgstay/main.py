from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pymongo.errors import ConnectionFailure, ExecutionTimeout, PyMongoError, WTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pgstay.core.config import settings
from pgstay.core.database import INDEXES, AsyncDatabaseConfig, db_manager
from pgstay.core.log_config import configure_logging
from pgstay.core.MongoORJSONResponse import MongoORJSONResponse
from pgstay.metrics.metrics import CONTENT_TYPE, get_metrics
from pgstay.middlewares.latency_middleware import LatencyMiddleware, register_latency_route
from pgstay.middlewares.timeout_middleware import TimeoutMiddleware
from pgstay.routes import properties, ratings, tenants, visits
from pgstay.services.cache import PropertyCache
from pgstay.services.property_service import PropertyService
from pgstay.services.rating_service import RatingService
from pgstay.services.tenant_service import TenantService
from pgstay.services.visit_service import VisitService
from pgstay.utils.exceptions import AppError, InternalError, ServiceUnavailableError
from pgstay.utils.redis_client import AsyncRedisClient, RedisConfig

configure_logging(settings.log_level)
logger = structlog.get_logger()

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}

# Driver errors that clear up on their own; reported as retryable 503s
TRANSIENT_DB_ERRORS = (ConnectionFailure, ExecutionTimeout, WTimeoutError)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and cache, wire services into app state"""
    logger.info("starting_service", app=settings.app_name, environment=settings.environment)

    await db_manager.initialize(config=AsyncDatabaseConfig.from_settings())
    await db_manager.create_indexes(INDEXES)
    store = db_manager.collections()

    metrics = get_metrics()
    redis_client = AsyncRedisClient(RedisConfig.from_settings(), metrics_collector=metrics)
    if not await redis_client.ping():
        logger.warning("redis_unavailable", detail="property list cache disabled until Redis is reachable")

    property_service = PropertyService(
        properties_collection=store.properties,
        counters_collection=store.counters,
        tenants_collection=store.tenants,
        cache=PropertyCache(redis_client, ttl=settings.property_cache_ttl),
        metrics_collector=metrics,
    )
    tenant_service = TenantService(
        tenants_collection=store.tenants,
        property_service=property_service,
        metrics_collector=metrics,
    )
    visit_service = VisitService(
        visits_collection=store.visits,
        property_service=property_service,
        metrics_collector=metrics,
    )
    rating_service = RatingService(ratings_collection=store.ratings, property_service=property_service)

    app.state.adb = db_manager.database
    app.state.metrics = metrics
    app.state.redis_client = redis_client
    app.state.property_service = property_service
    app.state.tenant_service = tenant_service
    app.state.visit_service = visit_service
    app.state.rating_service = rating_service

    health = await db_manager.health_check()
    if health["status"] != "healthy":
        raise RuntimeError(f"Database unhealthy: {health}")
    logger.info("service_started", database=health)

    yield

    logger.info("shutting_down")
    await redis_client.close()
    await db_manager.close()


app = FastAPI(
    title=settings.app_name,
    description="Rental inventory, occupancy and billing for PGs and hostels",
    version="1.0.0",
    lifespan=lifespan,
    default_response_class=MongoORJSONResponse,
)

app.add_middleware(TimeoutMiddleware, timeout=settings.request_timeout_seconds)
app.add_middleware(LatencyMiddleware, metrics=get_metrics())
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "app_error",
        error=exc.error,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )
    return MongoORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    """Split driver failures into retryable unavailability and fatal errors"""
    if isinstance(exc, TRANSIENT_DB_ERRORS):
        error: AppError = ServiceUnavailableError("Database temporarily unavailable, please retry")
    else:
        error = InternalError("Database operation failed")
    logger.error(
        "database_error",
        error=error.error,
        driver_error=type(exc).__name__,
        detail=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return MongoORJSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    logger.info("request_validation_failed", path=request.url.path, errors=errors)
    return MongoORJSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Invalid request",
            "error": "VALIDATION_ERROR",
            "details": {"errors": errors},
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with proper logging"""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return MongoORJSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": str(exc.detail),
            "error": HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(
        "unexpected_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return MongoORJSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": "INTERNAL_ERROR"},
    )


app.include_router(properties.router)
app.include_router(tenants.router)
app.include_router(visits.router)
app.include_router(ratings.router)
register_latency_route(app)


@app.get("/health")
async def health(request: Request):
    database = await db_manager.health_check()
    cache_ok = await request.app.state.redis_client.ping()
    healthy = database["status"] == "healthy"
    return MongoORJSONResponse(
        status_code=200 if healthy else 503,
        content={
            "success": healthy,
            "status": "healthy" if healthy and cache_ok else ("degraded" if healthy else "unhealthy"),
            "database": database,
            "cache": {"status": "healthy" if cache_ok else "unavailable"},
        },
    )


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(content=get_metrics().export(), media_type=CONTENT_TYPE)
