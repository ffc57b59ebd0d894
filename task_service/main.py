"""
Task Service - Main application module.
"""
import logging
import time
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .core.auth import auth_service
from .core.config import get_settings
from .core.database import init_db, check_db_connection
from .core.exceptions import TaskNotFoundError
from .core.rabbitmq import rabbitmq_publisher
from .routers import tasks

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Task Service",
    description="Task management with per-user ownership and status notifications",
    version=settings.service_version
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    tasks.router,
    prefix=settings.api_prefix + "/tasks",
    tags=["tasks"]
)


def _error_response(request: Request, status_code: int, error_type: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "type": error_type,
                "status_code": status_code,
                "message": message,
                "path": str(request.url.path),
                "timestamp": time.time(),
                **extra
            }
        }
    )


@app.exception_handler(TaskNotFoundError)
async def task_not_found_handler(request: Request, exc: TaskNotFoundError):
    return _error_response(request, status.HTTP_404_NOT_FOUND, "not_found", str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    issues = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "validation_error",
        "Request validation failed",
        issues=issues
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    response = _error_response(request, exc.status_code, "http_error", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "database_error",
        "Database error" if not settings.debug else str(exc)
    )


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting Task Service...")
    if init_db():
        logger.info("Database initialized successfully")
    else:
        logger.error("Database initialization failed")

    if rabbitmq_publisher.connect(
        max_retries=settings.rabbitmq_connect_retries,
        retry_delay=settings.rabbitmq_retry_delay
    ):
        logger.info("RabbitMQ connection established")
    else:
        logger.warning("RabbitMQ connection failed - status notifications will not be published")

    logger.info("Task Service startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Task Service...")
    rabbitmq_publisher.close()
    logger.info("Task Service shutdown completed")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "running",
        "message": "Task Service is operational"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db_healthy = check_db_connection()
    auth_healthy = await auth_service.health_check()

    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "healthy" if db_healthy else "unhealthy",
        "database": "connected" if db_healthy else "disconnected",
        "auth_service": "reachable" if auth_healthy else "unreachable",
        "queue": "connected" if rabbitmq_publisher.is_connected else "disconnected",
        "timestamp": time.time()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("task_service.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
