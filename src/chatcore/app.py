"""
Chat Core Application

FastAPI application exposing the chat engine.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config
from .errors import BackingStoreError, ValidationError
from .services.engine_service import get_engine_service, init_engine_service
from .routes import health_router, chats_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("chatcore.app")

# Suppress noisy loggers
logging.getLogger("asyncpg").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, release them on shutdown"""
    logger.info("Starting Chat Core...")
    try:
        await init_engine_service()
        logger.info("Chat Core started successfully")
    except Exception as e:
        logger.error(f"Failed to start Chat Core: {e}")
        raise

    yield

    logger.info("Shutting down Chat Core...")
    try:
        await get_engine_service().close()
        logger.info("Chat Core shutdown complete")
    except BackingStoreError as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title="Chat Core API",
    description="Role-aware direct and group chat for training coordination",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BackingStoreError)
async def backing_store_error_handler(request: Request, exc: BackingStoreError):
    logger.warning(f"Backing store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Temporary failure, try again"})


# Include routers
app.include_router(health_router, prefix="/api/v1")
app.include_router(chats_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Chat Core",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=Config.API_HOST,
        port=Config.API_PORT
    )
