import asyncio
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ConfigurationError, settings
from api.routes import router
from models.database import init_database
from services.runtime import build_runtime
from utils.logger import get_logger, setup_logging

# Setup logging
setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Whale-In-The-Room signal engine...")

    await init_database()
    logger.info("Database initialized")

    try:
        runtime = build_runtime(settings)
    except ConfigurationError as e:
        logger.error("Configuration error, refusing to start", error=str(e))
        raise

    app.state.runtime = runtime
    # Warm-up makes one request per wallet at the queue's pace; serve the
    # API while it runs.
    engine_task = asyncio.create_task(runtime.engine.start(), name="engine-start")

    try:
        yield
    finally:
        logger.info("Shutting down...")
        if not engine_task.done():
            engine_task.cancel()
        await asyncio.gather(engine_task, return_exceptions=True)
        await runtime.shutdown()
        app.state.runtime = None
        logger.info("Shutdown complete")


app = FastAPI(
    title="Whale-In-The-Room",
    description="First-contract interaction signals for tracked Base wallets",
    version="1.0.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "error": str(exc)})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API routes
app.include_router(router, prefix="/api", tags=["Whale Room"])


# Health checks
@app.get("/health")
async def health_check():
    """Basic health check - for load balancers"""
    return {"status": "ok"}


@app.get("/health/ready")
async def readiness_check(request: Request):
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return {"status": "ready", "engine": runtime.engine.state.value}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.API_PORT,
        # Single worker: the engine keeps its seen-sets in process memory.
        timeout_keep_alive=30,
    )
