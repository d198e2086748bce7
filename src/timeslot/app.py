"""
Timeslot Application

FastAPI application for recurring time slot series.
"""
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Config
from .services.engine_service import get_engine_service, init_engine_service
from .routes import health_router, series_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("timeslot.app")

# Suppress noisy loggers
logging.getLogger("asyncpg").setLevel(logging.WARNING)

# Create FastAPI application
app = FastAPI(
    title="Civic Timeslot API",
    description="Recurring time slot series: expansion, conflicts, versioning and exceptions",
    version="0.1.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info("Starting Timeslot service...")

    try:
        await init_engine_service()
        logger.info("Timeslot service started successfully")
    except Exception as e:
        logger.error(f"Failed to start Timeslot service: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Timeslot service...")

    try:
        engine = get_engine_service()
        await engine.close()
        logger.info("Timeslot service shutdown complete")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Include routers
app.include_router(health_router, prefix="/api/v1", tags=["health"])
app.include_router(series_router, prefix="/api/v1", tags=["series"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Civic Timeslot",
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
