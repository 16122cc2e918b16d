"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.middleware import RequestContextMiddleware
from app.api.routes import api_router
from app.domain.services.chat_channel_manager import ChatChannelManager
from app.infrastructure.plan_image_storage import PlanImageStorage
from app.infrastructure.profile_photo_storage import ProfilePhotoStorage
from app.infrastructure.realtime import RealtimeBroker
from app.infrastructure.redis import redis_client
from app.logging_config import setup_logging
from app.persistence.database import AsyncSessionLocal
from app.settings import settings
from app.workers.expiry_worker import ContractExpiryWorker

# Setup logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await redis_client.connect()
    broker = RealtimeBroker(redis_client)
    app.state.session_factory = AsyncSessionLocal
    app.state.broker = broker
    app.state.channel_manager = ChatChannelManager(broker, AsyncSessionLocal)
    app.state.plan_image_storage = PlanImageStorage()
    app.state.profile_photo_storage = ProfilePhotoStorage()
    expiry_worker = ContractExpiryWorker(AsyncSessionLocal, broker)
    if settings.contract_expiry_sweep_enabled:
        expiry_worker.start()
    yield
    # Shutdown
    await expiry_worker.stop()
    await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Mobile plan catalog, contract approvals and advisor chat",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestContextMiddleware)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run."""
    return {"status": "healthy", "redis": redis_client.is_available}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs",
    }
