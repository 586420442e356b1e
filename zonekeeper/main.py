"""Main FastAPI application"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from zonekeeper.core.config import settings
from zonekeeper.core.init import init_system
from zonekeeper.core.log import setup_logging
from zonekeeper.core.redis import redis_client
from zonekeeper.services.container import ServiceContainer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging()
    await redis_client.connect()
    await init_system()
    app.state.container = ServiceContainer(redis=redis_client)
    app.state.container.start()
    yield
    # Shutdown
    await app.state.container.close()
    await redis_client.disconnect()


app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Import and include routers
from zonekeeper.api.v1 import dnssec, fcrdns, providers, records, tunnels, zones

# API routes
app.include_router(providers.router, prefix="/api/v1/providers", tags=["providers"])
app.include_router(zones.router, prefix="/api/v1/zones", tags=["zones"])
app.include_router(records.router, prefix="/api/v1/records", tags=["records"])
app.include_router(dnssec.router, prefix="/api/v1/dnssec", tags=["dnssec"])
app.include_router(fcrdns.router, prefix="/api/v1/fcrdns", tags=["fcrdns"])
app.include_router(tunnels.router, prefix="/api/v1/tunnels", tags=["tunnels"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "zonekeeper DNS management API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}
