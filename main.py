"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.error_handlers import register_exception_handlers
from src.api.routes import router, ws_router
from src.database.db import SessionLocal, init_db
from src.services.market_service import MarketService
from src.utils.config import config
from src.utils.logger import StructuredLogger

structured_logger = StructuredLogger("App")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup
    try:
        config.validate()
    except ValueError as e:
        structured_logger.critical("Configuration error", exception=e)
        raise

    init_db()
    service = MarketService.from_session_factory(SessionLocal, app_config=config)
    app.state.market_service = service
    service.start()
    yield
    # Shutdown
    service.stop()


# Create FastAPI app
app = FastAPI(
    title="Market Pulse",
    description="Live cryptocurrency prices, history and price alerts",
    version="1.0.0",
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

register_exception_handlers(app)

# Include API routes
app.include_router(router, prefix="/api", tags=["market"])
app.include_router(ws_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
