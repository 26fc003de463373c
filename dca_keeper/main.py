from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import executor
from .config import get_settings
from .context import build_context
from .logging_config import bind_run_context, setup_logging
from .middleware.logging_middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the executor context once per process and close its clients on exit."""
    settings = get_settings()
    setup_logging(settings.log_level)
    context = build_context(settings)
    bind_run_context(network=settings.sui_network, executor=context.executor_address, trigger="http")
    app.state.context = context
    try:
        yield
    finally:
        context.shutdown()
        await context.aclose()


# Create FastAPI app
app = FastAPI(
    title="DCA Keeper API",
    description="Permissionless executor for on-chain DCA orders",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Include routers
app.include_router(executor.router)


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "DCA Keeper API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/healthz",
        "endpoints": ["GET /discover", "POST /execute", "POST /execute/{order_id}"],
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "dca_keeper.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
