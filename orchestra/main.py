"""FastAPI entry-point exposing agents and traces."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from orchestra.api.routes import router as agents_router
from orchestra.api.routes import traces_router
from orchestra.config import config, configure_logging
from orchestra.runtime import get_agent_factory, get_trace_manager, initialize_default_agents


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    configure_logging(config.log_level)
    await initialize_default_agents()
    yield
    await get_agent_factory().cleanup_all()
    await get_trace_manager().flush()


app = FastAPI(title="Orchestra Agents", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(traces_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
