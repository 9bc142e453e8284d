from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from src.dependencies import AppContext
from src.shared.config import Settings, get_settings
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.health import router as health_router
from src.shared.http.middleware.request_id_middleware import RequestIdMiddleware
from src.shared.logging import setup_logging


def create_app(settings: Optional[Settings] = None, *, context: Optional[AppContext] = None) -> FastAPI:
    settings = settings or (context.settings if context else get_settings())
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = context or AppContext.build(settings)
        app.state.context = ctx
        await ctx.startup()
        try:
            yield
        finally:
            await ctx.shutdown()

    app = FastAPI(
        title="Pharmacy Platform API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestIdMiddleware)
    app.include_router(health_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {"message": "Pharmacy Platform API", "health": "/health"}

    return app
