from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import (
    admin_router,
    auth_router,
    navigation_router,
    operations_router,
    search_router,
)
from .context import AppContext, build_context
from .monitoring.metrics import metrics_router
from .routing.generator import RouteGenerator


class AddTraceIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "trace_id"):
            record.trace_id = "system"
        return True


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - trace_id=%(trace_id)s - %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(AddTraceIdFilter())
logger = logging.getLogger("caregate")


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the console API around ``context`` (wired from config when omitted)."""
    context = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Caregate starting with %d routes", len(context.routes))
        if context.backend is not None:
            await context.backend.start()
        if context.search is not None and context.config.setting(
            "search.autodetect_enabled", True
        ):
            context.search_manager.schedule_auto_detect(
                float(context.config.setting("search.autodetect_delay_seconds", 3.0))
            )
        try:
            yield
        finally:
            await context.search_manager.stop()
            if context.backend is not None:
                await context.backend.stop()
            if context.engine is not None:
                await context.engine.dispose()
            logger.info("Caregate stopped")

    app = FastAPI(
        title="Caregate Console",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "version": __version__,
            "routes": len(context.routes),
            "search": context.search is not None,
        }

    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(navigation_router)
    app.include_router(search_router)
    app.include_router(operations_router)
    app.include_router(metrics_router)
    # page routes last so fixed API paths win
    app.include_router(
        RouteGenerator(context.routes, context.render_timeout).build_router()
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
