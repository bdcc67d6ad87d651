from datetime import datetime, timezone

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from feedstr.feeds.presentation.feed_router import router as feed_router
from feedstr.jobs.job_router import router as job_router
from feedstr.main.config import get_settings
from feedstr.main.container import Container
from feedstr.main.logging import get_logger
from feedstr.server import api_documentation
from feedstr.server.dependencies.container import get_container
from feedstr.server.dependencies.lifespan import lifespan
from feedstr.server.exception_handlers import add_exception_handlers

logger = get_logger(__name__)


def get_application(with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(lifespan=lifespan if with_lifespan else None)
    app.state.container = None

    app.include_router(feed_router, tags=["feeds"])
    app.include_router(job_router, tags=["jobs"])

    add_exception_handlers(app)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        app.openapi_schema = get_openapi(
            title=api_documentation.TITLE,
            version=get_settings().app_version,
            description=api_documentation.SUMMARY,
            tags=api_documentation.TAGS_METADATA,
            routes=app.routes,
        )
        return app.openapi_schema

    app.openapi = custom_openapi

    @app.exception_handler(500)
    async def custom_http_500_exception_handler(request, exc):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Something went wrong"})

    @app.get("/healthz", tags=["health"])
    async def get_healthz(container: Container = Depends(get_container)):
        scheduler = container.scheduler()
        job_manager = container.job_manager()

        return {
            "status": "HEALTHY",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": get_settings().app_version,
            "scheduler": {
                "running": scheduler.is_running,
                "batch_in_progress": scheduler.batch_in_progress,
                "last_runs": {
                    kind.value: ran_at.isoformat() for kind, ran_at in scheduler.last_runs.items()
                },
            },
            "jobs": {"running": job_manager.running},
        }

    return app


app = get_application()


def start():
    settings = get_settings()
    uvicorn.run(
        "feedstr.server.main:app",
        host=settings.webserver_host,
        port=settings.webserver_port,
    )
