from contextlib import asynccontextmanager

from fastapi import FastAPI

from feedstr.database.database import sessionmanager
from feedstr.main.aiohttp_client import aiohttp_client
from feedstr.main.config import get_settings
from feedstr.main.container import Container, create_container
from feedstr.main.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.container = await startup(run_scheduler=True)
    try:
        yield
    finally:
        await shutdown(app.state.container)
        app.state.container = None


async def startup(run_scheduler: bool = False) -> Container:
    """Open the shared resources and build the service container.

    A record store that cannot be opened or migrated is fatal.
    """
    settings = get_settings()

    aiohttp_client.start()
    sessionmanager.init(settings.database_url, pool_size=settings.max_workers)
    try:
        await sessionmanager.migrate()
    except Exception:
        logger.exception(f"Could not open database at {settings.db_path}")
        await sessionmanager.close()
        await aiohttp_client.stop()
        raise

    container = create_container(settings, sessionmanager, aiohttp_client)

    if settings.dry_run:
        logger.info("Dry-run mode: events will be logged, not published")

    if run_scheduler:
        container.scheduler().start()

    return container


async def shutdown(container: Container | None):
    if container is not None:
        await container.scheduler().stop()
        await container.job_manager().shutdown()

    await aiohttp_client.stop()
    await sessionmanager.close()
