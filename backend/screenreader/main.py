import logging
from pathlib import Path

from fastapi import FastAPI

from screenreader import __version__
from screenreader.api import api_router
from screenreader.core.logging import configure_logging
from screenreader.core.settings import get_settings

configure_logging()
settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(title="CamAPS FX Screen Reader", version=__version__)

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup_event() -> None:
    data_dir = Path(settings.data.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Using data directory: %s", data_dir)

    from screenreader.core.db import create_tables, init_db

    init_db()
    await create_tables()

    from screenreader.jobs import setup_periodic_tasks

    setup_periodic_tasks(settings)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    from screenreader.core.db import dispose_db
    from screenreader.core.scheduler import shutdown_scheduler
    from screenreader.jobs import shutdown_tasks

    shutdown_scheduler()
    await shutdown_tasks()
    await dispose_db()


@app.get("/", include_in_schema=False)
def root():
    return {"message": "CamAPS FX Screen Reader backend running"}
