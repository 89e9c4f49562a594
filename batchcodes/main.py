import uvicorn
from fastapi import FastAPI

from batchcodes.api.routes.downloads import router as downloads_router
from batchcodes.api.routes.health import router as health_router
from batchcodes.api.routes.internal_batches import router as internal_batches_router
from batchcodes.core.config import get_settings
from batchcodes.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Batch Codes API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(internal_batches_router)
    app.include_router(downloads_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "batchcodes.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
