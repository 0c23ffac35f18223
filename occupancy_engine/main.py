# occupancy_engine/main.py
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from occupancy_engine.api.routes import health, occurrences, rules, setpoints, sites
from occupancy_engine.core.config import get_settings
from occupancy_engine.core.errors import NotFoundError, ValidationError
from occupancy_engine.core.logging import configure_logging, get_logger
from occupancy_engine.db.session import init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, environment=settings.APP_ENV)
    await init_db()
    logger.info("application_started", app_name=settings.APP_NAME, environment=settings.APP_ENV)
    yield
    logger.info("application_stopped")


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, field=exc.field, reason=str(exc))
    return JSONResponse(
        status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "field": exc.field},
    )


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTPStatus.NOT_FOUND,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    """
    Application factory for the Occupancy Engine service.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Resolves recurring operating-schedule exceptions into per-date\n"
            "occurrences, decides whether a site is occupied at a given instant,\n"
            "and resolves thermostat setpoints through the profile/zone cascade."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(occurrences.router)
    app.include_router(rules.router)
    app.include_router(sites.router)
    app.include_router(setpoints.router)

    return app


app = create_app()
