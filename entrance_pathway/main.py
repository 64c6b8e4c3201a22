"""FastAPI entrypoint for the Entrance Pathway API."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entrance_pathway import config
from entrance_pathway.database import create_db_and_tables
from entrance_pathway.errors import AppError
from entrance_pathway.routers import attempts as attempts_router_module
from entrance_pathway.routers import courses as courses_router_module
from entrance_pathway.routers import exams as exams_router_module
from entrance_pathway.routers import live_classes as live_classes_router_module
from entrance_pathway.routers import notes as notes_router_module
from entrance_pathway.routers import questions as questions_router_module
from entrance_pathway.routers import users as users_router_module

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _field_name(loc) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI puts in front of the field
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "body"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Application error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request-shape errors in the same envelope as service validation."""
    errors_dict = {}
    for error in exc.errors():
        field_name = _field_name(error.get("loc", []))
        if error.get("type") == "missing":
            errors_dict[field_name] = f"{field_name} is required."
        else:
            errors_dict.setdefault(field_name, error.get("msg", "Invalid input"))

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"code": "INVALID_INPUT", "message": "Invalid input", "errors": errors_dict},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "INTERNAL_ERROR", "message": "Internal server error"},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Entrance Pathway API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGIN,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers
    app.include_router(users_router_module.router, tags=["users"])
    app.include_router(courses_router_module.router, tags=["courses"])
    app.include_router(questions_router_module.router, tags=["questions"])
    app.include_router(exams_router_module.router, prefix="/exams", tags=["exams"])
    app.include_router(attempts_router_module.router, tags=["attempts"])
    app.include_router(notes_router_module.router, tags=["notes"])
    app.include_router(live_classes_router_module.router, prefix="/live-classes", tags=["live-classes"])

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def on_startup():
        """Initialize database schema."""
        create_db_and_tables()
        logger.info("Entrance Pathway API started")

    return app


app = create_app()
