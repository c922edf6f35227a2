from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import SessionLocal, engine
from errors import EngineError, InvalidInputError, NotFoundError
from logging_config import configure_logging, get_logger
from models import Base
from routes import ai as ai_routes
from routes import predictions as predictions_routes
from routes import priority as priority_routes
from services.engine import InferenceEngine

logger = get_logger(__name__)


def _error_body(err: EngineError) -> dict:
    return {"success": False, "error": err.message, "code": err.error_code, "details": err.details}


def create_app(inference_engine: InferenceEngine | None = None) -> FastAPI:
    """
    Build the API. Passing an engine (tests) skips schema creation against the
    configured DATABASE_URL; the engine brings its own store.
    """
    configure_logging(settings.log_level, settings.log_json)

    owns_engine = inference_engine is None
    inference_engine = inference_engine or InferenceEngine.from_settings(settings, SessionLocal)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "startup",
            env=settings.env,
            database_url=settings.database_url,
            classifier_configured=bool(settings.gemini_api_key),
            max_workers=settings.engine_max_workers,
        )
        if owns_engine:
            if settings.recreate_db_on_startup:
                Base.metadata.drop_all(bind=engine)
            Base.metadata.create_all(bind=engine)
        yield
        app.state.engine.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.engine = inference_engine

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(priority_routes.router)
    app.include_router(predictions_routes.router)
    app.include_router(ai_routes.router)

    @app.exception_handler(NotFoundError)
    async def _not_found(_request: Request, err: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_error_body(err))

    @app.exception_handler(InvalidInputError)
    async def _invalid_input(_request: Request, err: InvalidInputError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(err))

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


app = create_app()
