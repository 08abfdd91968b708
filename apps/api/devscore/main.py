from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from devscore.api.v1.routes import router as api_v1_router
from devscore.core.config import settings
from devscore.core.error_handling import (
    ApplicationError, application_error_handler, http_exception_handler,
    validation_exception_handler, generic_exception_handler
)
from devscore.core.logging_config import setup_logging, RequestLoggingMiddleware
from devscore.services.queue import build_triggers, start_scheduler, stop_scheduler

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    triggers = build_triggers() if settings.enable_scheduler else []
    await start_scheduler(triggers)
    try:
        yield
    finally:
        await stop_scheduler(triggers)


app = FastAPI(
    title="DevScore API",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    lifespan=lifespan,
)

app.add_exception_handler(ApplicationError, application_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, generic_exception_handler)  # type: ignore[arg-type]

app.add_middleware(RequestLoggingMiddleware)


@app.get("/healthz", tags=["health"])
def healthcheck():
    return {"status": "ok", "scheduler": settings.enable_scheduler}


# Versioned API
app.include_router(api_v1_router, prefix="/api/v1")
