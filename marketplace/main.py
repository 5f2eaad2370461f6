"""
Marketplace API application.

Wires the routers together and owns the cross-cutting pieces: request id
tracking, structured request logging and the JSON error envelope
(``{"error": ...}``) every endpoint answers with on failure.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import db, roles
from .errors import MarketplaceError
from .log import get_logger, setup_logging
from .routers import all_routers

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    logger.info("application_startup")
    db.init_db()
    session = db.SessionLocal()
    try:
        roles.initialize_system_roles(session)
    finally:
        session.close()
    yield
    logger.info("application_shutdown")


app = FastAPI(title="Multi-vendor Marketplace", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start_time = time.time()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
    logger.info("request_started")
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info("request_completed", status_code=response.status_code, duration_seconds=time.time() - start_time)
        return response
    finally:
        structlog.contextvars.clear_contextvars()


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", error=exc.message, status_code=exc.status_code)
    else:
        logger.info("request_rejected", error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"error": "Validation failed", "details": details}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", error=str(exc), error_type=type(exc).__name__, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


for router in all_routers:
    app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("marketplace.main:app", host="0.0.0.0", port=8000)
