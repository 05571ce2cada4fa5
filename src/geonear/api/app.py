"""FastAPI surface for proximity lookups."""

from __future__ import annotations

import argparse
import logging
import uuid
from typing import Any, Dict, Union

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictFloat, StrictInt
from starlette.exceptions import HTTPException as StarletteHTTPException

from geonear.api.nearby import ProximityQueryService
from geonear.common.config import load_config
from geonear.common.errors import BadRequest, InternalError, StorageError
from geonear.common.logging import setup_logging
from geonear.common.services import Services, build_services

logger = logging.getLogger(__name__)


class NearbyRequest(BaseModel):
    # Strings and booleans are not coordinates.
    lat: Union[StrictFloat, StrictInt]
    long: Union[StrictFloat, StrictInt]


def _error_response(request: Request, status_code: int, code: str, message: str, details: Dict[str, Any] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "request_id": getattr(request.state, "request_id", None),
            }
        },
    )


def get_query_service(request: Request) -> ProximityQueryService:
    return request.app.state.query_service


def create_app(services: Services) -> FastAPI:
    app = FastAPI(title="geonear API", version="0.1")
    app.state.services = services
    app.state.query_service = ProximityQueryService(
        services.indexer,
        services.sink,
        timeout=services.config.storage.query_timeout_seconds,
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        code = "not_found" if exc.status_code == 404 else "http_error"
        return _error_response(request, exc.status_code, code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = {"errors": [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]}
        return _error_response(request, 400, "bad_request", "Invalid request body", details)

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        return _error_response(request, 400, "bad_request", str(exc))

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError):
        return _error_response(request, 500, "internal_error", str(exc) or "Internal server error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error while serving %s", request.url.path)
        return _error_response(request, 500, "internal_error", "Internal server error")

    cors_origins = list(services.config.api.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_origins != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.post("/api/nearby")
    def nearby(body: NearbyRequest, service: ProximityQueryService = Depends(get_query_service)):
        return service.find_nearby(body.lat, body.long).to_json()

    @app.get("/api/health")
    def health():
        return {"status": "healthy"}

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the geonear proximity API.")
    parser.add_argument("--config", default="config/local.yaml", help="Path to YAML config.")
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.logging.level)

    try:
        services = build_services(config)
    except StorageError as exc:
        logger.error("Cannot start API, storage unavailable: %s", exc)
        raise SystemExit(1) from exc

    try:
        services.sink.create_index(timeout=config.storage.index_timeout_seconds)
    except StorageError as exc:
        logger.warning("Could not ensure h3_id index: %s", exc)

    try:
        logger.info("Server starting on %s:%d", config.api.host, config.api.port)
        uvicorn.run(create_app(services), host=config.api.host, port=config.api.port)
    finally:
        services.close()


if __name__ == "__main__":
    main()
