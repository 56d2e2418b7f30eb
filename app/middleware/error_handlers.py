from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from app.core.exceptions import MalformedSession, StorageUnavailable, UpstreamUnavailable

logger = logging.getLogger(__name__)

def register_error_handlers(app: FastAPI):

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation Error", "details": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(StorageUnavailable)
    async def storage_error_handler(request: Request, exc: StorageUnavailable):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "Service Unavailable", "details": "Session storage is unavailable"}
        )

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_error_handler(request: Request, exc: UpstreamUnavailable):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=502,
            content={"error": "Upstream Error", "details": "Record store is unavailable"}
        )

    @app.exception_handler(MalformedSession)
    async def malformed_session_handler(request: Request, exc: MalformedSession):
        logger.warning(str(exc))
        return JSONResponse(
            status_code=422,
            content={"error": "Malformed Session", "details": exc.reason}
        )
