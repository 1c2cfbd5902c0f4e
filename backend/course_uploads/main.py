from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from course_uploads.api.v1 import uploads
from course_uploads.core.errors import IncompleteUpload, UploadError
from course_uploads.core.logging import configure_logging
from course_uploads.core.settings import Settings, get_settings

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, X-Upload-ID, X-Chunk-Index, X-Total-Chunks"
CORS_MAX_AGE = "86400"


def _cors_headers(settings: Settings, request: Request) -> dict[str, str]:
    origins = settings.cors_origins
    if "*" in origins:
        allow_origin = "*"
    else:
        origin = request.headers.get("origin") or ""
        allow_origin = origin if origin in origins else ""

    headers = {
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Max-Age": CORS_MAX_AGE,
    }
    if allow_origin:
        headers["Access-Control-Allow-Origin"] = allow_origin
        if allow_origin != "*":
            headers["Vary"] = "Origin"
    return headers


def _error_response(status_code: int, body: dict, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Course Uploads API")

    # Every response, errors and preflights included, carries the CORS headers. Preflights get 204.
    @app.middleware("http")
    async def cors(request: Request, call_next):
        headers = _cors_headers(settings, request)
        if request.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)
        response = await call_next(request)
        response.headers.update(headers)
        return response

    @app.exception_handler(UploadError)
    async def handle_upload_error(request: Request, exc: UploadError) -> JSONResponse:
        body: dict = {"error": exc.message}
        if isinstance(exc, IncompleteUpload):
            body["missingChunks"] = exc.missing_chunks
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.detail})")
            if settings.expose_error_details and exc.detail:
                body["detail"] = exc.detail
        return _error_response(exc.status_code, body)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown paths and unsupported methods on known paths both read as "no such route".
        if exc.status_code in {status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED}:
            return _error_response(status.HTTP_404_NOT_FOUND, {"error": "Not found"})
        return _error_response(exc.status_code, {"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p != "body"]
            fields.append(".".join(loc) or "body")
        message = "Missing or invalid fields"
        if fields:
            message = f"{message}: {', '.join(dict.fromkeys(fields))}"
        return _error_response(status.HTTP_400_BAD_REQUEST, {"error": message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        message = "Internal server error"
        if settings.expose_error_details and str(exc):
            message = str(exc)
        # Rendered by the outermost error middleware, so the CORS middleware never sees it.
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, {"error": message}, headers=_cors_headers(settings, request)
        )

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(uploads.router)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("course_uploads.main:app", host="0.0.0.0", port=int(settings.port))
