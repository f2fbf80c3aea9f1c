# User value: This file serves the operator console so extraction runs can be driven and tracked from the browser.
# app.py
import os
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from utils.json_logging import configure_json_logging
from utils.metrics import incr, observe_ms, snapshot as metrics_snapshot

# config loads .env; import it before modules that read os.getenv at import time.
import config


def configure_logging() -> None:
    level_name = config.LOG_LEVEL
    level = getattr(logging, level_name, logging.INFO)
    configure_json_logging(service="batch-extract-console", level=level)


configure_logging()
logger = logging.getLogger("extractor.error")
from startup_env import validate_startup_env
from utils.request_id import REQUEST_ID_HEADER, get_request_id, normalize_request_id, set_request_id

validate_startup_env()

from routes.extractor import router as extractor_router
from services.errors import ConfigError, ExtractorError, RemoteError, TransportError
from services.orchestrator import ExtractionOrchestrator

_ERROR_STATUS = {
    ConfigError: 400,
    RemoteError: 502,
    TransportError: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.orchestrator = ExtractionOrchestrator()
    logger.info("orchestrator_ready base_url=%s", app.state.orchestrator.client.base_url)
    try:
        yield
    finally:
        # Stops the poll loop so no timer outlives the app.
        await app.state.orchestrator.aclose()
        logger.info("orchestrator_closed")


app = FastAPI(title="Batch Extract Console", lifespan=lifespan)


def _parse_csv_env(name: str) -> list[str]:
    raw = os.getenv(name, "")
    values = [x.strip() for x in raw.split(",") if x.strip()]
    seen = set()
    ordered = []
    for item in values:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(getattr(response, "status_code", 500))
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        duration_ms = (time.perf_counter() - started) * 1000.0
        method = request.method.upper()
        path = request.url.path
        status_class = f"{status_code // 100}xx"
        incr("console_http_requests_total", method=method, path=path, status_class=status_class)
        observe_ms("console_http_request_latency_ms", duration_ms, method=method, path=path, status_class=status_class)
        set_request_id(None)


def _extract_error_message(detail) -> str:
    if isinstance(detail, dict):
        return str(detail.get("error_message") or detail.get("message") or detail.get("detail") or detail)
    if isinstance(detail, list):
        return "; ".join(str(x) for x in detail)
    return str(detail)


def _to_error_code(status_code: int, detail) -> str:
    if isinstance(detail, dict) and detail.get("error_code"):
        return str(detail.get("error_code")).strip().upper()
    if status_code == 404:
        return "RESOURCE_NOT_FOUND"
    if status_code == 409:
        return "STATE_CONFLICT"
    if status_code == 400:
        return "INVALID_REQUEST"
    return f"HTTP_{status_code}"


def _error_body(*, request: Request, status_code: int, detail, error_message: str | None = None) -> dict:
    request_id = get_request_id() or normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    return {
        "error_code": _to_error_code(status_code, detail),
        "error_message": error_message or _extract_error_message(detail),
        "detail": detail,
        "path": request.url.path,
        "request_id": request_id,
    }


def error_status_for(exc: ExtractorError) -> int:
    for cls, status_code in _ERROR_STATUS.items():
        if isinstance(exc, cls):
            return status_code
    return 500


@app.exception_handler(ExtractorError)
async def extractor_exception_handler(request: Request, exc: ExtractorError):
    status_code = error_status_for(exc)
    detail = {"error_code": exc.error_code, "error_message": str(exc)}
    remote_status = getattr(exc, "status_code", None)
    if remote_status is not None:
        detail["remote_status_code"] = remote_status
    body = _error_body(request=request, status_code=status_code, detail=detail)
    logger.warning(
        "action_failed status=%s path=%s request_id=%s error_code=%s error_message=%s",
        status_code,
        request.url.path,
        body["request_id"],
        body["error_code"],
        body["error_message"],
    )
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = _error_body(
        request=request,
        status_code=422,
        detail=exc.errors(),
        error_message="Request validation failed",
    )
    body["error_code"] = "VALIDATION_ERROR"
    logger.warning(
        "request_failed_validation status=422 path=%s request_id=%s error_code=%s",
        request.url.path,
        body["request_id"],
        body["error_code"],
    )
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = _error_body(request=request, status_code=exc.status_code, detail=exc.detail)
    logger.warning(
        "request_failed status=%s path=%s request_id=%s error_code=%s error_message=%s",
        exc.status_code,
        request.url.path,
        body["request_id"],
        body["error_code"],
        body["error_message"],
    )
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = get_request_id() or normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    logger.exception(
        "request_failed_unhandled path=%s request_id=%s error=%s: %s",
        request.url.path,
        request_id,
        exc.__class__.__name__,
        exc,
    )
    body = _error_body(
        request=request,
        status_code=500,
        detail="Unhandled server exception",
        error_message="Internal server error",
    )
    body["error_code"] = "INTERNAL_SERVER_ERROR"
    return JSONResponse(status_code=500, content=body)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return metrics_snapshot()


CORS_ALLOW_ORIGINS = _parse_csv_env("CORS_ALLOW_ORIGINS")
logger.info("cors_configured allow_origins=%s", CORS_ALLOW_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)

app.include_router(extractor_router)
