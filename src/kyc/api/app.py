"""FastAPI app factory for the KYC aggregation API."""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kyc.api.kyc import router as kyc_router
from kyc.errors import DurableStoreFailure, IncompleteUpstreamData, UpstreamUnavailable
from kyc.observability import configure_logging

LOGGER = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

GENERIC_ERROR = "An unexpected error occurred while processing the request."


def _correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if existing:
        return existing
    return request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    correlation_id = _correlation_id(request)
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "correlation_id": correlation_id},
        headers={CORRELATION_HEADER: correlation_id},
    )


async def _handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    LOGGER.warning("Validation error: %s. CorrelationId: %s", exc, _correlation_id(request))
    return _error_response(request, 400, "Invalid request parameters.")


async def _handle_incomplete(request: Request, exc: IncompleteUpstreamData) -> JSONResponse:
    LOGGER.warning("Customer data not found: %s. CorrelationId: %s", exc, _correlation_id(request))
    return _error_response(request, 404, "Customer data not found for the provided identifier.")


async def _handle_unavailable(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
    LOGGER.error("External API request failed: %s. CorrelationId: %s", exc, _correlation_id(request))
    if exc.timed_out:
        return _error_response(request, 504, "Request timeout. Please try again later.")
    return _error_response(request, 503, "External service is temporarily unavailable. Please try again later.")


async def _handle_store_failure(request: Request, exc: DurableStoreFailure) -> JSONResponse:
    LOGGER.error("Durable store failure: %s. CorrelationId: %s", exc, _correlation_id(request))
    return _error_response(request, 500, GENERIC_ERROR)


def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("Unhandled error: %s. CorrelationId: %s", exc, _correlation_id(request), exc_info=exc)
    return _error_response(request, 500, GENERIC_ERROR)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    configure_logging()
    app = FastAPI(title="KYC Aggregation API", version="0.1")
    app.include_router(kyc_router)
    app.add_exception_handler(ValueError, _handle_value_error)
    app.add_exception_handler(IncompleteUpstreamData, _handle_incomplete)
    app.add_exception_handler(UpstreamUnavailable, _handle_unavailable)
    app.add_exception_handler(DurableStoreFailure, _handle_store_failure)

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        """Attach a correlation id to every request and echo it back."""
        request.state.correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        try:
            response = await call_next(request)
        except Exception as exc:
            # Errors without a registered handler still get the JSON error document.
            return _handle_unexpected(request, exc)
        response.headers.setdefault(CORRELATION_HEADER, request.state.correlation_id)
        return response

    @app.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    return app


# For uvicorn, expose `app` at module level
app = create_app()

__all__ = ["app", "create_app"]
