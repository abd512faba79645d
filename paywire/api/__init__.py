"""
Paywire API Application Factory

Thin HTTP adapter over TransferService. Domain errors are mapped to status
codes here; storage failures are answered with a generic message and the
cause is only logged.
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from .transfers import router as transfers_router
from .users import router as users_router
from ..config import PaywireConfig, get_config
from ..errors import (
    Conflict, Forbidden, InsufficientFunds, NotFound, PaywireError,
    SelfTransfer, StorageFailure, Unauthorized, ValidationError
)
from ..service import TransferService
from ..logging_config import correlation_id, get_logger, log_action


logger = get_logger("paywire.api")

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; first matching class wins
STATUS_CODES = [
    (ValidationError, 400),
    (SelfTransfer, 400),
    (Unauthorized, 401),
    (Forbidden, 403),
    (NotFound, 404),
    (InsufficientFunds, 409),
    (Conflict, 409),
    (StorageFailure, 500),
]


def status_for(error: PaywireError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_message(error: PaywireError) -> str:
    """Text safe to return to the caller"""
    if isinstance(error, ValidationError):
        return error.message
    return error.public_message


async def paywire_error_handler(request: Request, error: PaywireError) -> JSONResponse:
    status_code = status_for(error)
    if status_code >= 500:
        log_action(
            logger, "error", f"Request failed: {error.message}",
            action=request.method, resource=request.url.path, exc_info=error
        )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"error": True, "message": error_message(error)},
        headers=headers
    )


def create_app(service: Optional[TransferService] = None,
               config: Optional[PaywireConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    app = FastAPI(
        title="Paywire Transfer API",
        description="Internal transfers between registered accounts",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.service = service or TransferService.from_config(config)

    app.add_exception_handler(PaywireError, paywire_error_handler)

    @app.middleware("http")
    async def correlate_request(request: Request, call_next):
        """Tag the request's log lines and response with one correlation ID"""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = correlation_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(users_router, tags=["Users"])
    app.include_router(transfers_router, prefix="/money/transfers", tags=["Transfers"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "paywire.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
