"""
FastAPI application for the storefront order, checkout and cancellation
engine.

Errors raised on purpose by the use cases carry their own HTTP status and
are reported through one handler. Anything else is logged with its
traceback and reported as a generic 500 so internals never reach clients.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from storefront.api.responses import (
    ErrorResponse,
    ReconciliationRequiredResponse,
)
from storefront.api.routers import (
    admin,
    cancellations,
    checkout,
    orders,
    system,
)
from storefront.config import setup_logging
from storefront.exceptions import (
    EvidenceUploadFailed,
    ReconciliationRequired,
    StorefrontError,
)

# Setup logging when module is imported
setup_logging()
logger = logging.getLogger(__name__)

RECONCILIATION_MESSAGE = (
    "Your payment was received and your order is being confirmed. "
    "No further action is needed."
)

app = FastAPI(
    title="Storefront Orders API",
    description="Checkout, order lifecycle, cancellations and refunds",
    version=system.VERSION,
)

app.include_router(system.router, tags=["System"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(orders.router, prefix="/orders", tags=["Orders"])
app.include_router(
    cancellations.router,
    prefix="/cancellation-requests",
    tags=["Cancellations"],
)
app.include_router(admin.router, prefix="/admin", tags=["Admin"])

_ = add_pagination(app)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(
    request: Request, exc: StorefrontError
) -> JSONResponse:
    if isinstance(exc, ReconciliationRequired):
        logger.error(
            "Request ended in reconciliation",
            extra={
                "path": request.url.path,
                "case_id": exc.case_id,
                "order_id": exc.order_id,
            },
        )
        body = ReconciliationRequiredResponse(
            message=RECONCILIATION_MESSAGE,
            case_id=exc.case_id,
            order_id=exc.order_id,
        )
        return JSONResponse(
            status_code=exc.http_status, content=body.model_dump()
        )

    level = logging.ERROR if exc.http_status >= 500 else logging.INFO
    logger.log(
        level,
        "Request refused",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error": exc.message,
            "status_code": exc.http_status,
        },
    )
    error = ErrorResponse(detail=exc.message)
    if isinstance(exc, EvidenceUploadFailed):
        error.request_id = exc.request_id
    return JSONResponse(
        status_code=exc.http_status,
        content=error.model_dump(exclude_none=True),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.info(
        "Invalid request data",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    # Don't leak internal error details to clients
    logger.error(
        "Unexpected error handling request",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error": str(exc),
        },
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500, content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
