"""
Microcredit API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .loans import router as loans_router
from .amortization import router as amortization_router
from .. import __version__
from ..exceptions import (
    LoanCoreError, LoanNotFound, InvalidTransition, InvalidParameters,
    ScheduleGenerationError, InsufficientAmount, NoOutstandingInstallments,
    ConcurrencyConflict, PersistenceError
)
from ..logging_config import get_logger


logger = get_logger("microcredit.api")

# Checked in order, first isinstance match wins
ERROR_STATUS_CODES = (
    (LoanNotFound, 404),
    (InvalidTransition, 409),
    (NoOutstandingInstallments, 409),
    (ConcurrencyConflict, 409),
    (ScheduleGenerationError, 422),
    (InvalidParameters, 422),
    (InsufficientAmount, 400),
    (PersistenceError, 503),
)


def status_code_for(exc: LoanCoreError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def loan_core_error_handler(request: Request, exc: LoanCoreError) -> JSONResponse:
    status_code = status_code_for(exc)
    body = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, InsufficientAmount):
        body["minimum_required"] = str(exc.minimum_required)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Microcredit Loan Core API",
        description="Loan lifecycle, repayment scheduling and payment settlement",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LoanCoreError, loan_core_error_handler)

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(amortization_router, prefix="/amortization", tags=["Amortization"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "microcredit_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Microcredit Loan Core API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "amortization": "/amortization"
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False, workers: int = 1):
    """Run the FastAPI server"""
    uvicorn.run(
        "microcredit.api:app",
        host=host,
        port=port,
        reload=debug,
        workers=workers,
        log_level="info"
    )
