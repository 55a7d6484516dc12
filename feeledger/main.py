from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feeledger.api.v1.fee_heads.router import router as fee_heads_router
from feeledger.api.v1.fee_structures.router import router as fee_structures_router
from feeledger.api.v1.invoices.router import router as invoices_router
from feeledger.api.v1.payments.router import router as payments_router
from feeledger.api.v1.reports.router import router as reports_router
from feeledger.core.exceptions import ValidationError
from feeledger.core.log_config import configure_logging


def _describe_request_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters get the same error body as service validation."""
    err = ValidationError(_describe_request_errors(exc))
    return JSONResponse(status_code=err.status_code, content={"detail": err.to_detail()})


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fee Ledger")

    # CORS: allow the school portals to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(fee_heads_router)
    app.include_router(fee_structures_router)
    app.include_router(invoices_router)
    app.include_router(payments_router)
    app.include_router(reports_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
