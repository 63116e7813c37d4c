from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from claimlink.api.routes import router
from claimlink.api.admin_routes import router as admin_router
from claimlink.api.schemas import ErrorResponse
from claimlink.core.errors import (
    ClaimStateError,
    EconomicError,
    EscrowError,
    TransientError,
    ValidationError,
)
from claimlink.observability.logging import log
from claimlink.settings import settings

app = FastAPI(title="Claim Link Escrow API")

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Claim link escrow API is running. Use /health, POST /api/events or POST /api/send."
    }


@app.get("/health")
def health():
    return {"status": "ok"}


def _status_for(exc: EscrowError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (EconomicError, ClaimStateError)):
        return 409
    if isinstance(exc, TransientError):
        return 503
    return 502


@app.exception_handler(EscrowError)
async def escrow_error_handler(request: Request, exc: EscrowError):
    details = {}
    if isinstance(exc, EconomicError):
        details = {"required": str(exc.required), "available": str(exc.available), "shortfall": str(exc.shortfall)}
    return JSONResponse(
        status_code=_status_for(exc),
        content=ErrorResponse(reason=exc.reason, message=exc.message, details=details).model_dump(),
    )


# Never leak a stack trace to the gateway
@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_exception", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:200])
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(reason="InternalError", message="Something went wrong. Please try again later.").model_dump(),
    )
