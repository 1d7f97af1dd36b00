import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bizledger.api.v1.business import router as business_router
from bizledger.api.v1.finance import router as finance_router
from bizledger.api.v1.transactions import router as transactions_router
from bizledger.core.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

GENERIC_ERROR_DETAIL = "Internal server error"

app = FastAPI(
    title="BizLedger API",
    version="0.1.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(business_router, prefix="/api/v1", tags=["business"])
app.include_router(transactions_router, prefix="/api/v1", tags=["transactions"])
app.include_router(finance_router, prefix="/api/v1", tags=["finance"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 5xx details stay in the logs unless explicitly exposed.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": GENERIC_ERROR_DETAIL})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": GENERIC_ERROR_DETAIL})


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if settings.security_headers_enabled:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        # Ledger and business payloads are per-user.
        if request.url.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
