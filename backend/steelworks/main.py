"""
Steelworks Operations API
FastAPI backend with async SQLAlchemy, JWT auth, quote pricing and
departmental capacity planning.
"""
from dotenv import load_dotenv

# .env must be loaded before steelworks.config reads the environment
load_dotenv()

import os
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse
from steelworks.config import CORS_ORIGINS, LOG_JSON, LOG_LEVEL
from steelworks.services.errors import SteelworksError
from steelworks.services.logging_config import setup_logging
from steelworks.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware

setup_logging(level=LOG_LEVEL, json_output=LOG_JSON)
logger = logging.getLogger("steelworks-api")

APP_VERSION = "1.0.0"

# Startup validation
for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning("MISSING env var: %s; running in dev mode", var)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from steelworks.db import init_db
    await init_db()
    yield


app = FastAPI(
    title="Steelworks Operations API",
    version=APP_VERSION,
    description="Quote pricing and capacity planning for steel fabrication",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error responses: every failure is {"error": CODE, "message": text}
# ---------------------------------------------------------------------------

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE",
    429: "RATE_LIMITED",
}


@app.exception_handler(SteelworksError)
async def steelworks_error_handler(request: Request, exc: SteelworksError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            "message": str(exc.detail),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "VALIDATION_INVALID", "message": "; ".join(problems) or "Invalid request"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s: %s", request.method, request.url.path, exc,
        exc_info=exc,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
    )


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from steelworks.api.auth_routes import router as auth_router, users_router
from steelworks.api.project_routes import (
    customers_router,
    products_router,
    router as projects_router,
)
from steelworks.api.catalogue_routes import router as catalogue_router
from steelworks.api.quote_routes import router as quotes_router
from steelworks.api.capacity_routes import router as capacity_router
from steelworks.api.audit_routes import router as audit_router

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(customers_router)
app.include_router(projects_router)
app.include_router(products_router)
app.include_router(catalogue_router)
app.include_router(quotes_router)
app.include_router(capacity_router)
app.include_router(audit_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("steelworks.main:app", host="0.0.0.0", port=8000, reload=True)
