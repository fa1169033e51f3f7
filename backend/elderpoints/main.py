from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from elderpoints.config import settings
from elderpoints.errors import PointsError
from elderpoints.logging_setup import configure_logging
from elderpoints.routes.system import router as system_router
from elderpoints.routes.matches import router as matches_router
from elderpoints.routes.points import router as points_router
from elderpoints.routes.wallet import router as wallet_router
from elderpoints.routes.links import router as links_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha,
             notify_backend=settings.notify_backend)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for match settlement and points wallets"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(matches_router)
app.include_router(points_router)
app.include_router(wallet_router)
app.include_router(links_router)

@app.exception_handler(PointsError)
async def points_error_handler(request: Request, exc: PointsError):
    log.info("request_rejected", path=request.url.path, code=exc.code, status=exc.status_code, detail=exc.message)
    body = {"detail": exc.message, "code": exc.code}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = rid
    return response
