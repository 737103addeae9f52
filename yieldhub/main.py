import os
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  (register tables on Base.metadata)
from .services.authorization import PolicyError
from .auth.router import router as auth_router
from .routes.users import router as users_router
from .routes.locations import router as locations_router
from .routes.vehicles import router as vehicles_router
from .routes.alerts import router as alerts_router
from .routes.audit import router as audit_router
from .routes.calibration import router as calibration_router
from .routes.training import router as training_router


def policy_error_handler(request: Request, exc: PolicyError) -> JSONResponse:
    structlog.get_logger().info(
        "authorization_denied",
        path=request.url.path,
        error=type(exc).__name__,
        reason=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": type(exc).__name__})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(PolicyError, policy_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(locations_router)
    app.include_router(vehicles_router)
    app.include_router(alerts_router)
    app.include_router(audit_router)
    app.include_router(calibration_router)
    app.include_router(training_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        log = structlog.get_logger()
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            log.info("database_ready", url=settings.database_url.split("@")[-1])

    return app


app = create_app()
