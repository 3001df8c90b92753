from typing import Optional

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.limiter import limiter
from app.features.access.errors import AccessControlError, ConflictError, InvalidInputError, NotFoundError
from app.features.access.routes import router as access_router
from app.features.access.service import AccessControlService
from app.features.users.routes import router as user_router
from app.utils import get_logger


log = get_logger(__name__)

VERSION = "0.1.0"


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


def build_service() -> AccessControlService:
    """Build the access-control service from configuration."""
    if config.PERSIST:
        from app.core.database.engine import SessionLocal, init_db
        from app.features.access.store import SqlAlchemyStore

        log.info("Initializing database...")
        init_db()
        log.info("Database initialized successfully")
        service = AccessControlService.from_store(SqlAlchemyStore(SessionLocal), seed_defaults=config.SEED_DEFAULTS)
    else:
        log.warning("Persistence disabled; access state lives in memory only")
        service = AccessControlService()
        if config.SEED_DEFAULTS:
            service.load_defaults()

    if config.BOOTSTRAP_ADMIN_ID:
        service.bootstrap_admin(config.BOOTSTRAP_ADMIN_ID)
    return service


def error_status(exc: AccessControlError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidInputError):
        return 400
    if isinstance(exc, ConflictError):
        return 409
    return 400


def create_app(service: Optional[AccessControlService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    When `service` is given it is used as-is and startup skips building one
    from configuration.
    """
    log.info("Initializing server")
    app = FastAPI(
        title="Church Access Control",
        description="Roles, permissions and assignments for church management",
        version=VERSION,
        docs_url="/docs" if config.ENABLE_DOCS else None,
        redoc_url="/redoc" if config.ENABLE_DOCS else None,
        openapi_url="/openapi.json" if config.ENABLE_DOCS else None
    )
    app.state.limiter = limiter
    app.state.access_service = service

    app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

    if config.ENABLE_DOCS:
        log.warning("Docs enabled")
    if config.ALLOW_ORIGIN:
        log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
        origins = [config.ALLOW_ORIGIN]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        errors = dict()
        for error in exc.errors():
            if "loc" not in error or "msg" not in error:
                continue
            key = error["loc"][-1] if error["loc"] else "root"
            if key == "__root__":
                key = "root"
            errors[key] = error["msg"]
        log.info("Request validation error %s", errors)
        return JSONResponse(status_code=400, content=jsonable_encoder(errors))

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
        return JSONResponse({"error": "You are going too fast"}, status_code=429)

    @app.exception_handler(AccessControlError)
    def access_control_error_handler(_request: Request, exc: AccessControlError) -> Response:
        status_code = error_status(exc)
        log.info("Access control error %s: %s", exc.code, exc)
        return JSONResponse({"error": exc.code, "detail": exc.message}, status_code=status_code)

    @app.on_event("startup")
    def startup():
        """Build the access-control service unless one was supplied."""
        if app.state.access_service is None:
            app.state.access_service = build_service()
        log.info("Access control ready")

    @app.get("/")
    def root():
        """Root endpoint - API health check."""
        return {
            "message": "Church Access Control API",
            "version": VERSION,
            "status": "online",
            "docs": "/docs" if config.ENABLE_DOCS else None,
            "authentication": {
                "info": "Protected endpoints require Bearer token in Authorization header",
                "protected_endpoints": ["/users/me", "/access/*"],
                "public_endpoints": ["/", "/health"]
            },
            "features": {
                "permissions": "Catalog of resource:action permissions with scope and category",
                "roles": "System and custom roles with levels, restrictions and templates",
                "assignments": "Church and team scoped, time-limited role assignments",
                "requests": "Role request and approval workflow",
                "audit": "Audit trail of decisions and administrative changes"
            }
        }

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(user_router, prefix="/users", tags=["users"])

    app.include_router(access_router, prefix="/access", tags=["access"])

    return app


app = create_app()
