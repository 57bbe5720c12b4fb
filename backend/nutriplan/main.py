import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nutriplan.core.config import settings
from nutriplan.core.errors import AuthorizationError, RBACError
from nutriplan.core.logging import configure_logging
from nutriplan.db.session import AsyncSessionLocal
from nutriplan.rbac.bootstrap import initialize_system_roles
import nutriplan.models  # noqa: F401  # force model registration

from nutriplan.api.v1.roles import router as roles_router
from nutriplan.api.v1.tenants import router as tenants_router

logger = logging.getLogger(__name__)


async def rbac_error_handler(request: Request, exc: RBACError) -> JSONResponse:
    level = logging.WARNING if isinstance(exc, AuthorizationError) else logging.INFO
    logger.log(
        level,
        "request rejected",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error": type(exc).__name__,
            "status_code": exc.status_code,
        },
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.RBAC_BOOTSTRAP_ON_STARTUP:
        async with AsyncSessionLocal() as session:
            await initialize_system_roles(session)
    yield


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="NutriPlan API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (Next.js frontend)
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RBACError, rbac_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "nutriplan"}

    # Routers
    app.include_router(roles_router, prefix="/api/v1")
    app.include_router(tenants_router, prefix="/api/v1")

    return app


app = create_application()
