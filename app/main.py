import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.errors import AuthError, auth_error_handler
from app.core.logging import configure_logging
from app.core.providers import build_auth_components
from app.db import session as db_session
from app.db.init_db import init_db
from app.services.maintenance import run_periodic_cleanup

configure_logging(settings.LOG_LEVEL, settings.SECURITY_LOG_PATH)


@asynccontextmanager
async def lifespan(app: FastAPI):
    components = build_auth_components(settings)
    app.state.auth = components
    init_db()
    cleanup = asyncio.create_task(
        run_periodic_cleanup(
            components,
            lambda: db_session.engine,
            settings.REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS,
        )
    )
    try:
        yield
    finally:
        cleanup.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup

app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

allow_origins = settings.CORS_ORIGINS
allow_credentials = '*' not in allow_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.add_exception_handler(AuthError, auth_error_handler)
app.include_router(api_router)
