"""
FastAPI application entry point
Run with: uvicorn app.main:app --reload
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.errors import REQUEST_ID_HEADER, register_exception_handlers
from app.api.v1.routes import audit, auth, document, group, membership, person, tenant, user
from app.core.config import settings
from app.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        # Preserve incoming request IDs or assign a new one
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({(time.monotonic() - start) * 1000:.1f} ms) [{request_id}]"
        )
        return response

    register_exception_handlers(app)

    for module in (auth, tenant, user, person, group, membership, document, audit):
        app.include_router(module.router, prefix=settings.API_V1_PREFIX)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} initialized")
    return app


app = create_app()
