"""
FastAPI application factory for the reservation portal backend.

Creates and configures the FastAPI app, loads the portal context,
initializes the session store and the HTTP transport, and mounts routes.

Run with:
    uvicorn reservations.api.app:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reservations.api.routes import configure_routes, router
from reservations.config import PortalContext, load_context
from reservations.core.registry import list_form_kinds
from reservations.core.session import SessionStore
from reservations.transport import HttpTransport

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(context: PortalContext | None = None, transport=None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        context: Portal configuration. Read from the environment if omitted.
        transport: Transport collaborator. An HttpTransport is built from
            the context if omitted, and closed on shutdown.
    """
    if context is None:
        context = load_context()

    application = FastAPI(
        title="Reservation Portal",
        description="Dependency-driven reservation and registration forms",
        version="0.1.0",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=context.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    owns_transport = transport is None
    if owns_transport:
        transport = HttpTransport(context)

    session_store = SessionStore(timeout_seconds=context.session_timeout_seconds)

    # Configure routes with dependencies
    configure_routes(session_store, context, transport)
    application.include_router(router, prefix="/api")

    @application.on_event("startup")
    async def on_startup():
        logger.info("Reservation portal backend starting up")
        logger.info("Backend API: %s", context.api_base_url)
        logger.info("Forms: %s", ", ".join(list_form_kinds()))
        logger.info("Session timeout: %d seconds", context.session_timeout_seconds)
        if not context.api_key:
            logger.warning("PORTAL_API_KEY is not set; backend calls will be rejected")

    @application.on_event("shutdown")
    async def on_shutdown():
        if owns_transport:
            await transport.aclose()

    return application


# Create the app instance (used by uvicorn)
app = create_app()
