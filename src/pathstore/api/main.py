"""pathstore FastAPI application factory.

This module provides the create_app() factory for bootstrapping the API.
"""

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pathstore import __version__
from pathstore.acl import AccessControl, EnvOrgConfigLoader, OrgConfigAccessControl
from pathstore.api.deps import PathStoreServices
from pathstore.api.errors import (
    PathStoreHttpError,
    generic_exception_handler,
    http_exception_handler,
    object_storage_error_handler,
    path_store_error_handler,
    path_store_http_error_handler,
    request_validation_error_handler,
)
from pathstore.api.middleware.request_id import RequestIdMiddleware
from pathstore.api.routes.health import router as health_router
from pathstore.api.routes.listing import router as listing_router
from pathstore.api.routes.mutations import router as mutations_router
from pathstore.api.routes.source import router as source_router
from pathstore.api.routes.versions import router as versions_router
from pathstore.config import Settings, load_settings
from pathstore.core.errors import PathStoreError
from pathstore.observability.tracing import configure_tracing
from pathstore.storage import create_object_store
from pathstore.storage.errors import ObjectStorageError
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


def create_app(
    store: ObjectStore | None = None,
    access_control: AccessControl | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the pathstore FastAPI application.

    This factory:
    - Loads settings from the environment unless given
    - Builds the object store backend and shared services
    - Registers the request ID middleware and exception handlers
    - Mounts the health, source, listing, mutation and version routers

    Args:
        store: Optional ObjectStore for testing. If None, built from settings.
        access_control: Optional AccessControl for testing. If None, uses
            permission rules from PATHSTORE_ORG_CONFIG_JSON.
        settings: Optional Settings for testing. If None, loads from env.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = load_settings()
    if store is None:
        store = create_object_store(settings)
    if access_control is None:
        access_control = OrgConfigAccessControl(EnvOrgConfigLoader())

    app = FastAPI(
        title="pathstore API",
        description="Path-addressed content store over object storage",
        version=__version__,
    )
    app.state.services = PathStoreServices.build(settings, store, access_control)

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(PathStoreHttpError, path_store_http_error_handler)
    app.add_exception_handler(PathStoreError, path_store_error_handler)
    app.add_exception_handler(ObjectStorageError, object_storage_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(source_router)
    app.include_router(listing_router)
    app.include_router(mutations_router)
    app.include_router(versions_router)

    logger.info("pathstore API created backend=%s", store.backend_name)
    return app
