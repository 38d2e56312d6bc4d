"""Per-application services shared by the routes.

create_app() builds one PathStoreServices and stores it on app.state; the
routes reach it through the Services dependency.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from pathstore.acl import AccessControl, Action, User
from pathstore.api.errors import PathStoreHttpError
from pathstore.config import Settings
from pathstore.core.collision import MonotonicMillis
from pathstore.core.executor import PlanExecutor
from pathstore.core.move_tokens import MoveTokenSigner
from pathstore.core.path_index import PathIndex, existence_check
from pathstore.core.versions import VersionManager
from pathstore.paths import ObjectPath
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class PathStoreServices:
    """Collaborators wired together for one application instance."""

    settings: Settings
    store: ObjectStore
    access_control: AccessControl
    index: PathIndex
    suffix_source: MonotonicMillis
    move_tokens: MoveTokenSigner
    executor: PlanExecutor
    versions: VersionManager

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: ObjectStore,
        access_control: AccessControl,
    ) -> PathStoreServices:
        index = PathIndex(settings.path_index_ttl_seconds)
        suffix_source = MonotonicMillis()
        move_tokens = MoveTokenSigner(settings.move_token_secret)
        return cls(
            settings=settings,
            store=store,
            access_control=access_control,
            index=index,
            suffix_source=suffix_source,
            move_tokens=move_tokens,
            executor=PlanExecutor(
                store, page_size=settings.list_page_size, index=index, move_tokens=move_tokens
            ),
            versions=VersionManager(
                store, clock=suffix_source, page_size=settings.list_page_size
            ),
        )

    def exists(self, org: str) -> Callable[[str], bool]:
        """Existence check for collision resolution within org."""
        return existence_check(self.store, org, self.index)

    def require_permission(self, user: User, path: ObjectPath, action: Action) -> None:
        """Raise 403 unless user may perform action on path.

        Raises:
            PathStoreHttpError: 403 when the access control denies the action.
        """
        if self.access_control.has_permission(user, path.pathname, action):
            return
        logger.info("Denied %s on %s to %s", action, path.pathname, user.email)
        raise PathStoreHttpError(
            status_code=403,
            code="FORBIDDEN",
            message=f"Not permitted to {action} {path.pathname}",
        )


def get_services(request: Request) -> PathStoreServices:
    """FastAPI dependency returning the application's services."""
    services: PathStoreServices = request.app.state.services
    return services


Services = Annotated[PathStoreServices, Depends(get_services)]
