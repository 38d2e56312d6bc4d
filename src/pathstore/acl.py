"""Access control and org configuration collaborators.

Permission rules live in each org's configuration:

    {
        "permissions": [
            {"path": "/**", "users": ["*"], "actions": "read"},
            {"path": "/site/**", "users": ["editor@example.com"], "actions": "write"}
        ]
    }

Rule paths are org-relative. A trailing "/**" matches the folder and
everything beneath it; anything else matches exactly. For a given path the
most specific matching rules decide, and users they do not name are denied.
"write" implies "read". An org without rules is open to everyone.

Environment Variables:
    PATHSTORE_ORG_CONFIG_JSON: JSON object mapping org name to its config
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal, Protocol

logger = logging.getLogger(__name__)

PATHSTORE_ORG_CONFIG_ENV: Final[str] = "PATHSTORE_ORG_CONFIG_JSON"

Action = Literal["read", "write"]

SUBTREE_SUFFIX: Final[str] = "/**"
ANY_USER: Final[str] = "*"
ANONYMOUS_EMAIL: Final[str] = "anonymous"

_ACTION_GRANTS: Final[dict[str, frozenset[str]]] = {
    "read": frozenset({"read"}),
    "write": frozenset({"read", "write"}),
}


@dataclass(frozen=True)
class User:
    """The caller on whose behalf a request runs."""

    user_id: str
    email: str

    @property
    def is_anonymous(self) -> bool:
        return self.email == ANONYMOUS_EMAIL


ANONYMOUS_USER = User(user_id=ANONYMOUS_EMAIL, email=ANONYMOUS_EMAIL)


class OrgConfigLoader(Protocol):
    """Loads an org's configuration (opaque outside the ACL)."""

    def load_config(self, org: str) -> dict[str, Any]: ...


class StaticOrgConfigLoader:
    """OrgConfigLoader over a fixed mapping."""

    def __init__(self, configs: Mapping[str, dict[str, Any]] | None = None) -> None:
        self._configs = dict(configs or {})

    def load_config(self, org: str) -> dict[str, Any]:
        return self._configs.get(org, {})


class EnvOrgConfigLoader:
    """OrgConfigLoader reading PATHSTORE_ORG_CONFIG_JSON on every call."""

    def load_config(self, org: str) -> dict[str, Any]:
        raw = os.environ.get(PATHSTORE_ORG_CONFIG_ENV)
        if not raw:
            return {}

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Failed to parse %s; treating as empty", PATHSTORE_ORG_CONFIG_ENV)
            return {}

        if not isinstance(parsed, dict):
            logger.warning("%s is not a dict; treating as empty", PATHSTORE_ORG_CONFIG_ENV)
            return {}

        config = parsed.get(org)
        return config if isinstance(config, dict) else {}


class AccessControl(Protocol):
    """Decides whether a user may act on an org-qualified path ("/org/key")."""

    def has_permission(self, user: User, path: str, action: Action) -> bool: ...


class AllowAllAccessControl:
    """AccessControl granting everything (local development)."""

    def has_permission(self, user: User, path: str, action: Action) -> bool:
        return True


@dataclass(frozen=True)
class PermissionRule:
    """One parsed permission rule."""

    path: str
    users: frozenset[str]
    actions: frozenset[str]

    @property
    def is_subtree(self) -> bool:
        return self.path.endswith(SUBTREE_SUFFIX)

    @property
    def specificity(self) -> tuple[int, int]:
        base = self.path[: -len(SUBTREE_SUFFIX)] if self.is_subtree else self.path
        # Exact rules beat subtree rules on the same base path.
        return len(base), 0 if self.is_subtree else 1

    def matches_path(self, key_path: str) -> bool:
        if not self.is_subtree:
            return key_path == self.path
        base = self.path[: -len(SUBTREE_SUFFIX)]
        return not base or key_path == base or key_path.startswith(base + "/")

    def matches_user(self, user: User) -> bool:
        return ANY_USER in self.users or user.email.lower() in self.users


def parse_rules(config: Mapping[str, Any]) -> list[PermissionRule]:
    """Parse permission rules from an org config, skipping malformed entries."""
    raw_rules = config.get("permissions")
    if not isinstance(raw_rules, list):
        return []

    rules: list[PermissionRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            continue
        path = raw.get("path")
        users = raw.get("users")
        action = raw.get("actions")
        if not isinstance(path, str) or action not in _ACTION_GRANTS:
            continue
        if isinstance(users, str):
            users = [users]
        if not isinstance(users, list):
            continue
        normalized = path.strip("/").lower()
        rules.append(
            PermissionRule(
                # "/" alone means the whole org.
                path="/" + normalized if normalized else SUBTREE_SUFFIX,
                users=frozenset(str(u).strip().lower() for u in users),
                actions=_ACTION_GRANTS[action],
            )
        )
    return rules


class OrgConfigAccessControl:
    """AccessControl driven by the permission rules in each org's config."""

    def __init__(self, loader: OrgConfigLoader) -> None:
        self._loader = loader

    def has_permission(self, user: User, path: str, action: Action) -> bool:
        org, _, key = path.strip("/").partition("/")
        rules = parse_rules(self._loader.load_config(org))
        if not rules:
            return True

        key_path = "/" + key.lower() if key else "/"
        matching = [rule for rule in rules if rule.matches_path(key_path)]
        if not matching:
            logger.debug("No rule covers %s", path)
            return False

        best = max(rule.specificity for rule in matching)
        return any(
            action in rule.actions and rule.matches_user(user)
            for rule in matching
            if rule.specificity == best
        )


def filter_paths(
    access_control: AccessControl,
    user: User,
    paths: Iterable[str],
    action: Action = "read",
) -> list[str]:
    """Keep only the paths the user may act on."""
    return [path for path in paths if access_control.has_permission(user, path, action)]
