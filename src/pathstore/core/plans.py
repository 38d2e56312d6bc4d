"""Mutation plans and structured mutation errors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pathstore.core.errors import PathStoreError


class MutationKind(str, Enum):
    """Structural mutation requested by the caller."""

    MOVE = "move"
    COPY = "copy"
    RENAME = "rename"


@dataclass(frozen=True)
class DestinationPlan:
    """A validated, resolved mutation ready for execution.

    Attributes:
        source: Org-relative source key.
        destination: Org-relative destination key; never the source itself
            and never beneath it.
        kind: The mutation this plan was validated for.
        continuation_token: Resume point for batched folder operations.
    """

    source: str
    destination: str
    kind: MutationKind = MutationKind.MOVE
    continuation_token: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Serialize, omitting an absent continuation token."""
        data = {"source": self.source, "destination": self.destination}
        if self.continuation_token:
            data["continuation_token"] = self.continuation_token
        return data


@dataclass(frozen=True)
class MutationError:
    """Structured validation failure returned instead of raising.

    Attributes:
        status: HTTP status the routing layer should answer with.
        code: Machine-readable error code.
        message: Human-readable explanation.
    """

    status: int
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: PathStoreError) -> MutationError:
        """Build from a core exception, keeping its status and code."""
        return cls(status=exc.status_code, code=exc.code, message=exc.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"status": self.status, "code": self.code, "message": self.message}}
