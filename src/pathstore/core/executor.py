"""Execution of validated mutation plans against the object store.

The store has no rename primitive, so:
- copy = get + put for every enumerated key
- move = copy (retaining lineage metadata) + delete of each copied source

Each key is an independent operation. A crash or failure mid-move can leave
both source and destination present; re-running the same plan is safe
because copies overwrite and deletes of absent keys succeed. Failures are
reported per key, never rolled back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from pathstore.core.enumerator import list_all_keys, list_keys_page
from pathstore.core.lineage import fresh_metadata, retained_metadata
from pathstore.core.move_tokens import MoveResume, MoveTokenSigner, default_move_token_signer
from pathstore.core.path_index import PathIndex
from pathstore.core.plans import DestinationPlan
from pathstore.paths import rebase
from pathstore.storage.errors import ObjectNotFoundError, ObjectStorageError
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyOutcome:
    """Result of one key operation.

    Attributes:
        source: Source key.
        destination: Destination key ("" for deletes).
        success: Whether the operation completed.
        status: HTTP-style status (200 copied, 204 deleted, 404 missing,
            500 backend failure).
        error: Failure description, None on success.
    """

    source: str
    destination: str
    success: bool
    status: int
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"key": self.source, "status": self.status}
        if self.destination:
            data["destination"] = self.destination
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ExecutionResult:
    """Aggregate outcome of executing a plan (or one batch of it).

    Attributes:
        total: Number of keys processed.
        succeeded: Number of keys that completed.
        failed: Outcomes of keys that did not complete.
        continuation_token: Resume point when only one batch was processed.
    """

    total: int = 0
    succeeded: int = 0
    failed: list[KeyOutcome] = field(default_factory=list)
    continuation_token: str | None = None

    @property
    def complete(self) -> bool:
        """True when every key succeeded and nothing is left to process."""
        return not self.failed and self.continuation_token is None

    @property
    def all_missing(self) -> bool:
        """True when keys were processed and every one was absent."""
        return (
            self.total > 0
            and self.succeeded == 0
            and all(outcome.status == 404 for outcome in self.failed)
        )

    def record(self, outcome: KeyOutcome) -> None:
        self.total += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed.append(outcome)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"total": self.total, "succeeded": self.succeeded}
        if self.failed:
            data["failed"] = [outcome.to_dict() for outcome in self.failed]
        if self.continuation_token:
            data["continuation_token"] = self.continuation_token
        return data


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class PlanExecutor:
    """Runs copy/move/delete plans key by key."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        page_size: int | None = None,
        index: PathIndex | None = None,
        clock: Callable[[], int] = _now_millis,
        move_tokens: MoveTokenSigner | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Object store to mutate.
            page_size: Keys per listing page (and per batch when batched).
            index: Path index kept in step with moves and deletes.
            clock: Epoch-millisecond clock for fresh metadata timestamps.
            move_tokens: Signs the continuation tokens of batched moves.
                Defaults to the process-wide signer.
        """
        self._store = store
        self._page_size = page_size
        self._index = index
        self._clock = clock
        self._move_tokens = move_tokens or default_move_token_signer()

    def _source_keys(
        self, org: str, source: str, continuation_token: str | None, batched: bool
    ) -> tuple[list[str], str | None]:
        if not batched:
            return list_all_keys(self._store, org, source, page_size=self._page_size), None
        page = list_keys_page(
            self._store,
            org,
            source,
            continuation_token=continuation_token,
            limit=self._page_size,
        )
        return page.keys, page.continuation_token

    def _copy_key(
        self,
        org: str,
        source: str,
        destination: str,
        *,
        retain_metadata: bool,
        users: Sequence[str] | None,
    ) -> KeyOutcome:
        try:
            obj = self._store.get(org, source)
            if retain_metadata:
                metadata = retained_metadata(obj.metadata.metadata, destination)
            else:
                metadata = fresh_metadata(destination, users, self._clock())
            self._store.put(
                org,
                destination,
                obj.body,
                content_type=obj.metadata.content_type,
                metadata=metadata,
            )
        except ObjectNotFoundError:
            return KeyOutcome(source, destination, success=False, status=404, error="not found")
        except ObjectStorageError as e:
            logger.warning("Failed to copy org=%s %s -> %s: %s", org, source, destination, e)
            return KeyOutcome(source, destination, success=False, status=500, error=str(e))

        if self._index is not None:
            self._index.remember(org, destination)
        return KeyOutcome(source, destination, success=True, status=200)

    def _delete_key(self, org: str, key: str) -> KeyOutcome:
        try:
            self._store.delete(org, key)
        except ObjectStorageError as e:
            logger.warning("Failed to delete org=%s key=%s: %s", org, key, e)
            return KeyOutcome(key, "", success=False, status=500, error=str(e))
        if self._index is not None:
            self._index.forget(org, key)
        return KeyOutcome(key, "", success=True, status=204)

    def copy(
        self,
        org: str,
        plan: DestinationPlan,
        *,
        retain_metadata: bool = False,
        users: Sequence[str] | None = None,
        batched: bool = False,
    ) -> ExecutionResult:
        """Copy the plan's source (file or folder tree) to its destination.

        Failed copies (other than missing sources) are retried once.
        """
        keys, next_token = self._source_keys(org, plan.source, plan.continuation_token, batched)
        result = ExecutionResult(continuation_token=next_token)

        outcomes = [
            self._copy_key(
                org,
                key,
                rebase(key, plan.source, plan.destination),
                retain_metadata=retain_metadata,
                users=users,
            )
            for key in keys
        ]
        for index, outcome in enumerate(outcomes):
            if not outcome.success and outcome.status != 404:
                outcomes[index] = self._copy_key(
                    org,
                    outcome.source,
                    outcome.destination,
                    retain_metadata=retain_metadata,
                    users=users,
                )

        for outcome in outcomes:
            result.record(outcome)

        logger.info(
            "Copied org=%s %s -> %s total=%d failed=%d",
            org,
            plan.source,
            plan.destination,
            result.total,
            len(result.failed),
        )
        return result

    def move(
        self,
        org: str,
        plan: DestinationPlan,
        *,
        users: Sequence[str] | None = None,
        batched: bool = False,
    ) -> ExecutionResult:
        """Move the plan's source to its destination.

        Lineage metadata moves with each object. A source key is deleted
        only after its copy succeeded; a failed delete is reported so the
        caller can retry it.

        A batched move hands back a signed token binding its source and
        destination; plan.continuation_token is the raw store cursor taken
        from such a token.
        """
        keys, next_token = self._source_keys(org, plan.source, plan.continuation_token, batched)
        if next_token is not None:
            next_token = self._move_tokens.sign(
                MoveResume(plan.source, plan.destination, next_token)
            )
        result = ExecutionResult(continuation_token=next_token)

        for key in keys:
            destination = rebase(key, plan.source, plan.destination)
            copied = self._copy_key(org, key, destination, retain_metadata=True, users=users)
            if not copied.success:
                result.record(copied)
                continue
            deleted = self._delete_key(org, key)
            if deleted.success:
                result.record(copied)
            else:
                result.record(
                    KeyOutcome(
                        key,
                        destination,
                        success=False,
                        status=deleted.status,
                        error=f"copied but source not deleted: {deleted.error}",
                    )
                )

        logger.info(
            "Moved org=%s %s -> %s total=%d failed=%d",
            org,
            plan.source,
            plan.destination,
            result.total,
            len(result.failed),
        )
        return result

    def delete(
        self,
        org: str,
        key: str,
        *,
        continuation_token: str | None = None,
        batched: bool = False,
    ) -> ExecutionResult:
        """Delete a file, or a folder with everything beneath it."""
        keys, next_token = self._source_keys(org, key, continuation_token, batched)
        result = ExecutionResult(continuation_token=next_token)
        for source in keys:
            result.record(self._delete_key(org, source))

        logger.info(
            "Deleted org=%s key=%s total=%d failed=%d", org, key, result.total, len(result.failed)
        )
        return result
