"""Tests for move/copy/rename validation."""

from __future__ import annotations

import re
from collections.abc import Callable

import pytest

from pathstore.core.collision import MonotonicMillis
from pathstore.core.forms import FormPayload, MappingFormPayload
from pathstore.core.move_tokens import MoveResume, MoveTokenSigner
from pathstore.core.path_index import existence_check
from pathstore.core.plans import DestinationPlan, MutationError, MutationKind
from pathstore.core.validator import validate_mutation
from pathstore.storage.errors import StorageBackendError
from pathstore.storage.memory_store import InMemoryObjectStore


def form(**fields: str) -> Callable[[], FormPayload | None]:
    """Build a form reader returning the given fields."""
    return lambda: MappingFormPayload(fields)


def no_form() -> FormPayload | None:
    return None


def broken_form() -> FormPayload | None:
    raise ValueError("malformed multipart body")


class TestNoPayload:
    """Requests without a payload are no-ops."""

    @pytest.mark.parametrize("kind", list(MutationKind))
    def test_no_payload_returns_none(self, kind: MutationKind) -> None:
        assert validate_mutation(no_form, "bar", kind) is None


class TestInvalidPayload:
    """Unusable payloads produce 400 errors, never exceptions."""

    def test_unparseable_payload(self) -> None:
        result = validate_mutation(broken_form, "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400
        assert result.code == "INVALID_REQUEST"

    def test_missing_destination(self) -> None:
        result = validate_mutation(form(other="x"), "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_blank_destination(self) -> None:
        result = validate_mutation(form(destination="  "), "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_destination_without_path_below_org(self) -> None:
        result = validate_mutation(form(destination="/foo/"), "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_destination_with_relative_segments(self) -> None:
        result = validate_mutation(form(destination="/foo/a/../b"), "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_non_string_fields_read_as_absent(self) -> None:
        result = validate_mutation(lambda: MappingFormPayload({"destination": 42}), "bar")

        assert isinstance(result, MutationError)
        assert result.status == 400


class TestIllegalMoves:
    """A folder can never be placed inside itself."""

    def test_destination_inside_org_qualified_source(self) -> None:
        result = validate_mutation(form(destination="/foo/baz/bar"), "foo/baz")

        assert isinstance(result, MutationError)
        assert result.status == 400
        assert result.code == "ILLEGAL_MOVE"

    def test_destination_inside_source(self) -> None:
        result = validate_mutation(form(destination="/foo/baz/bar"), "baz")

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_destination_inside_source_with_org(self) -> None:
        result = validate_mutation(form(destination="/foo/baz/deep/bar"), "baz", org="foo")

        assert isinstance(result, MutationError)
        assert result.code == "ILLEGAL_MOVE"

    @pytest.mark.parametrize("kind", [MutationKind.COPY, MutationKind.RENAME])
    def test_copy_or_rename_onto_itself(self, kind: MutationKind) -> None:
        result = validate_mutation(form(destination="/foo/bar"), "bar", kind, org="foo")

        assert isinstance(result, MutationError)
        assert result.code == "ILLEGAL_MOVE"

    def test_similar_prefix_is_not_a_descendant(self) -> None:
        result = validate_mutation(
            form(destination="/foo/drafts-old"), "drafts", MutationKind.COPY, org="foo"
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "drafts-old"

    def test_cross_org_destination_rejected(self) -> None:
        result = validate_mutation(form(destination="/other/bar"), "baz", org="foo")

        assert isinstance(result, MutationError)
        assert result.status == 400


class TestMove:
    """Moves never overwrite: taken destinations are suffixed."""

    def test_move_onto_existing_gets_suffix(self) -> None:
        result = validate_mutation(form(destination="/foo/bar/"), "bar")

        assert isinstance(result, DestinationPlan)
        assert result.source == "bar"
        assert re.fullmatch(r"bar-\d+", result.destination)

    def test_move_to_free_destination(self) -> None:
        result = validate_mutation(
            form(destination="/foo/archive/page.html"),
            "page.html",
            org="foo",
            exists=lambda key: False,
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "archive/page.html"
        assert result.kind is MutationKind.MOVE

    def test_move_onto_existing_file_suffixes_before_extension(
        self, store: InMemoryObjectStore, seed: Callable[..., None]
    ) -> None:
        seed("page.html", "archive/page.html")
        source = MonotonicMillis(clock=lambda: 7)

        result = validate_mutation(
            form(destination="/acme/archive/page.html"),
            "page.html",
            org="acme",
            exists=existence_check(store, "acme"),
            suffix_source=source,
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "archive/page-7.html"

    def test_exhausted_collisions_return_500(self) -> None:
        result = validate_mutation(
            form(destination="/foo/bar"), "baz", exists=lambda key: True, max_attempts=2
        )

        assert isinstance(result, MutationError)
        assert result.status == 500
        assert result.code == "COLLISION_EXHAUSTED"

    def test_storage_failure_during_check_returns_500(self) -> None:
        def failing_exists(key: str) -> bool:
            raise StorageBackendError(message="boom", org="foo", key=key)

        result = validate_mutation(form(destination="/foo/bar"), "baz", exists=failing_exists)

        assert isinstance(result, MutationError)
        assert result.status == 500


class TestResumedMove:
    """Batched moves resume only into the destination their first batch chose."""

    @pytest.fixture
    def signer(self) -> MoveTokenSigner:
        return MoveTokenSigner("test-secret")

    def test_resumes_into_bound_destination(self, signer: MoveTokenSigner) -> None:
        token = signer.sign(MoveResume("bar", "bar-17", "cursor-1"))

        result = validate_mutation(
            form(destination="/foo/bar-17", **{"continuation-token": token}),
            "bar",
            exists=lambda key: True,
            move_tokens=signer,
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "bar-17"
        assert result.continuation_token == "cursor-1"

    def test_original_destination_accepted(self, signer: MoveTokenSigner) -> None:
        token = signer.sign(MoveResume("docs", "archive-1718000000123", "cursor-1"))

        result = validate_mutation(
            form(destination="/foo/archive", continuation_token=token),
            "docs",
            exists=lambda key: True,
            move_tokens=signer,
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "archive-1718000000123"

    @pytest.mark.parametrize(
        "token",
        ["bogus", "c3JjLw==", "c3JjLw==.deadbeef", "ünïcode.ß"],
    )
    def test_unsigned_token_cannot_skip_collision_check(
        self, signer: MoveTokenSigner, token: str
    ) -> None:
        result = validate_mutation(
            form(destination="/foo/taken", continuation_token=token),
            "src",
            exists=lambda key: True,
            move_tokens=signer,
        )

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_token_from_another_secret_rejected(self, signer: MoveTokenSigner) -> None:
        token = MoveTokenSigner("other-secret").sign(MoveResume("src", "dst", "cursor"))

        result = validate_mutation(
            form(destination="/foo/dst", continuation_token=token), "src", move_tokens=signer
        )

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_token_for_another_destination_rejected(self, signer: MoveTokenSigner) -> None:
        token = signer.sign(MoveResume("src", "elsewhere", "cursor"))

        result = validate_mutation(
            form(destination="/foo/dst", continuation_token=token), "src", move_tokens=signer
        )

        assert isinstance(result, MutationError)
        assert result.status == 400

    def test_token_for_another_source_rejected(self, signer: MoveTokenSigner) -> None:
        token = signer.sign(MoveResume("other", "dst", "cursor"))

        result = validate_mutation(
            form(destination="/foo/dst", continuation_token=token), "src", move_tokens=signer
        )

        assert isinstance(result, MutationError)
        assert result.status == 400

    @pytest.mark.parametrize("kind", list(MutationKind))
    def test_token_on_file_source_rejected(
        self, signer: MoveTokenSigner, kind: MutationKind
    ) -> None:
        token = signer.sign(MoveResume("a.html", "b.html", "cursor"))

        result = validate_mutation(
            form(destination="/foo/b.html", continuation_token=token),
            "a.html",
            kind,
            move_tokens=signer,
        )

        assert isinstance(result, MutationError)
        assert result.status == 400


class TestCopyAndRename:
    """Copies and renames use the destination as named."""

    def test_copy_without_suffix(self) -> None:
        result = validate_mutation(form(destination="/foo/bar/"), "baz", MutationKind.COPY)

        assert isinstance(result, DestinationPlan)
        assert result.to_dict() == {"source": "baz", "destination": "bar"}

    def test_destination_is_lower_cased(self) -> None:
        result = validate_mutation(form(destination="/FOO/BAR"), "baz", MutationKind.COPY)

        assert isinstance(result, DestinationPlan)
        assert result.destination == "bar"

    def test_rename_ignores_existing_destination(self) -> None:
        result = validate_mutation(
            form(destination="/foo/taken"),
            "baz",
            MutationKind.RENAME,
            exists=lambda key: True,
        )

        assert isinstance(result, DestinationPlan)
        assert result.destination == "taken"

    def test_continuation_token_carried(self) -> None:
        result = validate_mutation(
            form(destination="/foo/bar", continuation_token="token-1"), "baz", MutationKind.COPY
        )

        assert isinstance(result, DestinationPlan)
        assert result.continuation_token == "token-1"
        assert result.to_dict()["continuation_token"] == "token-1"


class TestMutationError:
    """Tests for the structured error value."""

    def test_to_dict(self) -> None:
        error = MutationError(status=400, code="ILLEGAL_MOVE", message="nope")

        assert error.to_dict() == {
            "error": {"status": 400, "code": "ILLEGAL_MOVE", "message": "nope"}
        }
