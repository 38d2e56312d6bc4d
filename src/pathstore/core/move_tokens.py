"""Signed continuation tokens for batched moves.

A batched move resolves its destination once, on its first batch. The token
handed back after every batch binds the source, that destination and the
store's listing cursor under an HMAC-SHA256 signature. A resumed move can
therefore only continue into the destination its first batch chose.

Token format: "<base64url(json payload)>.<hex signature>"

SECURITY: Never log the secret.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass

from pathstore.core.errors import InvalidRequestError


@dataclass(frozen=True)
class MoveResume:
    """State carried from one move batch to the next.

    Attributes:
        source: Org-relative source key of the move.
        destination: Destination resolved by the first batch.
        store_token: The object store's listing cursor.
    """

    source: str
    destination: str
    store_token: str


def compute_token_signature(secret: bytes, payload: bytes) -> str:
    """Hex digest of HMAC-SHA256(secret, payload)."""
    return hmac.new(key=secret, msg=payload, digestmod=hashlib.sha256).hexdigest()


class MoveTokenSigner:
    """Issues and verifies move continuation tokens."""

    def __init__(self, secret: str | None = None) -> None:
        """Initialize the signer.

        Args:
            secret: Shared secret. Instances serving the same clients must
                share it; when omitted a random per-process secret is used.
        """
        self._secret = secret.encode("utf-8") if secret else secrets.token_bytes(32)

    def sign(self, resume: MoveResume) -> str:
        payload = json.dumps(
            {"s": resume.source, "d": resume.destination, "t": resume.store_token},
            separators=(",", ":"),
            sort_keys=True,
        ).encode("utf-8")
        encoded = base64.urlsafe_b64encode(payload).decode("ascii")
        return f"{encoded}.{compute_token_signature(self._secret, payload)}"

    def verify(self, token: str, source: str) -> MoveResume:
        """Decode a token issued for a move of source.

        Raises:
            InvalidRequestError: If the token is malformed, was not signed
                with this secret, or belongs to a different source.
        """
        encoded, _, signature = token.partition(".")
        try:
            payload = base64.urlsafe_b64decode(encoded.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as e:
            raise InvalidRequestError("Invalid continuation token") from e

        expected = compute_token_signature(self._secret, payload)
        if not signature.isascii() or not hmac.compare_digest(expected, signature):
            raise InvalidRequestError("Invalid continuation token")

        data = json.loads(payload)
        resume = MoveResume(source=data["s"], destination=data["d"], store_token=data["t"])
        if resume.source != source:
            raise InvalidRequestError("Continuation token was issued for a different source")
        return resume


_default_signer = MoveTokenSigner()


def default_move_token_signer() -> MoveTokenSigner:
    """Return the process-wide signer shared by validators and executors."""
    return _default_signer
