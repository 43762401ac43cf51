"""
auth/errors.py -- Error taxonomy for the authorization core.

Every error carries a public `message` that is safe to return to an external
caller. Anything more specific (record ids, decoder reasons, driver errors)
stays on the exception object or in the server log and never reaches the
response body.

The core never recovers from these locally. api/main.py maps each category
to an HTTP status; auth/dependencies.py maps them for the request gate.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every categorized failure raised by auth/."""

    default_message = "Authorization error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """Login failed. Raised identically for an unknown username and a wrong password."""

    default_message = "Invalid username or password."


class InvalidToken(AuthError):
    """Token rejected: bad signature, wrong algorithm, malformed, expired or not yet valid."""

    default_message = "Invalid or expired token."


class TokenSigningError(AuthError):
    """The token could not be signed (e.g. an empty signing key)."""

    default_message = "Token could not be issued."


class DuplicateError(AuthError):
    """A unique field (username, email, role name, resource/action pair) is already taken."""

    default_message = "Record already exists."


class RecordLookupError(AuthError, LookupError):
    """A record could not be loaded. Subclassed by NotFound and StorageFault."""

    default_message = "Record could not be loaded."


class NotFound(RecordLookupError):
    """A referenced user, role or permission id does not exist."""

    def __init__(self, kind: str, record_id: object = None) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found.")


class StorageFault(RecordLookupError):
    """The credential store is unreachable or errored. Retryable by the caller."""

    default_message = "Credential store unavailable."
