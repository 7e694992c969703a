"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - use a subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input or payload validation failed.

    Raised for malformed outbox payloads, unknown operations, invalid sort key
    bounds and unknown import platforms. In the sync worker this is fatal to
    ONE entry only - the drain keeps going.

    Example:
        raise ValidationError("add_tracks payload needs a non-empty track_ids list")
    """

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: marking a queue entry completed that was never picked up.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("No external playlist source registered")
    """

    pass


class ExternalServiceError(DomainException):
    """External service (remote platform, NetEase, QQ Music) returned an error."""

    def __init__(
        self,
        message: str,
        service: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.http_status = http_status


class TransientRemoteError(ExternalServiceError):
    """Network error, timeout, 429 or 5xx from the remote platform.

    Hey future me - the sync worker does NOT retry these! The entry is marked
    failed and shows up in the "retry failed" list. Retrying automatically against
    a rate-limited API just digs the hole deeper.
    """

    pass


class AuthenticationError(DomainException):
    """User is not authenticated or the credential is invalid."""

    pass


class AuthExpiredError(AuthenticationError):
    """The remote credential expired or was revoked.

    Every later entry in the same drain scope would fail the same way, so the worker
    short-circuits them to failed without touching the network. The caller should
    prompt for re-authentication.
    """

    def __init__(
        self,
        message: str = "Remote credential expired. Please re-authenticate.",
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status


class NoMatchError(DomainException):
    """The matcher found no usable candidate for a source track.

    Recorded as an ``unmatched`` result - never propagated out of an import.
    """

    def __init__(self, title: str, reason: str = "no candidates") -> None:
        super().__init__(f"No match for '{title}': {reason}")
        self.title = title
        self.reason = reason


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "ValidationError",
    "InvalidStateException",
    "ConfigurationError",
    "ExternalServiceError",
    "TransientRemoteError",
    "AuthenticationError",
    "AuthExpiredError",
    "NoMatchError",
]
