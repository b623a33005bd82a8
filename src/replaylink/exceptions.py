# src/replaylink/exceptions.py

"""Custom exception hierarchy for ReplayLink.

The hierarchy lets the API map errors to HTTP status codes in one place and
carries structured details for logging. Parsing never raises; these errors
come from missing resources, bad inputs and the external replay source.
"""

from __future__ import annotations


class ReplayLinkError(Exception):
    """Base exception for all ReplayLink errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Resource Not Found Errors (HTTP 404)
# =============================================================================


class ResourceNotFoundError(ReplayLinkError):
    """Base class for resource not found errors."""

    pass


class BattleNotFoundError(ResourceNotFoundError):
    """Raised when a battle ID does not exist."""

    def __init__(self, battle_id: int) -> None:
        super().__init__(
            message=f"Battle with ID {battle_id} not found",
            details={"battle_id": battle_id},
        )


class TeamVersionNotFoundError(ResourceNotFoundError):
    """Raised when a team version ID does not exist."""

    def __init__(self, team_version_id: int) -> None:
        super().__init__(
            message=f"Team version with ID {team_version_id} not found",
            details={"team_version_id": team_version_id},
        )


class BattleSetNotFoundError(ResourceNotFoundError):
    """Raised when a battle set ID does not exist."""

    def __init__(self, set_id: int) -> None:
        super().__init__(
            message=f"Battle set with ID {set_id} not found",
            details={"set_id": set_id},
        )


# =============================================================================
# Validation Errors (HTTP 422)
# =============================================================================


class ValidationError(ReplayLinkError):
    """Base class for validation errors."""

    pass


class MissingReplayFieldError(ValidationError):
    """Raised when a replay payload lacks a field ingestion cannot do without."""

    def __init__(self, field: str, replay_id: str | None = None) -> None:
        super().__init__(
            message=f"Replay payload is missing required field '{field}'",
            details={"field": field, "replay_id": replay_id},
        )


class InvalidReplayReferenceError(ValidationError):
    """Raised when an input is neither a replay URL nor a replay id."""

    def __init__(self, reference: str) -> None:
        super().__init__(
            message=f"Unrecognized replay URL / id: {reference!r}",
            details={"reference": reference},
        )


class NoUserSideError(ValidationError):
    """Raised when a user link is requested for a battle with no user side."""

    def __init__(self, battle_id: int) -> None:
        super().__init__(
            message=f"Battle {battle_id} has no side belonging to the operator",
            details={"battle_id": battle_id},
        )


# =============================================================================
# Replay Source Errors (HTTP 502)
# =============================================================================


class ReplayFetchError(ReplayLinkError):
    """Base class for failures talking to the replay source."""

    def __init__(self, message: str, url: str, **details: object) -> None:
        super().__init__(message=message, details={"url": url, **details})
        self.url = url


class ReplayTimeoutError(ReplayFetchError):
    """Raised when a fetch exceeds its timeout."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(
            f"Fetch timed out after {timeout:g}s for {url}", url, timeout=timeout
        )


class ReplayHTTPError(ReplayFetchError):
    """Raised on a non-success HTTP status or a transport failure."""

    def __init__(self, url: str, status_code: int | None, reason: str = "") -> None:
        label = status_code if status_code is not None else reason or "error"
        super().__init__(
            f"Fetch failed ({label}) for {url}", url, status_code=status_code
        )
        self.status_code = status_code


class ReplayPayloadError(ReplayFetchError):
    """Raised when the source answers with something that is not a replay."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Unexpected replay payload from {url}: {reason}", url)
