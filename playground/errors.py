"""Playground error taxonomy.

Every error carries a stable ``code``, an HTTP-ish ``status_code`` and a
``kind``:

- ``refused``: the request was understood and declined (capacity, limits,
  missing or duplicate resources). Retrying unchanged will not help.
- ``failed``: something went wrong while talking to a collaborator.
  Retrying may succeed.
"""

from __future__ import annotations

from typing import Any, Literal

ErrorKind = Literal["refused", "failed"]


class PlaygroundError(Exception):
    """Base class for all control plane errors."""

    code: str = "internal_error"
    kind: ErrorKind = "failed"
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> dict[str, Any]:
        """Structured payload for API layers."""
        return {
            "error": {
                "code": self.code,
                "kind": self.kind,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(PlaygroundError):
    code = "not_found"
    kind = "refused"
    status_code = 404
    default_message = "Resource not found"


class UnknownPoolError(NotFoundError):
    code = "unknown_pool"

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"Unknown pool: {pool_id}", details={"pool_id": pool_id})
        self.pool_id = pool_id


class AlreadyExistsError(PlaygroundError):
    code = "already_exists"
    kind = "refused"
    status_code = 409
    default_message = "Resource already exists"


class CapacityExceededError(PlaygroundError):
    code = "capacity_exceeded"
    kind = "refused"
    status_code = 429
    default_message = "Pool capacity exceeded"


class ConcurrentSessionsLimitBreachedError(CapacityExceededError):
    code = "concurrent_sessions_limit"

    def __init__(self, count: int, max_sessions: int, *, pool_id: str) -> None:
        super().__init__(
            f"Concurrent sessions limit reached on pool {pool_id}: {count}/{max_sessions}",
            details={"sessions": count, "max_sessions": max_sessions, "pool_id": pool_id},
        )
        self.count = count
        self.max_sessions = max_sessions


class NotReadyError(PlaygroundError):
    code = "not_ready"
    kind = "refused"
    status_code = 409
    default_message = "Dependent resource is not ready"


class RepositoryVersionNotReadyError(NotReadyError):
    code = "repository_version_not_ready"

    def __init__(self, repository_id: str, version_id: str, state: str) -> None:
        super().__init__(
            f"Repository version {repository_id}:{version_id} is not ready ({state})",
            details={
                "repository_id": repository_id,
                "repository_version_id": version_id,
                "state": state,
            },
        )


class LimitExceededError(PlaygroundError):
    code = "limit_exceeded"
    kind = "refused"
    status_code = 422
    default_message = "Limit exceeded"


class DurationLimitBreachedError(LimitExceededError):
    code = "duration_limit"

    def __init__(self, duration_seconds: int, max_duration_seconds: int) -> None:
        super().__init__(
            f"Requested duration {duration_seconds}s must be lower than {max_duration_seconds}s",
            details={
                "duration": duration_seconds,
                "max_duration": max_duration_seconds,
            },
        )


class InvalidConfigurationError(PlaygroundError):
    code = "invalid_configuration"
    kind = "refused"
    status_code = 400
    default_message = "Invalid configuration"


class ConflictError(PlaygroundError):
    """Optimistic-concurrency write lost against a concurrent writer."""

    code = "conflict"
    kind = "failed"
    status_code = 409
    default_message = "Resource was modified concurrently"


class CommunicationError(PlaygroundError):
    code = "communication_failure"
    kind = "failed"
    status_code = 502
    default_message = "Cluster communication failure"
