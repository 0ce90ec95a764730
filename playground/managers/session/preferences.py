"""Session preferences resolved per user.

A preference is looked up in the user's own preferences, then in the
preferences of the user's profile, then in the shared ``preferences``
collection. Settings provide the value when no level defines it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from playground.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from playground.config import SessionDefaults
    from playground.managers.resource import ResourceStore
    from playground.models.resources import User

SESSION_DEFAULT_DURATION = "SessionDefaultDuration"
SESSION_MAX_DURATION = "SessionMaxDuration"
SESSION_POOL_AFFINITY = "SessionPoolAffinity"


@dataclass(frozen=True)
class SessionPreferences:
    duration: timedelta
    max_duration: timedelta
    pool_affinity: str


def _minutes(key: str, value: str) -> timedelta:
    try:
        minutes = int(value)
    except ValueError:
        minutes = 0
    if minutes < 1:
        raise InvalidConfigurationError(
            f"Preference {key} must be a positive number of minutes",
            details={"preference": key, "value": value},
        )
    return timedelta(minutes=minutes)


async def resolve_session_preferences(
    store: "ResourceStore",
    user: "User",
    defaults: "SessionDefaults",
) -> SessionPreferences:
    """Resolve the session preferences of ``user``.

    Raises:
        InvalidConfigurationError: If a duration preference is not a
            positive number of minutes
    """
    levels: list[dict[str, str]] = [user.preferences]
    if user.profile is not None:
        profile = await store.profiles.get(user.profile)
        if profile is not None:
            levels.append(profile.preferences)
    levels.append({preference.id: preference.value for preference in await store.preferences.list()})

    def lookup(key: str) -> str | None:
        for level in levels:
            if key in level:
                return level[key]
        return None

    duration = lookup(SESSION_DEFAULT_DURATION)
    max_duration = lookup(SESSION_MAX_DURATION)
    pool_affinity = lookup(SESSION_POOL_AFFINITY)
    return SessionPreferences(
        duration=(
            _minutes(SESSION_DEFAULT_DURATION, duration)
            if duration is not None
            else defaults.default_duration
        ),
        max_duration=(
            _minutes(SESSION_MAX_DURATION, max_duration)
            if max_duration is not None
            else defaults.max_duration_delta
        ),
        pool_affinity=pool_affinity or defaults.pool_affinity,
    )
