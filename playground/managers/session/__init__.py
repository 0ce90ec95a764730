"""Session provisioning and state derivation."""

from playground.managers.session.preferences import SessionPreferences, resolve_session_preferences
from playground.managers.session.session import SessionManager
from playground.managers.session.state import pod_status_to_state, pod_to_session

__all__ = [
    "SessionManager",
    "SessionPreferences",
    "pod_status_to_state",
    "pod_to_session",
    "resolve_session_preferences",
]
