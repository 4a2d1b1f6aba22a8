"""
Static identity adapter for AuthProviderPort.

Holds one user id set by the caller (HTTP header, CLI flag). Listeners are
notified synchronously when it changes.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from ports.auth_provider import AuthListener, AuthProviderPort  # noqa: F401 (runtime_checkable)


class StaticAuthProviderAdapter:

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id
        self._listeners: List[AuthListener] = []

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def set_user(self, user_id: Optional[str]) -> None:
        """Sign a user in (or out with None) and notify listeners."""
        if user_id == self._user_id:
            return
        self._user_id = user_id
        for listener in list(self._listeners):
            listener(user_id)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
