"""
Port interface for the identity provider.

The orchestrator only reads the current user id; the subscription lets
long-lived callers react to sign-in/sign-out.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, runtime_checkable

AuthListener = Callable[[Optional[str]], None]


@runtime_checkable
class AuthProviderPort(Protocol):

    def current_user_id(self) -> Optional[str]:
        """Return the signed-in user's id, or None."""
        ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register *listener* for user changes; returns an unsubscribe callable."""
        ...
