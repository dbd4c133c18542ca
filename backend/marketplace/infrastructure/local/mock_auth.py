"""
Mock authentication provider for local development.
"""

from typing import Optional

from marketplace.interfaces.auth_provider import IAuthProvider, User


class MockAuthProvider(IAuthProvider):
    """Mock auth provider: the bearer token is the user id."""

    def __init__(self, enabled: bool = True):
        """
        Args:
            enabled: Whether a bearer token is required
        """
        self._enabled = enabled
        self._known_users = {
            "dev_user": User(id="dev_user", email="dev@example.com", display_name="Developer"),
            "admin_user": User(id="admin_user", email="admin@example.com", display_name="Admin"),
        }

    async def verify_token(self, token: str) -> User:
        if not token:
            raise ValueError("Empty token")
        if token in self._known_users:
            return self._known_users[token]
        if "@" in token:
            return User(id=token, email=token, display_name=token)
        return User(id=token, email=f"{token}@example.com", display_name=token)

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._known_users.get(user_id)

    def is_enabled(self) -> bool:
        return self._enabled
