"""Interfaces of the identity provider and document store collaborators."""

from typing import Any, AsyncIterator, Optional, Protocol

from .models import UserIdentity


class AuthStateStream(Protocol):
    """
    Subscription to sign-in/sign-out transitions.

    The subscription is live from the moment it is created. Iterating yields
    the new user, or None after a sign-out, for every transition.
    """

    def __aiter__(self) -> AsyncIterator[Optional[UserIdentity]]: ...

    async def __anext__(self) -> Optional[UserIdentity]: ...

    def close(self) -> None:
        """Stop delivering events and end iteration."""
        ...


class IdentityProvider(Protocol):
    """Issues and validates user credentials. Failures raise AuthError."""

    @property
    def current_user(self) -> Optional[UserIdentity]: ...

    def watch_auth_state(self) -> AuthStateStream: ...

    async def sign_in_with_email_and_password(self, email: str, password: str) -> UserIdentity: ...

    async def sign_up_with_email_and_password(self, email: str, password: str) -> UserIdentity: ...

    async def sign_up_as_admin(
        self, email: str, password: str, display_name: str, admin_code: str
    ) -> UserIdentity: ...

    async def sign_out(self) -> None: ...

    async def send_password_reset_email(self, email: str) -> None: ...

    async def update_password(self, new_password: str) -> None: ...

    async def delete_account(self) -> None: ...

    async def reauthenticate(self, email: str, password: str) -> None: ...

    async def reload_user(self) -> None: ...


class DocumentStore(Protocol):
    """User profiles and order history keyed by user ID."""

    async def is_user_admin(self, user_id: str) -> bool: ...

    async def get_user_data(self, user_id: str) -> Optional[dict[str, Any]]: ...

    async def set_user_data(self, user_id: str, data: dict[str, Any], merge: bool = False) -> None: ...

    async def update_user_data(self, user_id: str, data: dict[str, Any]) -> None: ...

    async def delete_user_data(self, user_id: str) -> None: ...

    async def get_orders_for_user(self, user_id: str) -> list[tuple[str, dict[str, Any]]]: ...

    async def get_all_orders(self) -> list[tuple[str, dict[str, Any]]]: ...

    async def get_order(self, order_id: str) -> Optional[dict[str, Any]]: ...

    async def add_order(self, record: dict[str, Any]) -> str: ...

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> None: ...

    async def delete_order(self, order_id: str) -> None: ...
