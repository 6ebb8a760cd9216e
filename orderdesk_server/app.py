"""Composition root wiring the store, identity provider, session and order service."""

import logging
from typing import Optional

from argon2 import PasswordHasher

from .config import Settings
from .identity import LocalIdentityProvider
from .order_service import OrderService
from .session import AuthSession
from .store import JsonDocumentStore

logger = logging.getLogger(__name__)


class OrderDesk:
    """
    Owns the shared store and order service plus the operator session.

    ``session`` belongs to whoever runs the process (the MCP stdio client).
    Servers with several clients give each of them its own session from
    ``open_session``; those sessions share the store but not the signed in
    user.
    """

    def __init__(self, settings: Settings, password_hasher: Optional[PasswordHasher] = None) -> None:
        self.settings = settings
        self.password_hasher = password_hasher or PasswordHasher()
        self.store = JsonDocumentStore(settings.data_file)
        self.identity = self._new_identity()
        self.session = AuthSession(self.identity, self.store)
        self.orders = OrderService(self.store)

    def _new_identity(self) -> LocalIdentityProvider:
        return LocalIdentityProvider(self.store, self.settings.admin_code, self.password_hasher)

    async def start(self) -> None:
        await self.session.start()
        if self.settings.credentials:
            logger.info(f"Credentials loaded from environment for: {self.settings.email}")
        else:
            logger.warning("No credentials found in environment variables (ORDERDESK_EMAIL, ORDERDESK_PASSWORD)")

    async def close(self) -> None:
        await self.session.close()

    async def open_session(self) -> AuthSession:
        """Start a signed out session with its own identity provider. The caller closes it."""
        session = AuthSession(self._new_identity(), self.store)
        await session.start()
        return session

    async def ensure_authenticated(self) -> bool:
        """Ensure a user is signed in, signing in with configured credentials if needed."""
        if self.session.is_authenticated:
            return True

        credentials = self.settings.credentials
        if credentials:
            logger.info("Auto-logging in...")
            if await self.session.sign_in(credentials.email, credentials.password):
                logger.info("Auto-login successful")
                return True
            logger.warning(f"Auto-login failed: {self.session.last_error}")

        return False
