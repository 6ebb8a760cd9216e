"""Reactive authentication session."""

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Optional

from .models import SessionState, UserIdentity
from .providers import AuthStateStream, DocumentStore, IdentityProvider

logger = logging.getLogger(__name__)

Listener = Callable[["AuthSession"], None]


class AuthSession:
    """
    Authentication state shared by every consumer of the application.

    Holds the current user, an admin flag, a loading flag and the error of
    the last failed operation. State follows the identity provider's
    auth-state stream and the explicit operations below. Every change is
    announced synchronously to the registered listeners.

    All mutations happen on the event loop that runs the session, so no
    locking is needed. Operations never raise: failures land in
    ``last_error`` and the operation returns False.

    Usage::

        async with AuthSession(identity, store) as session:
            session.add_listener(on_change)
            await session.sign_in("a@b.com", "secret")
    """

    def __init__(self, identity: IdentityProvider, store: DocumentStore) -> None:
        """
        Initialize the session.

        Args:
            identity: Identity provider issuing users
            store: Document store answering admin lookups and user data
        """
        self.identity = identity
        self.store = store

        self._user: Optional[UserIdentity] = identity.current_user
        self._is_loading = False
        self._error: Optional[str] = None
        self._remember_me = False
        self._is_admin = False

        # Bumped on every identity change; admin lookups started under an
        # older generation are dropped.
        self._generation = 0

        self._listeners: list[Listener] = []
        self._stream: Optional[AuthStateStream] = None
        self._watch_task: Optional[asyncio.Task[None]] = None
        self._lookups: set[asyncio.Task[bool]] = set()
        self._closed = False

    # State

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self._user

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def last_error(self) -> Optional[str]:
        return self._error

    @property
    def is_admin(self) -> bool:
        return self._is_admin

    @property
    def remember_me(self) -> bool:
        return self._remember_me

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def user_id(self) -> Optional[str]:
        return self._user.uid if self._user else None

    @property
    def user_email(self) -> Optional[str]:
        return self._user.email if self._user else None

    @property
    def display_name(self) -> Optional[str]:
        return self._user.display_name if self._user else None

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionState:
        return SessionState(
            user=self._user,
            is_authenticated=self.is_authenticated,
            is_admin=self._is_admin,
            is_loading=self._is_loading,
            last_error=self._error,
            remember_me=self._remember_me,
        )

    # Listeners

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def _notify(self) -> None:
        if self._closed:
            return
        # Listeners may add or remove listeners while being notified
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener failed")

    # Lifecycle

    async def start(self) -> None:
        """
        Subscribe to the identity provider.

        Returns once the admin flag of the initial user, if any, is known.
        """
        if self._closed:
            raise RuntimeError("AuthSession is closed")
        if self._stream is not None:
            return
        self._stream = self.identity.watch_auth_state()
        self._watch_task = asyncio.create_task(self._watch(self._stream))
        if self._user is not None:
            await self._resolve_admin(self._user)

    async def close(self) -> None:
        """Cancel the auth-state subscription. No notifications are sent afterwards."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        if self._stream is not None:
            self._stream.close()
        pending = list(self._lookups)
        if self._watch_task is not None:
            pending.append(self._watch_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("Auth session closed")

    async def __aenter__(self) -> "AuthSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _watch(self, stream: AuthStateStream) -> None:
        async for user in stream:
            logger.debug(f"Auth state changed: {user.uid if user else None}")
            self._apply_user(user)
            if user is not None:
                # Looked up in the background so a later sign-out is applied at once
                task = asyncio.create_task(self._resolve_admin(user))
                self._lookups.add(task)
                task.add_done_callback(self._lookups.discard)

    def _apply_user(self, user: Optional[UserIdentity]) -> None:
        """Replace the current user. A different identity resets the admin flag."""
        previous = self._user
        self._user = user
        if user is None or previous is None or previous.uid != user.uid:
            self._generation += 1
            self._is_admin = False
        self._notify()

    async def _resolve_admin(self, user: UserIdentity) -> bool:
        generation = self._generation
        try:
            is_admin = await self.store.is_user_admin(user.uid)
        except Exception as e:
            logger.warning(f"Admin lookup failed for {user.uid}: {e}")
            is_admin = False
        if generation != self._generation:
            logger.debug(f"Discarding stale admin lookup for {user.uid}")
            return self._is_admin
        self._is_admin = is_admin
        self._notify()
        return is_admin

    # Operations

    def _set_loading(self, value: bool) -> None:
        self._is_loading = value
        self._notify()

    def _set_error(self, message: Optional[str]) -> None:
        self._error = message
        self._notify()

    async def _run(self, name: str, operation: Callable[[], Awaitable[Any]]) -> bool:
        try:
            self._set_loading(True)
            self._set_error(None)
            await operation()
            return True
        except Exception as e:
            logger.info(f"{name} failed: {e}")
            self._set_error(str(e))
            return False
        finally:
            self._set_loading(False)

    async def sign_in(self, email: str, password: str) -> bool:
        """Sign in with email and password, then resolve the admin flag."""

        async def operation() -> None:
            user = await self.identity.sign_in_with_email_and_password(email, password)
            self._apply_user(user)
            await self._resolve_admin(user)

        return await self._run("Sign in", operation)

    async def sign_up(self, email: str, password: str) -> bool:
        """Create a customer account; the new user is signed in."""

        async def operation() -> None:
            user = await self.identity.sign_up_with_email_and_password(email, password)
            self._apply_user(user)

        return await self._run("Sign up", operation)

    async def sign_up_as_admin(self, email: str, password: str, display_name: str, admin_code: str) -> bool:
        """Create an admin account. The admin code is checked by the identity provider."""

        async def operation() -> None:
            user = await self.identity.sign_up_as_admin(email, password, display_name, admin_code)
            self._apply_user(user)
            self._is_admin = True
            self._notify()

        return await self._run("Admin sign up", operation)

    async def sign_out(self) -> bool:
        async def operation() -> None:
            await self.identity.sign_out()
            self._apply_user(None)

        return await self._run("Sign out", operation)

    async def send_password_reset_email(self, email: str) -> bool:
        return await self._run("Password reset", lambda: self.identity.send_password_reset_email(email))

    async def update_password(self, new_password: str) -> bool:
        return await self._run("Password update", lambda: self.identity.update_password(new_password))

    async def delete_account(self) -> bool:
        async def operation() -> None:
            await self.identity.delete_account()
            self._apply_user(None)

        return await self._run("Account deletion", operation)

    async def reauthenticate(self, email: str, password: str) -> bool:
        return await self._run("Reauthentication", lambda: self.identity.reauthenticate(email, password))

    async def check_is_admin(self) -> bool:
        """Look up the admin flag of the current user again."""
        if self._user is None:
            return False
        return await self._resolve_admin(self._user)

    def set_remember_me(self, value: bool) -> None:
        self._remember_me = value
        self._notify()

    def clear_error(self) -> None:
        self._set_error(None)

    async def reload_user(self) -> None:
        await self.identity.reload_user()
        self._apply_user(self.identity.current_user)

    async def get_user_data(self) -> Optional[dict[str, Any]]:
        if self._user is None:
            return None
        return await self.store.get_user_data(self._user.uid)

    async def update_user_data(self, data: dict[str, Any]) -> bool:
        if self._user is None:
            return False
        try:
            await self.store.update_user_data(self._user.uid, data)
            return True
        except Exception as e:
            logger.warning(f"Could not update user data: {e}")
            self._set_error(str(e))
            return False
