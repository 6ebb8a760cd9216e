"""Email/password identity provider backed by the document store."""

import asyncio
import hmac
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .errors import AuthError
from .models import UserIdentity
from .store import ACCOUNTS, JsonDocumentStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
# Seconds after sign-in during which sensitive operations are allowed
RECENT_LOGIN_WINDOW = 300.0

_CLOSED = object()


class LocalAuthStateStream:
    """Auth-state subscription fed by LocalIdentityProvider."""

    def __init__(self, provider: "LocalIdentityProvider") -> None:
        self._provider = provider
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def _push(self, user: Optional[UserIdentity]) -> None:
        if not self._closed:
            self._queue.put_nowait(user)

    def __aiter__(self) -> "LocalAuthStateStream":
        return self

    async def __anext__(self) -> Optional[UserIdentity]:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._provider._streams.discard(self)
        self._queue.put_nowait(_CLOSED)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class LocalIdentityProvider:
    """
    Identity provider keeping accounts in the ``accounts`` collection.

    Passwords are stored as argon2 hashes. Sign-up also creates the user
    profile in the ``users`` collection, which is where admin status lives.
    """

    def __init__(
        self,
        store: JsonDocumentStore,
        admin_code: str,
        password_hasher: Optional[PasswordHasher] = None,
    ) -> None:
        """
        Initialize the identity provider.

        Args:
            store: Document store holding accounts and user profiles
            admin_code: Registration code required for admin sign-up
            password_hasher: argon2 hasher (default parameters if omitted)
        """
        self.store = store
        self.admin_code = admin_code
        self.hasher = password_hasher or PasswordHasher()
        self._current_user: Optional[UserIdentity] = None
        self._authenticated_at: Optional[float] = None
        self._streams: set[LocalAuthStateStream] = set()

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self._current_user

    def watch_auth_state(self) -> LocalAuthStateStream:
        stream = LocalAuthStateStream(self)
        self._streams.add(stream)
        return stream

    def _set_current_user(self, user: Optional[UserIdentity]) -> None:
        self._current_user = user
        self._authenticated_at = time.monotonic() if user else None
        for stream in list(self._streams):
            stream._push(user)

    def _find_account(self, email: str) -> Optional[tuple[str, dict[str, Any]]]:
        matches = self.store.query(ACCOUNTS, "email", email)
        return matches[0] if matches else None

    def _validate_new_credentials(self, email: str, password: str) -> None:
        if not EMAIL_PATTERN.match(email):
            raise AuthError("invalid-email")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError("weak-password")
        if self._find_account(email) is not None:
            raise AuthError("email-already-in-use")

    def _verify_password(self, uid: str, account: dict[str, Any], password: str) -> bool:
        try:
            self.hasher.verify(account.get("passwordHash", ""), password)
        except (VerificationError, InvalidHashError):
            return False
        if self.hasher.check_needs_rehash(account["passwordHash"]):
            self.store.update_document(ACCOUNTS, uid, {"passwordHash": self.hasher.hash(password)})
        return True

    def _require_user(self) -> UserIdentity:
        if self._current_user is None:
            raise AuthError("no-current-user")
        return self._current_user

    def _require_recent_login(self) -> UserIdentity:
        user = self._require_user()
        if self._authenticated_at is None or time.monotonic() - self._authenticated_at > RECENT_LOGIN_WINDOW:
            raise AuthError("requires-recent-login")
        return user

    async def _create_account(
        self, email: str, password: str, display_name: Optional[str] = None, is_admin: bool = False
    ) -> UserIdentity:
        email = _normalize_email(email)
        self._validate_new_credentials(email, password)

        uid = uuid.uuid4().hex[:28]
        now = datetime.now(timezone.utc).isoformat()
        self.store.set_document(
            ACCOUNTS,
            uid,
            {
                "email": email,
                "passwordHash": self.hasher.hash(password),
                "displayName": display_name,
                "createdAt": now,
            },
        )
        await self.store.set_user_data(
            uid,
            {
                "uid": uid,
                "email": email,
                "displayName": display_name,
                "role": "admin" if is_admin else "customer",
                "isAdmin": is_admin,
                "createdAt": now,
            },
            merge=True,
        )
        logger.info(f"Created {'admin' if is_admin else 'customer'} account for {email}")

        user = UserIdentity(uid=uid, email=email, display_name=display_name)
        self._set_current_user(user)
        return user

    async def sign_in_with_email_and_password(self, email: str, password: str) -> UserIdentity:
        email = _normalize_email(email)
        found = self._find_account(email)
        if found is None or not self._verify_password(found[0], found[1], password):
            logger.info(f"Rejected sign-in for {email}")
            raise AuthError("invalid-credential")

        uid, account = found
        user = UserIdentity(uid=uid, email=account.get("email"), display_name=account.get("displayName"))
        self._set_current_user(user)
        logger.info(f"Signed in {email}")
        return user

    async def sign_up_with_email_and_password(self, email: str, password: str) -> UserIdentity:
        return await self._create_account(email, password)

    async def sign_up_as_admin(
        self, email: str, password: str, display_name: str, admin_code: str
    ) -> UserIdentity:
        if not hmac.compare_digest(admin_code.encode(), self.admin_code.encode()):
            raise AuthError("invalid-admin-code")
        return await self._create_account(email, password, display_name=display_name, is_admin=True)

    async def sign_out(self) -> None:
        if self._current_user is not None:
            logger.info(f"Signed out {self._current_user.email}")
            self._set_current_user(None)

    async def send_password_reset_email(self, email: str) -> None:
        email = _normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise AuthError("invalid-email")
        # Unknown addresses succeed silently so accounts cannot be enumerated
        found = self._find_account(email)
        if found is not None:
            self.store.update_document(
                ACCOUNTS, found[0], {"passwordResetRequestedAt": datetime.now(timezone.utc).isoformat()}
            )
            logger.info(f"Password reset requested for {email}")

    async def update_password(self, new_password: str) -> None:
        user = self._require_recent_login()
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AuthError("weak-password")
        self.store.update_document(ACCOUNTS, user.uid, {"passwordHash": self.hasher.hash(new_password)})
        logger.info(f"Password updated for {user.email}")

    async def delete_account(self) -> None:
        user = self._require_recent_login()
        await self.store.delete_user_data(user.uid)
        self.store.delete_document(ACCOUNTS, user.uid)
        logger.info(f"Deleted account {user.email}")
        self._set_current_user(None)

    async def reauthenticate(self, email: str, password: str) -> None:
        user = self._require_user()
        email = _normalize_email(email)
        account = self.store.get_document(ACCOUNTS, user.uid)
        if account is None or account.get("email") != email or not self._verify_password(user.uid, account, password):
            raise AuthError("invalid-credential")
        self._authenticated_at = time.monotonic()

    async def reload_user(self) -> None:
        """Refresh the current user from its account; a deleted account signs out."""
        if self._current_user is None:
            return
        uid = self._current_user.uid
        account = self.store.get_document(ACCOUNTS, uid)
        if account is None:
            self._set_current_user(None)
            return
        self._current_user = UserIdentity(
            uid=uid, email=account.get("email"), display_name=account.get("displayName")
        )
