"""
Shared test fixtures and fakes for the OrderDesk test suite.
"""

import asyncio
from typing import Any, Optional

import pytest
from argon2 import PasswordHasher

from orderdesk_server.models import UserIdentity
from orderdesk_server.store import JsonDocumentStore

_END = object()


class FakeAuthStream:
    def __init__(self, owner: "FakeIdentityProvider") -> None:
        self.owner = owner
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        self.closed = True
        self.owner.streams.remove(self)
        self.queue.put_nowait(_END)


class FakeIdentityProvider:
    """Identity provider whose results are scripted by the test."""

    def __init__(self, current_user: Optional[UserIdentity] = None) -> None:
        self._current_user = current_user
        self.streams: list[FakeAuthStream] = []
        self.fail_with: Optional[Exception] = None
        self.calls: list[str] = []

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self._current_user

    def watch_auth_state(self) -> FakeAuthStream:
        stream = FakeAuthStream(self)
        self.streams.append(stream)
        return stream

    def emit(self, user: Optional[UserIdentity]) -> None:
        self._current_user = user
        for stream in list(self.streams):
            stream.queue.put_nowait(user)

    async def _call(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    async def sign_in_with_email_and_password(self, email: str, password: str) -> UserIdentity:
        await self._call("sign_in")
        user = UserIdentity(uid=f"uid-{email}", email=email)
        self.emit(user)
        return user

    async def sign_up_with_email_and_password(self, email: str, password: str) -> UserIdentity:
        await self._call("sign_up")
        user = UserIdentity(uid=f"uid-{email}", email=email)
        self.emit(user)
        return user

    async def sign_up_as_admin(self, email: str, password: str, display_name: str, admin_code: str) -> UserIdentity:
        await self._call("sign_up_as_admin")
        user = UserIdentity(uid=f"uid-{email}", email=email, display_name=display_name)
        self.emit(user)
        return user

    async def sign_out(self) -> None:
        await self._call("sign_out")
        self.emit(None)

    async def send_password_reset_email(self, email: str) -> None:
        await self._call("send_password_reset_email")

    async def update_password(self, new_password: str) -> None:
        await self._call("update_password")

    async def delete_account(self) -> None:
        await self._call("delete_account")
        self.emit(None)

    async def reauthenticate(self, email: str, password: str) -> None:
        await self._call("reauthenticate")

    async def reload_user(self) -> None:
        await self._call("reload_user")


class FakeDocumentStore:
    """Admin lookups that can be held open with ``gate``."""

    def __init__(self, admins: tuple[str, ...] = ()) -> None:
        self.admins = set(admins)
        self.lookups: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.users: dict[str, dict[str, Any]] = {}

    async def is_user_admin(self, user_id: str) -> bool:
        self.lookups.append(user_id)
        if self.gate is not None:
            await self.gate.wait()
        return user_id in self.admins

    async def get_user_data(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.users.get(user_id)

    async def update_user_data(self, user_id: str, data: dict[str, Any]) -> None:
        if user_id not in self.users:
            raise KeyError(user_id)
        self.users[user_id].update(data)


async def settle(rounds: int = 10) -> None:
    """Let background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def fake_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def fast_hasher() -> PasswordHasher:
    """Cheap argon2 parameters for tests."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def memory_store() -> JsonDocumentStore:
    return JsonDocumentStore()


def make_order_record(**overrides: Any) -> dict[str, Any]:
    record = {
        "userId": "user-1",
        "items": [
            {"productId": "p1", "title": "Linen Shirt", "quantity": 2, "price": "₹499", "uniqueKey": "k1", "size": "M"},
        ],
        "address": {
            "firstName": "Asha",
            "lastName": "Rao",
            "streetAddress": "12 MG Road",
            "city": "Pune",
            "state": "MH",
            "pincode": 411001,
            "mobileNumber": "9999999999",
        },
        "amount": 998,
        "status": "pending",
        "paymentStatus": "pending",
        "paymentMode": "cod",
        "createdAt": "2024-05-01T10:00:00",
        "customerEmail": "asha@example.com",
    }
    record.update(overrides)
    return record
