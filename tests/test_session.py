"""
AuthSession state machine.
"""

import asyncio

import pytest

from orderdesk_server.errors import AuthError
from orderdesk_server.models import UserIdentity
from orderdesk_server.session import AuthSession

from conftest import FakeDocumentStore, FakeIdentityProvider, settle

ALICE = UserIdentity(uid="alice", email="alice@example.com", display_name="Alice")
BOB = UserIdentity(uid="bob", email="bob@example.com")


# ============================================================================
# Auth-state stream
# ============================================================================

class TestStreamTransitions:

    @pytest.mark.asyncio
    async def test_user_then_sign_out(self, identity):
        store = FakeDocumentStore(admins=("alice",))
        async with AuthSession(identity, store) as session:
            identity.emit(ALICE)
            await settle()
            assert session.current_user == ALICE
            assert session.is_admin is True

            identity.emit(None)
            await settle()
            assert session.current_user is None
            assert session.is_admin is False

    @pytest.mark.asyncio
    async def test_admin_resolves_after_user(self, identity):
        store = FakeDocumentStore(admins=("alice",))
        store.gate = asyncio.Event()
        async with AuthSession(identity, store) as session:
            identity.emit(ALICE)
            await settle()
            assert session.current_user == ALICE
            assert session.is_admin is False
            assert store.lookups == ["alice"]

            store.gate.set()
            await settle()
            assert session.is_admin is True

    @pytest.mark.asyncio
    async def test_sign_out_applies_while_lookup_pending(self, identity):
        store = FakeDocumentStore(admins=("alice",))
        store.gate = asyncio.Event()
        async with AuthSession(identity, store) as session:
            identity.emit(ALICE)
            await settle()

            identity.emit(None)
            await settle()
            assert session.current_user is None
            assert session.is_admin is False
            # Only the lookup for alice, none for the sign-out
            assert store.lookups == ["alice"]

            store.gate.set()
            await settle()
            # The late "admin" answer belongs to a previous identity
            assert session.is_admin is False

    @pytest.mark.asyncio
    async def test_stale_lookup_for_previous_user_dropped(self, identity):
        store = FakeDocumentStore(admins=("alice",))
        store.gate = asyncio.Event()
        async with AuthSession(identity, store) as session:
            identity.emit(ALICE)
            await settle()
            identity.emit(BOB)
            await settle()
            store.gate.set()
            await settle()
            assert session.current_user == BOB
            assert session.is_admin is False

    @pytest.mark.asyncio
    async def test_failed_lookup_reads_as_not_admin(self, identity):
        class BrokenStore(FakeDocumentStore):
            async def is_user_admin(self, user_id):
                raise RuntimeError("offline")

        async with AuthSession(identity, BrokenStore()) as session:
            identity.emit(ALICE)
            await settle()
            assert session.current_user == ALICE
            assert session.is_admin is False


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initial_user_available_immediately(self):
        identity = FakeIdentityProvider(current_user=ALICE)
        store = FakeDocumentStore(admins=("alice",))
        session = AuthSession(identity, store)
        assert session.current_user == ALICE
        assert session.is_admin is False

        await session.start()
        assert session.is_admin is True
        await session.close()

    @pytest.mark.asyncio
    async def test_close_releases_subscription(self, identity, fake_store):
        session = AuthSession(identity, fake_store)
        await session.start()
        stream = identity.streams[0]
        calls = []
        session.add_listener(lambda s: calls.append(s.current_user))

        await session.close()
        assert stream.closed
        assert identity.streams == []
        assert session.closed

        identity.emit(ALICE)
        await settle()
        assert session.current_user is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, identity, fake_store):
        session = AuthSession(identity, fake_store)
        await session.start()
        await session.close()
        await session.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_lookup(self, identity):
        store = FakeDocumentStore(admins=("alice",))
        store.gate = asyncio.Event()
        session = AuthSession(identity, store)
        await session.start()
        identity.emit(ALICE)
        await settle()
        await session.close()
        assert session.is_admin is False

    @pytest.mark.asyncio
    async def test_start_after_close_fails(self, identity, fake_store):
        session = AuthSession(identity, fake_store)
        await session.close()
        with pytest.raises(RuntimeError):
            await session.start()


# ============================================================================
# Operations
# ============================================================================

class TestOperations:

    @pytest.mark.asyncio
    async def test_sign_in_resolves_admin(self, identity):
        store = FakeDocumentStore(admins=("uid-admin@example.com",))
        async with AuthSession(identity, store) as session:
            assert await session.sign_in("admin@example.com", "secret1") is True
            assert session.current_user.email == "admin@example.com"
            assert session.is_admin is True
            assert session.is_loading is False
            assert session.last_error is None

    @pytest.mark.asyncio
    async def test_sign_in_failure(self, identity, fake_store):
        identity.fail_with = Exception("invalid-credential")
        async with AuthSession(identity, fake_store) as session:
            assert await session.sign_in("a@example.com", "wrong") is False
            assert session.last_error == "invalid-credential"
            assert session.is_loading is False
            assert session.current_user is None

    @pytest.mark.asyncio
    async def test_auth_error_text_is_friendly(self, identity, fake_store):
        identity.fail_with = AuthError("invalid-credential")
        async with AuthSession(identity, fake_store) as session:
            await session.sign_in("a@example.com", "wrong")
            assert session.last_error == "Invalid email or password. Please try again."

    @pytest.mark.asyncio
    async def test_loading_wraps_operation(self, identity, fake_store):
        identity.fail_with = Exception("boom")
        seen = []
        async with AuthSession(identity, fake_store) as session:
            session.add_listener(lambda s: seen.append((s.is_loading, s.last_error)))
            await session.send_password_reset_email("a@example.com")

        assert seen[0] == (True, None)
        assert seen[-1] == (False, "boom")

    @pytest.mark.asyncio
    async def test_error_cleared_on_next_attempt(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            identity.fail_with = Exception("first")
            await session.update_password("newpass")
            assert session.last_error == "first"

            identity.fail_with = None
            assert await session.update_password("newpass") is True
            assert session.last_error is None

    @pytest.mark.asyncio
    async def test_clear_error(self, identity, fake_store):
        identity.fail_with = Exception("nope")
        async with AuthSession(identity, fake_store) as session:
            await session.reauthenticate("a@example.com", "x")
            session.clear_error()
            assert session.last_error is None

    @pytest.mark.asyncio
    async def test_sign_up_as_admin_skips_lookup(self, identity, fake_store):
        fake_store.gate = asyncio.Event()
        async with AuthSession(identity, fake_store) as session:
            ok = await session.sign_up_as_admin("boss@example.com", "secret1", "Boss", "CODE")
            assert ok is True
            assert session.is_admin is True
            assert session.display_name == "Boss"
            assert "sign_up_as_admin" in identity.calls

    @pytest.mark.asyncio
    async def test_sign_up_signs_in_as_customer(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            assert await session.sign_up("new@example.com", "secret1") is True
            assert session.user_email == "new@example.com"
            assert session.is_admin is False

    @pytest.mark.asyncio
    async def test_sign_out(self, identity):
        store = FakeDocumentStore(admins=("uid-a@example.com",))
        async with AuthSession(identity, store) as session:
            await session.sign_in("a@example.com", "secret1")
            assert session.is_admin is True

            assert await session.sign_out() is True
            assert session.current_user is None
            assert session.is_admin is False
            assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_delete_account_signs_out(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            await session.sign_in("a@example.com", "secret1")
            assert await session.delete_account() is True
            assert session.current_user is None

    @pytest.mark.asyncio
    async def test_failed_sign_out_keeps_user(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            await session.sign_in("a@example.com", "secret1")
            identity.fail_with = Exception("network-request-failed")
            assert await session.sign_out() is False
            assert session.user_email == "a@example.com"
            assert session.last_error == "network-request-failed"

    @pytest.mark.asyncio
    async def test_user_data(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            assert await session.get_user_data() is None
            assert await session.update_user_data({"phone": "1"}) is False

            await session.sign_in("a@example.com", "secret1")
            fake_store.users["uid-a@example.com"] = {"role": "customer"}
            assert await session.update_user_data({"phone": "1"}) is True
            assert await session.get_user_data() == {"role": "customer", "phone": "1"}

    @pytest.mark.asyncio
    async def test_check_is_admin(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            assert await session.check_is_admin() is False
            await session.sign_in("a@example.com", "secret1")
            fake_store.admins.add("uid-a@example.com")
            assert await session.check_is_admin() is True
            assert session.is_admin is True

    @pytest.mark.asyncio
    async def test_snapshot(self, identity, fake_store):
        async with AuthSession(identity, fake_store) as session:
            await session.sign_in("a@example.com", "secret1")
            session.set_remember_me(True)
            state = session.snapshot()
            assert state.is_authenticated
            assert state.user.email == "a@example.com"
            assert state.remember_me is True
            assert state.is_loading is False


# ============================================================================
# Listeners
# ============================================================================

class TestListeners:

    @pytest.mark.asyncio
    async def test_listener_may_unsubscribe_during_dispatch(self, identity, fake_store):
        session = AuthSession(identity, fake_store)
        calls = []

        def once(s):
            calls.append("once")
            s.remove_listener(once)
            s.add_listener(late)

        def late(s):
            calls.append("late")

        def steady(s):
            calls.append("steady")

        session.add_listener(once)
        session.add_listener(steady)

        session.set_remember_me(True)
        assert calls == ["once", "steady"]

        session.set_remember_me(False)
        assert calls == ["once", "steady", "steady", "late"]
        await session.close()

    @pytest.mark.asyncio
    async def test_reentrant_mutation(self, identity, fake_store):
        identity.fail_with = Exception("bad")
        seen = []

        def clear_on_error(s):
            seen.append(s.last_error)
            if s.last_error:
                s.clear_error()

        async with AuthSession(identity, fake_store) as session:
            session.add_listener(clear_on_error)
            assert await session.sign_in("a@example.com", "x") is False
            assert session.last_error is None
            assert "bad" in seen

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self, identity, fake_store):
        session = AuthSession(identity, fake_store)
        calls = []

        def broken(s):
            raise ValueError("listener bug")

        session.add_listener(broken)
        session.add_listener(lambda s: calls.append(s.remember_me))
        session.set_remember_me(True)
        assert calls == [True]
        await session.close()
