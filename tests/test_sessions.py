"""Session lifecycle tests: issue, renew, rotate, revoke, login and logout."""

import logging
from dataclasses import replace

import pytest

from models.memory_store import MemoryTokenStore
from services.errors import (
    InvalidCredentials,
    IssueFailed,
    RefreshFailed,
    StoreUnavailable,
    TokenInvalid,
)
from services.sessions import AuthServices
from tests.conftest import ACCESS_SECRET, PASSWORD
from utils.tokens import TokenCodec


class FlakyStore(MemoryTokenStore):
    """Memory store whose selected operations raise StoreUnavailable."""

    def __init__(self, failing=()):
        super().__init__()
        self.failing = set(failing)

    def _check(self, name):
        if name in self.failing:
            raise StoreUnavailable()

    def get_principal_by_id(self, principal_id):
        self._check("get_principal_by_id")
        return super().get_principal_by_id(principal_id)

    def get_principal_by_email(self, email):
        self._check("get_principal_by_email")
        return super().get_principal_by_email(email)

    def set_refresh_token(self, principal_id, token):
        self._check("set_refresh_token")
        return super().set_refresh_token(principal_id, token)

    def compare_and_set_refresh_token(self, principal_id, expected, new):
        self._check("compare_and_set_refresh_token")
        return super().compare_and_set_refresh_token(principal_id, expected, new)


class TestLogin:

    def test_login_persists_refresh_token(self, services, principal, memory_store):
        """Correct credentials return both tokens; the store holds the refresh one."""
        session = services.authenticator.login("a@b.com", PASSWORD)

        assert session.access_token and session.refresh_token
        stored = memory_store.get_principal_by_id(principal.id)
        assert stored.current_refresh_token == session.refresh_token

        claims = services.codec.verify_access(session.access_token)
        assert (claims.principal_id, claims.email, claims.role) == (principal.id, "a@b.com", "ADMIN")

    def test_email_is_case_insensitive(self, services, principal):
        services.authenticator.login("  A@B.com ", PASSWORD)

    def test_wrong_password_and_unknown_email_look_alike(self, services, principal):
        with pytest.raises(InvalidCredentials) as wrong_pw:
            services.authenticator.login("a@b.com", "wrong-password")
        with pytest.raises(InvalidCredentials) as unknown:
            services.authenticator.login("nobody@b.com", PASSWORD)
        assert str(wrong_pw.value) == str(unknown.value)

    def test_store_down_during_lookup(self, codec):
        store = FlakyStore(failing={"get_principal_by_email"})
        services = AuthServices.build(codec, store)
        with pytest.raises(IssueFailed):
            services.authenticator.login("a@b.com", PASSWORD)


class TestIssue:

    def test_second_issue_supersedes_first(self, services, principal):
        """Only the most recently issued refresh token can renew."""
        first = services.issuer.issue(principal)
        second = services.issuer.issue(principal)

        with pytest.raises(RefreshFailed):
            services.renewer.renew(first.refresh_token)
        assert services.renewer.renew(second.refresh_token).access_token

    def test_persist_failure_returns_no_tokens(self, codec, password_hash):
        store = FlakyStore(failing={"set_refresh_token"})
        principal = store.create_principal("a@b.com", password_hash)
        services = AuthServices.build(codec, store)

        with pytest.raises(IssueFailed) as err:
            services.issuer.issue(principal)
        assert isinstance(err.value.__cause__, StoreUnavailable)
        assert store.get_principal_by_id(principal.id).current_refresh_token is None

    def test_vanished_principal_gets_no_tokens(self, services, principal, memory_store):
        """A refresh token the store never recorded is never handed out."""
        gone = replace(principal, id="gone")

        with pytest.raises(IssueFailed):
            services.issuer.issue(gone)
        assert memory_store.get_principal_by_id("gone") is None
        # revoking an unknown id stays a no-op
        services.revoker.revoke("gone")


class TestRenew:

    def test_rotation_invalidates_predecessor(self, services, principal, memory_store):
        t0 = services.issuer.issue(principal).refresh_token
        renewed = services.renewer.renew(t0)
        t1 = renewed.refresh_token

        assert t1 and t1 != t0
        assert memory_store.get_principal_by_id(principal.id).current_refresh_token == t1
        assert renewed.principal.current_refresh_token == t1
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)
        assert services.renewer.renew(t1).refresh_token

    def test_without_rotation_refresh_token_is_reused(self, codec, memory_store, principal):
        services = AuthServices.build(codec, memory_store, rotate=False)
        t0 = services.issuer.issue(principal).refresh_token

        first = services.renewer.renew(t0)
        second = services.renewer.renew(t0)

        assert first.refresh_token is None and second.refresh_token is None
        assert memory_store.get_principal_by_id(principal.id).current_refresh_token == t0

    def test_renew_after_access_expiry_uses_current_principal_state(
        self, services, principal, memory_store, clock
    ):
        """Sixteen minutes in, the access token is dead but renewal works with fresh claims."""
        issued = services.issuer.issue(principal)
        memory_store.update_principal(principal.id, role="CLIENT", email="ada@b.com")
        clock.advance(minutes=16)

        with pytest.raises(TokenInvalid):
            services.codec.verify_access(issued.access_token)

        renewed = services.renewer.renew(issued.refresh_token)
        claims = services.codec.verify_access(renewed.access_token)
        assert claims.role == "CLIENT"
        assert claims.email == "ada@b.com"
        assert claims.principal_id == principal.id

    def test_wrong_secret_token(self, services, principal):
        forger = TokenCodec(ACCESS_SECRET, "attacker-refresh-secret-0123456789abcd", issuer="crm-auth-api")
        with pytest.raises(TokenInvalid):
            services.renewer.renew(forger.mint_refresh(principal.id))

    def test_expired_refresh_token(self, services, principal, clock):
        t0 = services.issuer.issue(principal).refresh_token
        clock.advance(days=7)
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)

    def test_unknown_principal(self, services):
        with pytest.raises(RefreshFailed):
            services.renewer.renew(services.codec.mint_refresh("ghost"))

    def test_valid_signature_but_never_stored(self, services, principal):
        services.issuer.issue(principal)
        with pytest.raises(RefreshFailed):
            services.renewer.renew(services.codec.mint_refresh(principal.id))

    def test_failure_reasons_share_one_message(self, services, principal, clock):
        stale = services.issuer.issue(principal).refresh_token
        services.issuer.issue(principal)
        messages = set()
        for token in (stale, "garbage", services.codec.mint_refresh("ghost")):
            with pytest.raises(RefreshFailed) as err:
                services.renewer.renew(token)
            messages.add(str(err.value))
        assert len(messages) == 1

    def test_rejection_log_names_the_failed_step(self, services, principal, clock, caplog):
        caplog.set_level(logging.INFO, logger="services.sessions")
        t0 = services.issuer.issue(principal).refresh_token

        with pytest.raises(RefreshFailed):
            services.renewer.renew("garbage")
        assert "after presented" in caplog.text

        clock.advance(days=8)
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)
        assert "after signature_checked: expired" in caplog.text

    def test_store_down_maps_to_refresh_failed(self, codec, password_hash):
        store = FlakyStore()
        principal = store.create_principal("a@b.com", password_hash)
        services = AuthServices.build(codec, store)
        t0 = services.issuer.issue(principal).refresh_token

        store.failing = {"get_principal_by_id"}
        with pytest.raises(RefreshFailed) as err:
            services.renewer.renew(t0)
        assert isinstance(err.value.__cause__, StoreUnavailable)

        store.failing = {"compare_and_set_refresh_token"}
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)

        store.failing = set()
        assert services.renewer.renew(t0).access_token


class TestReuse:

    def test_replay_revokes_chain_when_enabled(self, codec, memory_store, principal):
        services = AuthServices.build(codec, memory_store, rotate=True, revoke_on_reuse=True)
        t0 = services.issuer.issue(principal).refresh_token
        t1 = services.renewer.renew(t0).refresh_token

        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)

        assert memory_store.get_principal_by_id(principal.id).current_refresh_token is None
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t1)

    def test_replay_leaves_chain_alone_by_default(self, services, principal):
        t0 = services.issuer.issue(principal).refresh_token
        t1 = services.renewer.renew(t0).refresh_token

        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)
        assert services.renewer.renew(t1).access_token


class TestRevoke:

    def test_revocation_is_terminal(self, services, principal, memory_store):
        t0 = services.issuer.issue(principal).refresh_token
        services.revoker.revoke(principal.id)

        assert memory_store.get_principal_by_id(principal.id).current_refresh_token is None
        with pytest.raises(RefreshFailed):
            services.renewer.renew(t0)

    def test_revoke_is_idempotent(self, services, principal):
        services.issuer.issue(principal)
        services.revoker.revoke(principal.id)
        services.revoker.revoke(principal.id)
        services.revoker.revoke("no-such-principal")

    def test_access_token_outlives_revocation(self, services, principal, clock):
        """Revocation stops renewal, not access tokens already handed out."""
        issued = services.issuer.issue(principal)
        services.revoker.revoke(principal.id)

        assert services.codec.verify_access(issued.access_token).principal_id == principal.id
        clock.advance(minutes=15)
        with pytest.raises(TokenInvalid):
            services.codec.verify_access(issued.access_token)


class TestLogout:

    def test_logout_revokes_chain(self, services, principal, memory_store):
        session = services.authenticator.login("a@b.com", PASSWORD)
        assert services.authenticator.logout(session.access_token) is True
        assert memory_store.get_principal_by_id(principal.id).current_refresh_token is None

    def test_logout_with_expired_access_token_succeeds(self, services, principal, memory_store, clock):
        session = services.authenticator.login("a@b.com", PASSWORD)
        clock.advance(minutes=30)
        assert services.authenticator.logout(session.access_token) is False
        # the chain cannot be identified from an expired token and stays as is
        assert memory_store.get_principal_by_id(principal.id).current_refresh_token == session.refresh_token

    @pytest.mark.parametrize("token", [None, "", "junk"])
    def test_logout_without_usable_token(self, services, token):
        assert services.authenticator.logout(token) is False
