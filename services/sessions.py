"""
Session lifecycle: login, silent renewal, revocation.

- SessionIssuer mints an access/refresh pair and records the refresh token as
  the principal's only live one (a new login supersedes the old chain)
- SessionRenewer trades a refresh token for a fresh access token, rotating the
  refresh token through compare-and-set when rotation is on
- Revoker clears the chain at logout
- Authenticator ties credential checks to the issuer

None of these keep per-call state; the token store is the single source of
truth, so any number of workers can serve the same principal.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Optional

from models.token_store import Principal, TokenStore
from services.errors import (
    InvalidCredentials,
    IssueFailed,
    RefreshFailed,
    StoreUnavailable,
    TokenInvalid,
)
from utils.security import tokens_equal, verify_password
from utils.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    access_token: str
    refresh_token: str
    principal: Principal


@dataclass(frozen=True)
class RenewedSession:
    access_token: str
    principal: Principal
    # new refresh token when rotated, else None (keep presenting the old one)
    refresh_token: Optional[str] = None


class RenewalState(enum.Enum):
    PRESENTED = "presented"
    SIGNATURE_CHECKED = "signature_checked"
    EXPIRY_CHECKED = "expiry_checked"
    STORE_MATCHED = "store_matched"
    REISSUED = "reissued"


def _mint_access(codec: TokenCodec, principal: Principal) -> str:
    return codec.mint_access(principal.id, principal.email, principal.role)


class SessionIssuer:
    def __init__(self, codec: TokenCodec, store: TokenStore):
        self.codec = codec
        self.store = store

    def issue(self, principal: Principal) -> IssuedSession:
        access_token = _mint_access(self.codec, principal)
        refresh_token = self.codec.mint_refresh(principal.id)
        try:
            # overwrite unconditionally: this is what kills any older chain
            stored = self.store.set_refresh_token(principal.id, refresh_token)
        except StoreUnavailable as exc:
            logger.error("refresh token not persisted for principal %s", principal.id)
            raise IssueFailed() from exc
        if not stored:
            logger.error("refresh token not persisted, principal %s is gone", principal.id)
            raise IssueFailed()
        logger.info("session issued for principal %s", principal.id)
        return IssuedSession(
            access_token=access_token,
            refresh_token=refresh_token,
            principal=_with_token(principal, refresh_token),
        )


class SessionRenewer:
    """Refresh-token exchange.

    ``renew`` walks PRESENTED -> SIGNATURE_CHECKED -> EXPIRY_CHECKED ->
    STORE_MATCHED -> REISSUED. Whatever step fails, the caller sees one
    RefreshFailed with the same message; the reason is only logged.
    """

    def __init__(
        self,
        codec: TokenCodec,
        store: TokenStore,
        rotate: bool = True,
        revoke_on_reuse: bool = False,
    ):
        self.codec = codec
        self.store = store
        self.rotate = rotate
        self.revoke_on_reuse = revoke_on_reuse

    def _fail(self, state: RenewalState, reason: str, principal_id: str | None = None):
        logger.info(
            "refresh rejected after %s: %s (principal=%s)", state.value, reason, principal_id
        )
        return RefreshFailed()

    def renew(self, presented: str) -> RenewedSession:
        state = RenewalState.PRESENTED
        try:
            claims = self.codec.load_refresh(presented)
        except TokenInvalid as exc:
            raise self._fail(state, "bad signature or shape") from exc
        state = RenewalState.SIGNATURE_CHECKED

        try:
            self.codec.check_expiry(claims)
        except TokenInvalid as exc:
            raise self._fail(state, "expired", claims.principal_id) from exc
        state = RenewalState.EXPIRY_CHECKED

        try:
            principal = self.store.get_principal_by_id(claims.principal_id)
        except StoreUnavailable as exc:
            raise self._fail(state, "store unavailable", claims.principal_id) from exc
        if principal is None:
            raise self._fail(state, "unknown principal", claims.principal_id)

        stored = principal.current_refresh_token
        if not tokens_equal(presented, stored):
            if stored is not None and self.revoke_on_reuse:
                self._revoke_after_reuse(principal.id, stored)
            raise self._fail(state, "superseded or revoked", principal.id)
        state = RenewalState.STORE_MATCHED

        # claims come from the principal as stored now, not from the old token
        access_token = _mint_access(self.codec, principal)
        new_refresh = None
        if self.rotate:
            new_refresh = self.codec.mint_refresh(principal.id)
            try:
                swapped = self.store.compare_and_set_refresh_token(
                    principal.id, presented, new_refresh
                )
            except StoreUnavailable as exc:
                raise self._fail(state, "store unavailable", principal.id) from exc
            if not swapped:
                # a concurrent renewal or login got there first
                raise self._fail(state, "lost rotation race", principal.id)
            principal = _with_token(principal, new_refresh)

        state = RenewalState.REISSUED
        logger.debug("refresh %s for principal %s", state.value, principal.id)
        return RenewedSession(access_token=access_token, principal=principal, refresh_token=new_refresh)

    def _revoke_after_reuse(self, principal_id: str, stored: str) -> None:
        try:
            if self.store.compare_and_set_refresh_token(principal_id, stored, None):
                logger.warning("superseded refresh token replayed, chain revoked for %s", principal_id)
        except StoreUnavailable:
            logger.error("could not revoke chain after reuse for %s", principal_id)


class Revoker:
    def __init__(self, store: TokenStore):
        self.store = store

    def revoke(self, principal_id: str) -> None:
        """Clear the refresh chain. Revoking twice, or an unknown id, is a no-op.

        Access tokens already handed out stay valid until they expire.
        """
        self.store.set_refresh_token(principal_id, None)
        logger.info("refresh chain revoked for principal %s", principal_id)


class Authenticator:
    """Login and logout on top of the issuer and revoker."""

    def __init__(self, codec: TokenCodec, store: TokenStore, issuer: SessionIssuer, revoker: Revoker):
        self.codec = codec
        self.store = store
        self.issuer = issuer
        self.revoker = revoker

    def login(self, email: str, password: str) -> IssuedSession:
        try:
            principal = self.store.get_principal_by_email(email)
        except StoreUnavailable as exc:
            raise IssueFailed() from exc
        # unknown email and wrong password are indistinguishable to the caller
        if principal is None or not verify_password(password, principal.password_hash):
            logger.info("login rejected")
            raise InvalidCredentials()
        return self.issuer.issue(principal)

    def logout(self, access_token: Optional[str]) -> bool:
        """Revoke the chain behind ``access_token`` if it still verifies.

        An absent or expired access token is not an error: the caller clears
        its cookies either way. Returns True when a chain was revoked.
        """
        if not access_token:
            return False
        try:
            claims = self.codec.verify_access(access_token)
        except TokenInvalid:
            logger.info("logout with unverifiable access token, nothing to revoke")
            return False
        self.revoker.revoke(claims.principal_id)
        return True


def _with_token(principal: Principal, token: Optional[str]) -> Principal:
    return replace(principal, current_refresh_token=token)


@dataclass(frozen=True)
class AuthServices:
    """Everything a request handler needs, wired once per app."""

    codec: TokenCodec
    store: TokenStore
    issuer: SessionIssuer
    renewer: SessionRenewer
    revoker: Revoker
    authenticator: Authenticator

    @classmethod
    def build(cls, codec: TokenCodec, store: TokenStore, rotate: bool = True,
              revoke_on_reuse: bool = False) -> "AuthServices":
        issuer = SessionIssuer(codec, store)
        revoker = Revoker(store)
        return cls(
            codec=codec,
            store=store,
            issuer=issuer,
            renewer=SessionRenewer(codec, store, rotate=rotate, revoke_on_reuse=revoke_on_reuse),
            revoker=revoker,
            authenticator=Authenticator(codec, store, issuer, revoker),
        )
