# tokenauth/services/auth/service.py
from __future__ import annotations

import logging
from datetime import datetime

from tokenauth.services._shared.base import BaseService, Clock, ServiceContext
from tokenauth.services._shared.errors import IntegrityFaultError
from tokenauth.services._shared.ports import (
    AccessTokenCodec,
    CredentialVerifier,
    RefreshTokenRecord,
    TokenStore,
    UserAccount,
)
from tokenauth.services.auth.dto import (
    AuthFailure,
    AuthResult,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    TokenPairOut,
    UserProfileOut,
)
from tokenauth.services.auth.generator import RefreshTokenGenerator

logger = logging.getLogger(__name__)


class TokenLifecycleService(BaseService):
    """
    Token lifecycle service (login / refresh / logout).

    Issues signed access tokens through an :class:`AccessTokenCodec` and
    opaque refresh tokens through a :class:`RefreshTokenGenerator`, keeping
    the refresh-token records in a :class:`TokenStore`.

    Security
    --------
    - Every rejected login yields the same ``INVALID_CREDENTIALS`` result and
      every rejected refresh the same ``INVALID_TOKEN`` result. The internal
      reason is logged, never returned.
    - Refresh tokens are single use: a successful refresh revokes the record
      that authorised it and appends its replacement in one store call.
    - The access token is signed only after the store has committed.

    Collaborator outages (:class:`CollaboratorUnavailableError`) are not
    authentication failures and propagate to the caller.
    """

    def __init__(
        self,
        *,
        token_store: TokenStore,
        credentials: CredentialVerifier,
        codec: AccessTokenCodec,
        generator: RefreshTokenGenerator | None = None,
        cfg: AuthTokenConfig | None = None,
        clock: Clock | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its collaborators.

        :param token_store: User lookup and refresh-token persistence.
        :param credentials: Password verification.
        :param codec: Access-token signing and validation.
        :param generator: Refresh-token value source.
        :param cfg: Refresh lifetime and the expired-access-token policy.
        :param clock: Time source (injected by tests).
        """
        super().__init__(clock=clock, ctx=ctx)
        self.store = token_store
        self.credentials = credentials
        self.codec = codec
        self.generator = generator or RefreshTokenGenerator()
        self.cfg = cfg or AuthTokenConfig()

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, dto: LoginIn) -> AuthResult:
        """
        Authenticate credentials and issue a fresh token pair.

        :param dto: Login input.
        :returns: Success with the pair, or ``INVALID_CREDENTIALS``.
        :raises CollaboratorUnavailableError: If the store is unreachable.
        """
        now = self.now_utc()
        user = self.store.find_user_by_email(dto.email)
        # Verify even for unknown users so both rejections cost the same.
        if not self.credentials.verify(user, dto.password) or user is None:
            reason = "unknown_email" if user is None else "bad_password"
            logger.info(
                "Login rejected",
                extra={"event": "auth.login.rejected", "reason": reason},
            )
            return AuthResult.failed(AuthFailure.INVALID_CREDENTIALS)

        record = self._new_record(user, now)
        try:
            self.store.append_refresh_token(user, record)
        except IntegrityFaultError:
            logger.error(
                "Refresh token could not be stored",
                extra={"event": "auth.integrity_fault", "user_id": user.id},
                exc_info=True,
            )
            return AuthResult.failed(AuthFailure.INVALID_CREDENTIALS)

        logger.info("Login succeeded", extra={"event": "auth.login.ok", "user_id": user.id})
        return AuthResult.success(self._pair(user, record, now))

    # ------------------------------------------------------------------ #
    # Refresh with single-use rotation
    # ------------------------------------------------------------------ #

    def refresh(self, dto: RefreshIn) -> AuthResult:
        """
        Exchange an (access token, refresh token) pair for a new pair.

        The access token is only an identity hint. With
        ``cfg.allow_expired_access_on_refresh`` it may be past its expiry,
        but its signature must still verify.

        :param dto: Refresh input.
        :returns: Success with the new pair, or ``INVALID_TOKEN``.
        :raises CollaboratorUnavailableError: If the store is unreachable.
        """
        now = self.now_utc()

        subject = self.codec.validate(
            dto.access_token,
            now,
            allow_expired=self.cfg.allow_expired_access_on_refresh,
        )
        user_id = _coerce_user_id(subject)
        if user_id is None:
            return self._reject("bad_access_token")

        user = self.store.find_user_by_id(user_id)
        if user is None:
            return self._reject("unknown_subject", user_id=user_id)

        try:
            current = self.store.find_active_refresh_token(user, dto.refresh_token, now)
        except IntegrityFaultError:
            logger.error(
                "Duplicate active refresh tokens",
                extra={"event": "auth.integrity_fault", "user_id": user.id},
                exc_info=True,
            )
            return self._reject("integrity_fault", user_id=user.id)
        if current is None:
            return self._reject("no_active_refresh_token", user_id=user.id)

        replacement = self._new_record(user, now)
        try:
            rotated = self.store.rotate(user, current, replacement, now)
        except IntegrityFaultError:
            logger.error(
                "Refresh token rotation hit an integrity fault",
                extra={"event": "auth.integrity_fault", "user_id": user.id},
                exc_info=True,
            )
            return self._reject("integrity_fault", user_id=user.id)
        if not rotated:
            # A concurrent redemption revoked it first.
            return self._reject("lost_rotation_race", user_id=user.id)

        logger.info("Token pair rotated", extra={"event": "auth.refresh.ok", "user_id": user.id})
        return AuthResult.success(self._pair(user, replacement, now))

    # ------------------------------------------------------------------ #
    # Logout / profile
    # ------------------------------------------------------------------ #

    def revoke(self, dto: LogoutIn) -> bool:
        """
        Revoke one of the caller's own active refresh tokens.

        :param dto: Logout input.
        :returns: ``True`` if a record was revoked by this call.
        """
        now = self.now_utc()
        user = self.store.find_user_by_id(dto.user_id)
        if user is None:
            return False
        try:
            record = self.store.find_active_refresh_token(user, dto.refresh_token, now)
        except IntegrityFaultError:
            logger.error(
                "Duplicate active refresh tokens",
                extra={"event": "auth.integrity_fault", "user_id": user.id},
                exc_info=True,
            )
            return False
        if record is None:
            return False

        revoked = self.store.mark_revoked(record, now)
        if revoked:
            logger.info(
                "Refresh token revoked", extra={"event": "auth.logout.ok", "user_id": user.id}
            )
        return revoked

    def profile(self, user_id: int) -> UserProfileOut | None:
        """
        Return the identity fields of an authenticated caller.

        :param user_id: Subject of the caller's bearer access token.
        :returns: The profile, or ``None`` if the account no longer exists.
        :raises CollaboratorUnavailableError: If the store is unreachable.
        """
        user = self.store.find_user_by_id(user_id)
        if user is None:
            return None
        return UserProfileOut(
            id=user.id, email=user.email, first_name=user.first_name, last_name=user.last_name
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _new_record(self, user: UserAccount, now: datetime) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            value=self.generator.generate(),
            user_id=user.id,
            created_at=now,
            expires_at=now + self.cfg.refresh_expires,
        )

    def _pair(self, user: UserAccount, record: RefreshTokenRecord, now: datetime) -> TokenPairOut:
        access = self.codec.issue(user.id, now)
        return TokenPairOut(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            token=access.token,
            expires_in=access.expires_in,
            refresh_token=record.value,
            refresh_token_expiration=record.expires_at,
        )

    @staticmethod
    def _reject(reason: str, *, user_id: int | None = None) -> AuthResult:
        logger.info(
            "Refresh rejected",
            extra={"event": "auth.refresh.rejected", "reason": reason, "user_id": user_id},
        )
        return AuthResult.failed(AuthFailure.INVALID_TOKEN)


def _coerce_user_id(subject: str | None) -> int | None:
    """
    Turn a token subject into a user id.

    :returns: The integer id, or ``None`` for anything that is not a
        plain non-negative integer string.
    """
    if subject is None or not subject.isdecimal():
        return None
    return int(subject)
