"""
Registration, login and session verification.

Registration is two-phase. ``send_code`` parks the credentials in a
pending verification row and e-mails a one-time code; ``register``
turns the row into a user once the code matches. Both run inside one
transaction each. Password hashing happens before the transaction opens.

``register`` settles the attempt budget inside its transaction and raises
the verification sub-error only after commit, so a spent attempt is
persisted even though the call fails.
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt

from config import AuthSettings
from errors import (
    AlreadyExistsError,
    AuthenticationError,
    CodeExpiredError,
    EmailDeliveryError,
    InvalidCodeError,
    NotFoundError,
    ZeroAttemptsError,
)
from infrastructure.db.transactor import Transactor
from infrastructure.email.protocol import EmailProvider
from repositories.users import UserRepository
from repositories.verifications import VerificationRepository
from schemas.models.user import User
from schemas.models.verification import CodeCheck, PendingVerification
from shared.crypto import hash_code, hash_password_async, verify_password_async
from shared.datetime_utils import utc_in, utc_now
from shared.generators import generate_otp_code, new_id
from shared.logging import get_logger
from shared.tokens import IssuedToken, issue_token, verify_token

log = get_logger(__name__)

_CHECK_ERRORS = {
    CodeCheck.INVALID: (InvalidCodeError, "invalid code"),
    CodeCheck.EXHAUSTED: (ZeroAttemptsError, "no attempts left, request a new code"),
    CodeCheck.EXPIRED: (CodeExpiredError, "code expired, request a new code"),
}


class AuthService:
    def __init__(
        self,
        transactor: Transactor,
        users: UserRepository,
        verifications: VerificationRepository,
        email: EmailProvider,
        settings: AuthSettings,
    ) -> None:
        self._tx = transactor
        self._users = users
        self._verifications = verifications
        self._email = email
        self._settings = settings

    async def send_code(self, nickname: str, login: str, email: str, password: str) -> None:
        """Start a registration: store the pending row and mail the code.

        An existing pending row for the email is overwritten (the resend
        path), so a user can restart with different credentials.
        """
        op = "auth.send_code"
        log.info("auth_send_code_started", op=op, email=email)
        password_hash = await hash_password_async(password)
        code = generate_otp_code()

        async def block() -> None:
            if await self._users.exists(login, email, nickname):
                raise AlreadyExistsError("user with this login, email or nickname already exists")
            pending = PendingVerification(
                email=email,
                login=login,
                nickname=nickname,
                password=password_hash,
                code=hash_code(code),
                expired_time=utc_in(self._settings.code_ttl_seconds),
                attempts=self._settings.code_attempts,
            )
            added = await self._verifications.add(pending)
            if not added:
                await self._verifications.resend(
                    email,
                    pending.code,
                    pending.expired_time,
                    pending.attempts,
                    login=login,
                    nickname=nickname,
                    password=password_hash,
                )
            await self._deliver(email, nickname, code, resend=not added)

        try:
            await self._tx.run(block)
        except Exception as e:
            log.warning("auth_send_code_failed", op=op, email=email, error_type=type(e).__name__)
            raise
        log.info("auth_send_code_succeeded", op=op, email=email)

    async def resend_code(self, email: str) -> None:
        op = "auth.resend_code"
        code = generate_otp_code()

        async def block() -> None:
            pending = await self._verifications.get(email)
            await self._verifications.resend(
                email,
                hash_code(code),
                utc_in(self._settings.code_ttl_seconds),
                self._settings.code_attempts,
            )
            await self._deliver(email, pending.nickname, code, resend=True)

        try:
            await self._tx.run(block)
        except Exception as e:
            log.warning("auth_resend_code_failed", op=op, email=email, error_type=type(e).__name__)
            raise
        log.info("auth_resend_code_succeeded", op=op, email=email)

    async def register(self, email: str, code: str) -> User:
        """Finish a registration with the mailed *code*.

        Raises InvalidCodeError, ZeroAttemptsError or CodeExpiredError for
        the verification sub-states and NotFoundError when nothing is
        pending for *email*.
        """
        op = "auth.register"
        code_hash = hash_code(code)

        async def block() -> tuple[CodeCheck, Optional[User]]:
            outcome = await self._verifications.check_code(email, code_hash)
            if outcome is not CodeCheck.VALID:
                return outcome, None
            credentials = await self._verifications.fetch_credentials(email)
            user = User(
                id=new_id(),
                nickname=credentials.nickname,
                login=credentials.login,
                email=credentials.email,
                avatar="",
                password=credentials.password,
                time_of_register=utc_now(),
            )
            await self._users.create(user)
            await self._verifications.delete(email)
            return outcome, user

        try:
            outcome, user = await self._tx.run(block)
        except Exception as e:
            log.warning("auth_register_failed", op=op, email=email, error_type=type(e).__name__)
            raise

        if user is None:
            error_cls, message = _CHECK_ERRORS[outcome]
            log.info("auth_register_rejected", op=op, email=email, outcome=outcome.value)
            raise error_cls(message)

        log.info("auth_register_succeeded", op=op, user_id=str(user.id))
        return user

    async def login(self, login: str, password: str) -> tuple[User, IssuedToken]:
        op = "auth.login"
        try:
            user = await self._users.get_by_login(login)
        except NotFoundError:
            log.info("auth_login_rejected", op=op, reason="unknown_login")
            raise AuthenticationError("invalid login or password") from None

        if not await verify_password_async(password, user.password):
            log.info("auth_login_rejected", op=op, reason="wrong_password", user_id=str(user.id))
            raise AuthenticationError("invalid login or password")

        token = issue_token(
            str(user.id),
            self._settings.secret,
            self._settings.token_ttl_seconds,
            issuer=self._settings.issuer,
            audience=self._settings.audience,
        )
        log.info("auth_login_succeeded", op=op, user_id=str(user.id))
        return user, token

    def authenticate(self, token: Optional[str]) -> uuid.UUID:
        """Resolve the session cookie to a user id or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("not logged in")
        try:
            subject = verify_token(
                token,
                self._settings.secret,
                issuer=self._settings.issuer,
                audience=self._settings.audience,
            )
            return uuid.UUID(subject)
        except (jwt.InvalidTokenError, ValueError):
            raise AuthenticationError("invalid or expired session") from None

    async def _deliver(self, email: str, nickname: str, code: str, *, resend: bool) -> None:
        sent = await self._email.send_verification_email(email, nickname, code, resend=resend)
        if not sent:
            raise EmailDeliveryError("verification email was not delivered")
