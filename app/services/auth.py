"""
Authentication service
Registration, the login state machine, token refresh and the single-use
email verification and password reset flows.
Reference: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.auth import RegisterRequest
from app.core.config import settings
from app.core.database import utcnow
from app.core.dependencies import RequestContext
from app.core.errors import (
    AccountLockedError,
    AuthenticationError,
    AuthorizationError,
    CapacityError,
    ConflictError,
    EmailNotVerifiedError,
    InvalidStateError,
    InvalidTokenError,
)
from app.core.security import create_access_token, generate_opaque_token, hash_password, verify_password
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.services.audit import AuditService, snapshot
from app.services.email import EmailService
from app.services.refresh_token import RefreshTokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str
    expires_in: int


class AuthService:
    """
    Service for account authentication

    Login outcomes, in order:
        1. unknown or disabled user      -> AuthenticationError (generic message)
        2. unexpired lock                -> AccountLockedError, password not checked
           expired lock                  -> lock and counter cleared, attempt continues
        3. wrong password                -> counter += 1, lock at MAX_LOGIN_ATTEMPTS,
                                            AuthenticationError
        4. correct password, unverified  -> EmailNotVerifiedError
        5. success                       -> counter reset, tokens issued

    Failed attempts mutate the user row; the route commits the session
    before re-raising so the counter survives the failed request.
    """

    def __init__(self, email_service: Optional[EmailService] = None):
        self.email = email_service or EmailService()
        self.refresh_tokens = RefreshTokenService()
        self.audit = AuditService()

    async def get_user_by_email(
        self,
        db: AsyncSession,
        email: str,
        include_deleted: bool = False,
    ) -> Optional[User]:
        query = select(User).where(User.email == email.strip().lower())
        if include_deleted:
            query = query.execution_options(include_deleted=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def register(
        self,
        db: AsyncSession,
        data: RegisterRequest,
        tenant: Tenant,
        context: RequestContext,
    ) -> User:
        """
        Create an unverified member account in the request's tenant

        Args:
            db: Database session
            data: Registration payload
            tenant: Tenant resolved from the request host or X-Tenant header
            context: Client metadata for the audit entry

        Returns:
            User: The new user (flushed, not committed)

        Raises:
            ConflictError: Email already registered (including deleted accounts)
            CapacityError: Tenant seat limit reached
        """
        if await self.get_user_by_email(db, data.email, include_deleted=True):
            raise ConflictError("User with this email already exists", details={"field": "email"})

        if tenant.user_limit > 0:
            # Lock the tenant row so concurrent registrations see each other's seats
            await db.execute(select(Tenant.id).where(Tenant.id == tenant.id).with_for_update())
            seats = await db.scalar(
                select(func.count()).select_from(User).where(
                    User.tenant_id == tenant.id, User.deleted_at.is_(None)
                )
            )
            if seats >= tenant.user_limit:
                logger.warning(f"Registration rejected: tenant {tenant.id} reached its limit of {tenant.user_limit} users")
                raise CapacityError(
                    "This organization has reached its user limit",
                    details={"userLimit": tenant.user_limit},
                )

        now = utcnow()
        user = User(
            tenant_id=tenant.id,
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            roles=[UserRole.MEMBER.value],
            is_active=True,
            is_email_verified=False,
            email_verification_token=generate_opaque_token(),
            email_verification_expires=now + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        )
        db.add(user)
        await db.flush()

        self.audit.record(
            db,
            "user.register",
            tenant_id=tenant.id,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            new_values=snapshot(user),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        await db.flush()

        await self.email.send_verification_email(user.email, user.email_verification_token, user.first_name)
        logger.info(f"Registered user {user.id} in tenant {tenant.id}")
        return user

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        context: RequestContext,
        now: Optional[datetime] = None,
    ) -> LoginResult:
        """
        Run the login state machine (see class docstring)

        Raises:
            AuthenticationError: Unknown, disabled or wrong password
            AccountLockedError: Lock still in force
            EmailNotVerifiedError: Correct password but email not verified
            AuthorizationError: Tenant inactive, deleted or expired
        """
        now = now or utcnow()
        user = await self.get_user_by_email(db, email)

        if user is None or user.is_disabled:
            logger.warning(f"Failed login for unknown or disabled account from {context.ip_address}")
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if user.locked_until is not None:
            if user.is_locked(now):
                logger.warning(f"Login attempt on locked account {user.id} from {context.ip_address}")
                raise AccountLockedError(
                    "Account is locked due to too many failed login attempts",
                    details={"lockedUntil": user.locked_until.isoformat()},
                )
            # Lock expired: start counting again from zero
            user.locked_until = None
            user.failed_login_attempts = 0

        if not verify_password(password, user.password_hash):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
                user.locked_until = now + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
                logger.warning(
                    f"Account {user.id} locked until {user.locked_until.isoformat()} "
                    f"after {user.failed_login_attempts} failed attempts"
                )
                self.audit.record(
                    db,
                    "auth.account_locked",
                    tenant_id=user.tenant_id,
                    user_id=user.id,
                    entity_type="user",
                    entity_id=user.id,
                    new_values={
                        "failed_login_attempts": user.failed_login_attempts,
                        "locked_until": user.locked_until,
                    },
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                )
            else:
                logger.warning(
                    f"Failed login for user {user.id} "
                    f"({user.failed_login_attempts}/{settings.MAX_LOGIN_ATTEMPTS})"
                )
            await db.flush()
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_email_verified:
            await db.flush()
            raise EmailNotVerifiedError("Please verify your email address before signing in")

        if user.tenant_id is not None:
            tenant = await db.get(Tenant, user.tenant_id)
            if tenant is None or not tenant.is_usable:
                logger.warning(f"Login for user {user.id} refused: tenant {user.tenant_id} is not usable")
                await db.flush()
                raise AuthorizationError("This organization's account is inactive")

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        user.last_login_ip = context.ip_address

        refresh_token = await self.refresh_tokens.issue(
            db, user, user_agent=context.user_agent, ip_address=context.ip_address, now=now
        )
        self.audit.record(
            db,
            "auth.login",
            tenant_id=user.tenant_id,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        await db.flush()

        logger.info(f"User {user.id} logged in")
        return LoginResult(
            user=user,
            access_token=self.issue_access_token(user),
            refresh_token=refresh_token.token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    def issue_access_token(self, user: User) -> str:
        return create_access_token(
            user_id=user.id,
            email=user.email,
            roles=user.roles,
            tenant_id=user.tenant_id,
        )

    async def refresh(self, db: AsyncSession, token: str) -> str:
        """
        Exchange a refresh token for a new access token

        The refresh token itself is not rotated.

        Raises:
            AuthenticationError: Unknown, revoked or expired token, disabled user or unusable tenant
        """
        refresh_token = await self.refresh_tokens.resolve(db, token)
        if refresh_token is None or not refresh_token.is_valid:
            raise AuthenticationError("Invalid refresh token", code="AUTH_INVALID_TOKEN")

        user = await db.get(User, refresh_token.user_id)
        if user is None or user.is_disabled:
            raise AuthenticationError("Invalid refresh token", code="AUTH_INVALID_TOKEN")

        if user.tenant_id is not None:
            tenant = await db.get(Tenant, user.tenant_id)
            if tenant is None or not tenant.is_usable:
                raise AuthenticationError("Invalid refresh token", code="AUTH_INVALID_TOKEN")

        return self.issue_access_token(user)

    async def logout(
        self,
        db: AsyncSession,
        token: Optional[str],
        context: RequestContext,
    ) -> None:
        """Revoke the given refresh token; unknown tokens are ignored"""
        if not token:
            return
        refresh_token = await self.refresh_tokens.resolve(db, token)
        if refresh_token is None or refresh_token.is_revoked:
            return
        refresh_token.is_revoked = True
        user = await db.get(User, refresh_token.user_id, execution_options={"include_deleted": True})
        self.audit.record(
            db,
            "auth.logout",
            tenant_id=user.tenant_id if user else None,
            user_id=refresh_token.user_id,
            entity_type="refresh_token",
            entity_id=refresh_token.id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        await db.flush()
        logger.info(f"User {refresh_token.user_id} logged out")

    async def verify_email(self, db: AsyncSession, token: str, now: Optional[datetime] = None) -> User:
        """
        Consume an email verification token

        Raises:
            InvalidTokenError: Unknown or expired token
        """
        now = now or utcnow()
        result = await db.execute(select(User).where(User.email_verification_token == token))
        user = result.scalar_one_or_none()
        if (
            user is None
            or user.email_verification_expires is None
            or user.email_verification_expires <= now
        ):
            raise InvalidTokenError("Invalid or expired verification token")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        self.audit.record(
            db,
            "user.verify_email",
            tenant_id=user.tenant_id,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            new_values={"is_email_verified": True},
        )
        await db.flush()

        await self.email.send_welcome_email(user.email, user.first_name)
        logger.info(f"User {user.id} verified their email")
        return user

    async def resend_verification(self, db: AsyncSession, email: str) -> None:
        """
        Issue a fresh verification token

        Unknown emails succeed silently so the endpoint cannot be used to
        probe which accounts exist.

        Raises:
            InvalidStateError: Email already verified
        """
        user = await self.get_user_by_email(db, email)
        if user is None or user.is_disabled:
            logger.info("Verification resend requested for unknown or disabled account")
            return
        if user.is_email_verified:
            raise InvalidStateError("Email is already verified")

        user.email_verification_token = generate_opaque_token()
        user.email_verification_expires = utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
        await db.flush()
        await self.email.send_verification_email(user.email, user.email_verification_token, user.first_name)

    async def forgot_password(self, db: AsyncSession, email: str) -> None:
        """Issue a password reset token; always succeeds from the caller's view"""
        user = await self.get_user_by_email(db, email)
        if user is None or user.is_disabled:
            logger.info("Password reset requested for unknown or disabled account")
            return

        user.password_reset_token = generate_opaque_token()
        user.password_reset_expires = utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
        self.audit.record(
            db,
            "user.password_reset_requested",
            tenant_id=user.tenant_id,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
        )
        await db.flush()
        await self.email.send_password_reset_email(user.email, user.password_reset_token, user.first_name)

    async def reset_password(
        self,
        db: AsyncSession,
        token: str,
        new_password: str,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Consume a password reset token and set the new password

        All refresh tokens of the user are revoked. Lock state is left as is:
        a locked account stays locked until the lock expires or an admin unlocks it.

        Raises:
            InvalidTokenError: Unknown or expired token
        """
        now = now or utcnow()
        result = await db.execute(select(User).where(User.password_reset_token == token))
        user = result.scalar_one_or_none()
        if user is None or user.password_reset_expires is None or user.password_reset_expires <= now:
            raise InvalidTokenError("Invalid or expired password reset token")

        user.password_hash = hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.refresh_tokens.revoke_all_for_user(db, user.id)
        self.audit.record(
            db,
            "user.password_reset",
            tenant_id=user.tenant_id,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
        )
        await db.flush()
        logger.info(f"Password reset for user {user.id}")
        return user

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        return await db.get(User, user_id)
