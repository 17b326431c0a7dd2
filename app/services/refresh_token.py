"""
Refresh token ledger service
Issues, resolves and revokes opaque refresh tokens
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import utcnow
from app.core.security import generate_opaque_token
from app.models.refresh_token import RefreshToken
from app.models.user import User

logger = logging.getLogger(__name__)


class RefreshTokenService:
    """Service for the refresh token ledger"""

    async def issue(
        self,
        db: AsyncSession,
        user: User,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RefreshToken:
        """
        Create a refresh token valid for REFRESH_TOKEN_EXPIRE_DAYS.

        Args:
            db: Database session
            user: Owner of the token
            user_agent / ip_address: Client metadata recorded with the token

        Returns:
            RefreshToken: The flushed token row
        """
        token = RefreshToken(
            token=generate_opaque_token(),
            user_id=user.id,
            expires_at=(now or utcnow()) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            user_agent=user_agent[:500] if user_agent else None,
            ip_address=ip_address,
        )
        db.add(token)
        await db.flush()
        return token

    async def resolve(self, db: AsyncSession, token: str) -> Optional[RefreshToken]:
        """Look up a token by its opaque value, regardless of validity"""
        result = await db.execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def revoke(self, db: AsyncSession, token: str) -> bool:
        """
        Revoke one token.

        Returns:
            bool: True if a token with that value existed
        """
        refresh_token = await self.resolve(db, token)
        if refresh_token is None:
            return False
        refresh_token.is_revoked = True
        await db.flush()
        return True

    async def revoke_all_for_users(self, db: AsyncSession, user_ids: Iterable[uuid.UUID]) -> int:
        """
        Revoke every active token of the given users.

        Returns:
            int: Number of tokens revoked
        """
        ids = list(user_ids)
        if not ids:
            return 0
        result = await db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id.in_(ids), RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        revoked = result.rowcount or 0
        if revoked:
            logger.info(f"Revoked {revoked} refresh token(s) for {len(ids)} user(s)")
        return revoked

    async def revoke_all_for_user(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        return await self.revoke_all_for_users(db, [user_id])
