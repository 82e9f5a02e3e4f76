"""
Local provisioning of identity-provider subjects.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.user import User
from festgate.core.config import get_settings
from festgate.core.logging import get_logger

logger = get_logger(__name__)


async def sync_user(db: AsyncSession, subject: str, email: str, name: str) -> User:
    """
    Return the local user for an identity-provider subject, creating it on
    first sight and refreshing email/name when the provider changed them.

    Two first requests racing on the same subject are resolved by the
    unique index: the loser re-reads the winner's row.
    """
    email = email.strip().lower()
    result = await db.execute(select(User).where(User.subject == subject))
    user = result.scalar_one_or_none()

    if user is None:
        settings = get_settings()
        admins = {e.strip().lower() for e in settings.ADMIN_EMAILS}
        try:
            async with db.begin_nested():
                user = User(
                    subject=subject,
                    email=email,
                    name=name or email,
                    role="admin" if email in admins else "user",
                )
                db.add(user)
            logger.info("user_provisioned", user_id=user.id, email=email, role=user.role)
            return user
        except IntegrityError:
            result = await db.execute(select(User).where(User.subject == subject))
            user = result.scalar_one()

    if user.email != email or (name and user.name != name):
        user.email = email
        user.name = name or user.name
        await db.flush()
        logger.info("user_profile_refreshed", user_id=user.id)

    return user
