import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.models import Account, AccountMember
from goldfinger.core.exceptions import ForbiddenError


async def require_membership(
    db: AsyncSession, account_id: uuid.UUID, user_id: uuid.UUID
) -> AccountMember:
    result = await db.execute(
        select(AccountMember).where(
            AccountMember.account_id == account_id,
            AccountMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise ForbiddenError("You are not a member of this account.")
    return member


async def get_account_currency(
    db: AsyncSession, account_id: uuid.UUID, default: str
) -> str:
    result = await db.execute(select(Account.currency).where(Account.id == account_id))
    return result.scalar_one_or_none() or default
