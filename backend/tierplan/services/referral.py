"""Referral attribution, referrer lookup and referral statistics."""

import re
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tierplan.config import get_settings
from tierplan.logging_config import get_logger
from tierplan.models.referral import (
    REFERRAL_REWARDS,
    ReferralReward,
    RewardRecipient,
    RewardStatus,
)
from tierplan.models.user import User
from tierplan.services.ledger import to_money
from tierplan.services.referral_code import ReferralCodeService
from tierplan.utils.db import transaction
from tierplan.utils.errors import (
    ErrorCode,
    NotFoundError,
    UserNotFoundError,
    ValidationError,
)

logger = get_logger(__name__)

# Accepts canonical codes and the older UUID-style ones still stored on some users
_WELL_FORMED_CODE = re.compile(r"^[A-Z0-9-]{1,64}$")

RECENT_LIMIT = 50


def normalize_referral_code(code: str | None) -> str | None:
    """Trim and uppercase a user-supplied code; empty means no code."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def is_well_formed_code(code: str) -> bool:
    return _WELL_FORMED_CODE.match(code) is not None


class ReferralService:
    """Referral attribution and statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def attribute(self, new_user_id: str, supplied_code: str | None) -> str | None:
        """Bind a newly registered user to the owner of ``supplied_code``.

        Unknown, malformed or self-owned codes are logged and ignored. A user
        who already has a referrer keeps it.

        Args:
            new_user_id: The user who just registered
            supplied_code: Code typed at registration (any case)

        Returns:
            Referrer's user id, or None if nothing was attributed

        Raises:
            UserNotFoundError: If the new user does not exist
        """
        code = normalize_referral_code(supplied_code)
        if code is None:
            return None
        if not is_well_formed_code(code):
            logger.info("referral_code_malformed", user_id=new_user_id, code=code[:64])
            return None

        async with transaction(self.db):
            exists = await self.db.scalar(select(User.id).where(User.id == new_user_id))
            if exists is None:
                raise UserNotFoundError(new_user_id)

            referrer_id = await self.db.scalar(
                select(User.id).where(
                    func.upper(User.referral_code) == code,
                    User.id != new_user_id,
                )
            )
            if referrer_id is None:
                logger.info("referrer_not_found", user_id=new_user_id, code=code)
                return None

            result = await self.db.execute(
                update(User)
                .where(User.id == new_user_id, User.referred_by_id.is_(None))
                .values(referred_by_id=referrer_id, referred_by_code=code)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info("referral_already_attributed", user_id=new_user_id)
                return None

            await self.db.execute(
                update(User)
                .where(User.id == referrer_id)
                .values(referral_count=User.referral_count + 1)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "referral_attributed",
            user_id=new_user_id,
            referrer_id=referrer_id,
            code=code,
        )
        return referrer_id

    async def get_referrer_by_code(self, code: str) -> User:
        """Look up the owner of a code (public lookup).

        Raises:
            ValidationError: If the code is empty or malformed
            NotFoundError: If no user owns the code
        """
        normalized = normalize_referral_code(code)
        if normalized is None or not is_well_formed_code(normalized):
            raise ValidationError(
                code=ErrorCode.REFERRAL_CODE_MALFORMED,
                message="Referral code is malformed",
                details={"code": (code or "")[:64]},
            )

        referrer = await self.db.scalar(
            select(User).where(func.upper(User.referral_code) == normalized)
        )
        if referrer is None:
            raise NotFoundError(
                code=ErrorCode.REFERRAL_CODE_NOT_FOUND,
                message="Invalid referral code",
                details={"code": normalized},
            )
        return referrer

    async def get_referral_stats(self, user_id: str) -> dict[str, Any]:
        """Referral dashboard data for one user."""
        settings = get_settings()

        # Generate the code first; it commits on its own
        code = await ReferralCodeService(self.db).get_or_create_code(user_id)

        user = await self.db.get(User, user_id, populate_existing=True)
        if user is None:
            raise UserNotFoundError(user_id)

        as_referrer = (
            ReferralReward.referrer_id == user_id,
            ReferralReward.recipient_role == RewardRecipient.REFERRER.value,
        )

        total_referrals = await self.db.scalar(
            select(func.count(User.id)).where(User.referred_by_id == user_id)
        ) or 0

        total_earnings = await self.db.scalar(
            select(func.coalesce(func.sum(ReferralReward.amount), 0)).where(
                *as_referrer,
                ReferralReward.status == RewardStatus.PAID.value,
            )
        )

        pending_rewards = await self.db.scalar(
            select(func.count(ReferralReward.id)).where(
                *as_referrer,
                ReferralReward.status == RewardStatus.PENDING.value,
            )
        ) or 0

        result = await self.db.execute(
            select(ReferralReward, User.name)
            .join(User, User.id == ReferralReward.referred_user_id)
            .where(*as_referrer)
            .order_by(ReferralReward.created_at.desc())
            .limit(RECENT_LIMIT)
        )
        rewards = [
            {
                "id": reward.id,
                "referred_user_id": reward.referred_user_id,
                "referred_user_name": name,
                "amount": to_money(reward.amount),
                "plan_amount": reward.plan_amount,
                "plan_type": reward.plan_type,
                "status": reward.status,
                "created_at": reward.created_at,
                "paid_at": reward.paid_at,
            }
            for reward, name in result.all()
        ]

        result = await self.db.execute(
            select(User)
            .where(User.referred_by_id == user_id)
            .order_by(User.created_at.desc())
            .limit(RECENT_LIMIT)
        )
        referred_users = [
            {"id": u.id, "name": u.name, "joined_at": u.created_at}
            for u in result.scalars().all()
        ]

        referred_by = None
        if user.referred_by_id:
            referrer = await self.db.get(User, user.referred_by_id)
            if referrer is not None:
                referred_by = {
                    "id": referrer.id,
                    "name": referrer.name,
                    "code": user.referred_by_code,
                }

        return {
            "referral_code": code,
            "referral_link": f"{settings.app_base_url.rstrip('/')}/register?ref={code}",
            "total_referrals": int(total_referrals),
            "total_earnings": to_money(total_earnings),
            "pending_rewards": int(pending_rewards),
            "reward_table": {str(tier): amount for tier, amount in REFERRAL_REWARDS.items()},
            "rewards": rewards,
            "referred_users": referred_users,
            "referred_by": referred_by,
        }
