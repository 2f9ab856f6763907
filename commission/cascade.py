# commission/cascade.py - multi-level referral commission distribution
from collections import namedtuple
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Callable, Dict, Any

from extensions import db
from logger import commission_logger as logger
from models import (
    CommissionPayout, Investment, PayoutStatus, ReferralCommission,
    TransactionStatus, TransactionType, User,
)
from notifications import NotificationEvent, notify
from utils import to_money
from wallet import WalletManager
from commission.config import CommissionConfigHelper
from commission.referral_chain import ReferralChainHelper

CascadeResult = namedtuple("CascadeResult", ["entries", "error"])


class CommissionCascade:

    @staticmethod
    def calculate(principal: Decimal, percentage: Decimal) -> Decimal:
        return to_money(Decimal(str(principal)) * percentage / Decimal("100"))

    @staticmethod
    def walk(session, investing_user_id: int, referral_code: str,
             principal: Decimal, investment_id: int) -> List[ReferralCommission]:
        """
        Credit every ancestor of the investor, level 1 being the owner of
        `referral_code`. Writes go to `session`; the caller commits. Raises on
        any storage error.
        """
        levels = CommissionConfigHelper.get_active_levels(session)
        if not levels:
            logger.info(f"No active commission levels, skipping investment {investment_id}")
            return []

        entries = []
        for level, referrer in ReferralChainHelper.iter_upline(
                session, referral_code, len(levels), exclude_user_id=investing_user_id):
            percentage = levels[level - 1].percentage
            amount = CommissionCascade.calculate(principal, percentage)

            entry = ReferralCommission(
                user_id=referrer.id,
                from_user_id=investing_user_id,
                investment_id=investment_id,
                level=level,
                percentage=percentage,
                amount=amount,
            )
            session.add(entry)

            WalletManager.credit(session, referrer.id, amount, count_as_earnings=True)
            WalletManager.record_transaction(
                session, referrer.id,
                TransactionType.REFERRAL.value, amount,
                TransactionStatus.COMPLETED.value,
                description=f"Level {level} referral commission",
                reference_id=investment_id,
                meta={"fromUserId": investing_user_id, "level": level, "percentage": float(percentage)},
            )
            entries.append(entry)

        session.flush()
        logger.info(
            f"Commission cascade for investment {investment_id}: "
            f"{len(entries)} of {len(levels)} levels paid"
        )
        return entries


def distribute_commissions(investing_user_id: int, immediate_referral_code: Optional[str],
                           principal_amount: Decimal, investment_id: int, session=None,
                           before_commit: Optional[Callable[[List[ReferralCommission]], None]] = None
                           ) -> CascadeResult:
    """
    Best-effort cascade. Must run after the investment has been committed.
    All levels are written in one transaction; on failure everything is rolled
    back, the error is logged and returned, and nothing is raised.
    """
    session = session or db.session
    try:
        entries = CommissionCascade.walk(
            session, investing_user_id, immediate_referral_code, principal_amount, investment_id
        )
        if before_commit:
            before_commit(entries)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Commission distribution failed for investment {investment_id}: {e}", exc_info=True)
        return CascadeResult([], str(e) or e.__class__.__name__)

    for entry in entries:
        notify(entry.user_id, NotificationEvent.COMMISSION_CREDITED, {
            "title": "Referral commission received",
            "message": f"You earned {entry.amount} as a level {entry.level} referral commission.",
            "amount": float(entry.amount),
            "level": entry.level,
            "investmentId": investment_id,
        })
    return CascadeResult(entries, None)


class CommissionPayoutProcessor:
    """Outbox processing: one CommissionPayout row per referred investment"""

    @staticmethod
    def enqueue(session, investment: Investment, investor: User) -> Optional[CommissionPayout]:
        """Called inside the investment transaction"""
        if not investor.referred_by:
            return None
        payout = CommissionPayout(
            investment_id=investment.id,
            user_id=investor.id,
            referral_code=investor.referred_by,
            amount=investment.amount,
            status=PayoutStatus.PENDING.value,
        )
        session.add(payout)
        return payout

    @staticmethod
    def process(payout_id: int, session=None) -> bool:
        """Run the cascade for one payout. Never raises; returns success."""
        session = session or db.session
        try:
            payout = session.query(CommissionPayout).filter(
                CommissionPayout.id == payout_id
            ).with_for_update().first()
            if payout is None:
                logger.warning(f"Commission payout {payout_id} not found")
                return False
            if payout.status == PayoutStatus.COMPLETED.value:
                session.rollback()
                return True

            user_id, code, amount, investment_id = (
                payout.user_id, payout.referral_code, payout.amount, payout.investment_id
            )
        except Exception as e:
            # payout stays PENDING for retry_failed
            session.rollback()
            logger.error(f"Could not load commission payout {payout_id}: {e}", exc_info=True)
            return False

        def mark_completed(entries):
            payout.status = PayoutStatus.COMPLETED.value
            payout.attempt_count = (payout.attempt_count or 0) + 1
            payout.levels_paid = len(entries)
            payout.last_error = None
            payout.processed_at = datetime.now(timezone.utc)

        result = distribute_commissions(user_id, code, amount, investment_id,
                                        session=session, before_commit=mark_completed)
        if result.error is None:
            return True

        CommissionPayoutProcessor._record_failure(session, payout_id, result.error)
        return False

    @staticmethod
    def _record_failure(session, payout_id: int, error: str) -> None:
        try:
            payout = session.get(CommissionPayout, payout_id)
            payout.status = PayoutStatus.FAILED.value
            payout.attempt_count = (payout.attempt_count or 0) + 1
            payout.last_error = error[:1000]
            session.commit()
            logger.warning(f"Commission payout {payout_id} marked FAILED for reconciliation: {error}")
        except Exception as e:
            session.rollback()
            logger.critical(f"CRITICAL: could not record failure of commission payout {payout_id}: {e}")

    @staticmethod
    def retry_failed(session=None, limit: int = 100) -> Dict[str, Any]:
        """Re-run PENDING and FAILED payouts, oldest first"""
        session = session or db.session
        ids = [row.id for row in session.query(CommissionPayout.id).filter(
            CommissionPayout.status.in_([PayoutStatus.PENDING.value, PayoutStatus.FAILED.value])
        ).order_by(CommissionPayout.id.asc()).limit(limit).all()]
        session.rollback()

        stats = {"processed": 0, "succeeded": 0, "failed": 0}
        for payout_id in ids:
            stats["processed"] += 1
            if CommissionPayoutProcessor.process(payout_id, session=session):
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1

        logger.info(f"Commission payout retry: {stats}")
        return stats
