# investment_helpers.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Tuple, Optional, Dict, Any
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from commission.cascade import CommissionPayoutProcessor
from errors import ConflictError, InsufficientBalanceError, NotFoundError, PlanInactiveError, ValidationError
from extensions import db
from models import (
    Investment, InvestmentPlan, InvestmentStatus, PlanStatus, TransactionStatus,
    TransactionType,
)
from notifications import NotificationEvent, notify
from utils import parse_amount, require_fields, to_money
from wallet import WalletManager

logger = logging.getLogger(__name__)


class PlanValidator:
    @staticmethod
    def validate_plan_payload(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Parse admin plan input; with partial=True only supplied fields are checked"""
        if not partial:
            require_fields(data, "name", "amount", "dailyROI", "duration")

        errors = {}
        values = {}

        if "name" in data:
            name = data.get("name")
            if not isinstance(name, str) or not name.strip() or len(name.strip()) > 100:
                errors["name"] = "Must be a non-empty string of at most 100 characters"
            else:
                values["name"] = name.strip()

        for field, column in (("amount", "amount"), ("dailyROI", "daily_roi")):
            if field in data:
                try:
                    values[column] = parse_amount(data.get(field), field=field)
                except ValidationError as e:
                    errors.update(e.fields)

        if "duration" in data:
            duration = data.get("duration")
            try:
                duration = int(duration)
                if duration <= 0:
                    raise ValueError
                values["duration"] = duration
            except (TypeError, ValueError):
                errors["duration"] = "Must be a positive whole number of days"

        if "status" in data:
            if data.get("status") not in {s.value for s in PlanStatus}:
                errors["status"] = "Must be ACTIVE or INACTIVE"
            else:
                values["status"] = data["status"]

        if "description" in data:
            values["description"] = data.get("description")

        if errors:
            raise ValidationError(errors)
        return values


class InvestmentProcessor:
    @staticmethod
    def has_active_investment(session, user_id: int, plan_id: int) -> bool:
        return session.query(Investment.id).filter(
            Investment.user_id == user_id,
            Investment.plan_id == plan_id,
            Investment.status == InvestmentStatus.ACTIVE.value,
        ).first() is not None

    @staticmethod
    def create_investment(user_id: int, plan_id: int, session=None) -> Tuple[Investment, Optional[int]]:
        """
        Debit the wallet and create the investment in one transaction, then
        run the referral commission cascade as a separate best-effort step.
        Returns (investment, commission payout id or None).
        """
        session = session or db.session

        plan = session.get(InvestmentPlan, plan_id)
        if not plan:
            raise NotFoundError("Investment plan not found")
        if plan.status != PlanStatus.ACTIVE.value:
            raise PlanInactiveError("Investment plan is not active")

        user = WalletManager.lock_user(session, user_id)
        amount = to_money(plan.amount)

        if to_money(user.wallet_balance) < amount:
            raise InsufficientBalanceError(
                "Insufficient wallet balance. Please add funds to your wallet.",
                {"walletBalance": float(user.wallet_balance), "required": float(amount)}
            )

        if InvestmentProcessor.has_active_investment(session, user_id, plan.id):
            raise ConflictError("You already have an active investment in this plan")

        start_date = datetime.now(timezone.utc)
        try:
            investment = Investment(
                user_id=user_id,
                plan_id=plan.id,
                amount=amount,
                daily_roi=plan.daily_roi,
                total_days=plan.duration,
                remaining_days=plan.duration,
                total_earned=Decimal("0.00"),
                status=InvestmentStatus.ACTIVE.value,
                start_date=start_date,
                end_date=start_date + timedelta(days=plan.duration),
            )
            session.add(investment)
            session.flush()

            WalletManager.debit(session, user_id, amount)
            WalletManager.record_transaction(
                session, user_id,
                TransactionType.INVESTMENT.value, amount,
                TransactionStatus.COMPLETED.value,
                description=f"Investment in {plan.name}",
                reference_id=investment.id,
                meta={"planId": plan.id, "planName": plan.name,
                      "dailyROI": float(plan.daily_roi), "duration": plan.duration},
            )
            payout = CommissionPayoutProcessor.enqueue(session, investment, user)
            session.commit()
        except IntegrityError:
            # partial unique index on (user_id, plan_id) WHERE status = 'ACTIVE'
            session.rollback()
            raise ConflictError("You already have an active investment in this plan")

        payout_id = payout.id if payout else None
        investment_id = investment.id
        logger.info(f"Investment {investment_id} created: user {user_id}, plan {plan.id}, amount {amount}")

        if payout_id and current_app.config.get("PROCESS_COMMISSIONS_INLINE", True):
            CommissionPayoutProcessor.process(payout_id, session=session)

        notify(user_id, NotificationEvent.INVESTMENT_CREATED, {
            "title": "Investment created",
            "message": f"Your investment of ₹{amount} in {plan.name} is now active.",
            "investmentId": investment_id,
            "amount": float(amount),
        })
        return session.get(Investment, investment_id), payout_id
