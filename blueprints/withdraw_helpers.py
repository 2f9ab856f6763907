from decimal import Decimal
from datetime import datetime, timezone
import logging
from typing import Tuple, Dict, Optional, Any

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from errors import (
    ConflictError, InsufficientBalanceError, KycRequiredError, NotFoundError,
    PendingWithdrawalError, ValidationError,
)
from extensions import db
from logger import withdrawal_logger
from models import (
    KycStatus, RequestStatus, TransactionStatus, TransactionType, User,
    Withdrawal, WithdrawalMethod,
)
from notifications import NotificationEvent, notify
from utils import parse_amount, require_fields, to_money
from wallet import WalletManager

logger = logging.getLogger(__name__)

# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalConfig:
    DEFAULT_KYC_LIMIT = Decimal("500")
    DEFAULT_MIN_WITHDRAWAL = Decimal("100")

    @staticmethod
    def kyc_limit() -> Decimal:
        return Decimal(str(current_app.config.get("KYC_WITHDRAWAL_LIMIT", WithdrawalConfig.DEFAULT_KYC_LIMIT)))

    @staticmethod
    def min_withdrawal() -> Decimal:
        return Decimal(str(current_app.config.get("MIN_WITHDRAWAL_AMOUNT", WithdrawalConfig.DEFAULT_MIN_WITHDRAWAL)))

# ==========================================================
#                  KYC GATE
# ==========================================================
class KycCheckResult:
    def __init__(self, can_withdraw: bool, requires_kyc: bool, current_total: Decimal,
                 limit: Decimal, message: Optional[str] = None):
        self.can_withdraw = can_withdraw
        self.requires_kyc = requires_kyc
        self.current_total = current_total
        self.limit = limit
        self.message = message

    @property
    def remaining(self) -> Decimal:
        return max(self.limit - self.current_total, Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canWithdraw": self.can_withdraw,
            "requiresKYC": self.requires_kyc,
            "currentTotal": float(self.current_total),
            "limit": float(self.limit),
            "message": self.message,
        }


class KycGate:
    """Cumulative-withdrawal threshold above which KYC approval is mandatory"""

    @staticmethod
    def approved_total(session, user_id: int) -> Decimal:
        total = session.query(func.coalesce(func.sum(Withdrawal.amount), 0)).filter(
            Withdrawal.user_id == user_id,
            Withdrawal.status == RequestStatus.APPROVED.value,
        ).scalar()
        return to_money(total or 0)

    @staticmethod
    def check_withdrawal_eligibility(user_id: int, requested_amount: Decimal, session=None) -> KycCheckResult:
        """
        Fails closed: any lookup problem yields can_withdraw=False.
        """
        session = session or db.session
        limit = WithdrawalConfig.kyc_limit()
        try:
            user = session.get(User, user_id)
            if not user:
                return KycCheckResult(False, False, Decimal("0"), limit, "User not found")

            if user.kyc_status == KycStatus.APPROVED:
                return KycCheckResult(True, False, Decimal("0"), limit, "KYC verified - No withdrawal limits")

            current_total = KycGate.approved_total(session, user_id)
            new_total = current_total + to_money(requested_amount)

            if new_total > limit:
                return KycCheckResult(
                    False, True, current_total, limit,
                    f"As per RBI guidelines, KYC is mandatory for cumulative withdrawals exceeding ₹{limit}. "
                    f"Your current total is ₹{current_total} and this withdrawal would make it ₹{new_total}. "
                    f"Please complete your KYC verification."
                )

            return KycCheckResult(
                True, False, current_total, limit,
                f"You can withdraw ₹{limit - current_total} more before KYC is required."
            )

        except Exception as e:
            logger.error(f"KYC check error for user {user_id}: {e}")
            return KycCheckResult(False, False, Decimal("0"), limit, "Failed to verify KYC status")

    @staticmethod
    def get_status_summary(user: User, session=None) -> Dict[str, Any]:
        session = session or db.session
        limit = WithdrawalConfig.kyc_limit()
        total = KycGate.approved_total(session, user.id)
        remaining = max(limit - total, Decimal("0"))

        if user.kyc_status == KycStatus.APPROVED:
            message = "KYC verified - No withdrawal limits"
        elif total >= limit:
            message = f"KYC required - You've reached the ₹{limit} withdrawal limit"
        else:
            message = f"You can withdraw ₹{remaining:.2f} more before KYC is required"

        return {
            "status": user.kyc_status.value,
            "currentTotal": float(total),
            "limit": float(limit),
            "remainingLimit": float(remaining),
            "needsKYC": total >= limit or user.kyc_status != KycStatus.APPROVED,
            "message": message,
        }

# ==========================================================
#                  WITHDRAWAL VALIDATOR
# ==========================================================
class WithdrawalValidator:
    @staticmethod
    def validate_withdrawal_request(data: Dict[str, Any]) -> Tuple[Decimal, str, str]:
        """Return (amount, method, details) or raise a field-level ValidationError"""
        require_fields(data, "amount", "method", "details")

        errors = {}
        amount = None
        try:
            amount = parse_amount(data.get("amount"), minimum=WithdrawalConfig.min_withdrawal())
        except ValidationError as e:
            errors.update(e.fields)

        method = data.get("method")
        if method not in {m.value for m in WithdrawalMethod}:
            errors["method"] = "Must be one of UPI, BANK_TRANSFER"

        details = data.get("details")
        if not isinstance(details, str) or len(details.strip()) > 255:
            errors["details"] = "Payment details must be a string of at most 255 characters"

        if errors:
            raise ValidationError(errors)
        return amount, method, details.strip()

# ==========================================================
#                  MAIN WITHDRAWAL PROCESSOR
# ==========================================================
class WithdrawalProcessor:
    """
    Submission only holds funds; the wallet is debited when an admin approves.
    """

    @staticmethod
    def has_pending(session, user_id: int) -> bool:
        return session.query(Withdrawal.id).filter(
            Withdrawal.user_id == user_id,
            Withdrawal.status == RequestStatus.PENDING.value,
        ).first() is not None

    @staticmethod
    def submit(user_id: int, amount: Decimal, method: str, details: str,
               session=None) -> Tuple[Withdrawal, KycCheckResult]:
        session = session or db.session

        # Lock the account row so concurrent submissions serialize here
        user = WalletManager.lock_user(session, user_id)

        # Step 1: balance check
        if to_money(user.wallet_balance) < amount:
            raise InsufficientBalanceError("Insufficient balance", {
                "walletBalance": float(user.wallet_balance),
                "requested": float(amount),
            })

        # Step 2: KYC gate
        kyc_check = KycGate.check_withdrawal_eligibility(user_id, amount, session=session)
        if not kyc_check.can_withdraw:
            withdrawal_logger.info(f"[KYC] User {user_id} denied withdrawal of {amount}: {kyc_check.message}")
            raise KycRequiredError("KYC verification required", {
                "message": kyc_check.message,
                "requiresKYC": kyc_check.requires_kyc,
                "currentTotal": float(kyc_check.current_total),
                "limit": float(kyc_check.limit),
            })

        # Step 3: one outstanding request per account
        if WithdrawalProcessor.has_pending(session, user_id):
            raise PendingWithdrawalError("You already have a pending withdrawal request")

        # Step 4: create the request and its PENDING audit entry
        try:
            withdrawal = Withdrawal(
                user_id=user_id,
                amount=amount,
                method=method,
                details=details,
                status=RequestStatus.PENDING.value,
            )
            session.add(withdrawal)
            session.flush()

            WalletManager.record_transaction(
                session, user_id,
                TransactionType.WITHDRAWAL.value, amount,
                TransactionStatus.PENDING.value,
                description=f"Withdrawal request - {method}",
                reference_id=withdrawal.id,
                meta={"method": method, "details": details, "kycCheck": kyc_check.to_dict()},
            )
            session.commit()
        except IntegrityError:
            # partial unique index on (user_id) WHERE status = 'PENDING'
            session.rollback()
            raise PendingWithdrawalError("You already have a pending withdrawal request")

        withdrawal_logger.info(f"[SUBMIT] User {user_id} requested {amount} via {method} - ID: {withdrawal.id}")
        notify(user_id, NotificationEvent.WITHDRAWAL_SUBMITTED, {
            "title": "Withdrawal requested",
            "message": f"Your withdrawal request of ₹{amount} is pending review.",
            "withdrawalId": withdrawal.id,
            "amount": float(amount),
        })
        return withdrawal, kyc_check

    @staticmethod
    def _load_pending(session, withdrawal_id: int) -> Withdrawal:
        withdrawal = session.query(Withdrawal).filter(
            Withdrawal.id == withdrawal_id
        ).with_for_update().first()
        if not withdrawal:
            raise NotFoundError("Withdrawal request not found")
        if withdrawal.status != RequestStatus.PENDING.value:
            raise ConflictError("Withdrawal already processed", {"status": withdrawal.status})
        return withdrawal

    @staticmethod
    def approve(withdrawal_id: int, admin_id: int, admin_remark: Optional[str] = None,
                session=None) -> Withdrawal:
        session = session or db.session
        withdrawal = WithdrawalProcessor._load_pending(session, withdrawal_id)

        # Balance may have changed since submission; debit is conditional
        try:
            WalletManager.debit(session, withdrawal.user_id, withdrawal.amount)
        except InsufficientBalanceError:
            session.rollback()
            raise InsufficientBalanceError("User has insufficient balance for this withdrawal")

        WalletManager.finalize_transactions(
            session, withdrawal.user_id, TransactionType.WITHDRAWAL.value,
            withdrawal.id, TransactionStatus.COMPLETED.value
        )
        withdrawal.status = RequestStatus.APPROVED.value
        withdrawal.admin_remark = admin_remark
        withdrawal.processed_by = admin_id
        withdrawal.processed_at = datetime.now(timezone.utc)
        session.commit()

        withdrawal_logger.info(f"[APPROVED] Withdrawal {withdrawal.id} of {withdrawal.amount} by admin {admin_id}")
        notify(withdrawal.user_id, NotificationEvent.WITHDRAWAL_APPROVED, {
            "title": "Withdrawal approved",
            "message": f"Your withdrawal of ₹{withdrawal.amount} has been approved.",
            "withdrawalId": withdrawal.id,
            "amount": float(withdrawal.amount),
        })
        return withdrawal

    @staticmethod
    def reject(withdrawal_id: int, admin_id: int, admin_remark: Optional[str] = None,
               session=None) -> Withdrawal:
        session = session or db.session
        withdrawal = WithdrawalProcessor._load_pending(session, withdrawal_id)

        WalletManager.finalize_transactions(
            session, withdrawal.user_id, TransactionType.WITHDRAWAL.value,
            withdrawal.id, TransactionStatus.FAILED.value
        )
        withdrawal.status = RequestStatus.REJECTED.value
        withdrawal.admin_remark = admin_remark
        withdrawal.processed_by = admin_id
        withdrawal.processed_at = datetime.now(timezone.utc)
        session.commit()

        withdrawal_logger.warning(f"[REJECTED] Withdrawal {withdrawal.id} by admin {admin_id}: {admin_remark}")
        notify(withdrawal.user_id, NotificationEvent.WITHDRAWAL_REJECTED, {
            "title": "Withdrawal rejected",
            "message": f"Your withdrawal of ₹{withdrawal.amount} was rejected. {admin_remark or ''}".strip(),
            "withdrawalId": withdrawal.id,
            "amount": float(withdrawal.amount),
        })
        return withdrawal

# ==========================================================
#                  QUERY HELPERS
# ==========================================================
class WithdrawalQueryHelper:
    @staticmethod
    def get_user_withdrawals(user_id: int, limit: int = 50):
        return Withdrawal.query.filter_by(user_id=user_id)\
                              .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())\
                              .limit(limit)\
                              .all()

    @staticmethod
    def get_withdrawals_by_status(status: str, page: int, limit: int):
        query = Withdrawal.query.filter_by(status=status)
        total = query.count()
        items = query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())\
                     .offset((page - 1) * limit)\
                     .limit(limit)\
                     .all()
        return items, total
