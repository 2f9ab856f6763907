# models.py: Flask-SQLAlchemy models
from datetime import datetime, timezone
from decimal import Decimal
import enum
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index, CheckConstraint, text
from werkzeug.security import check_password_hash, generate_password_hash
from extensions import db

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class Role(enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class AccountStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class KycStatus(enum.Enum):
    NOT_SUBMITTED = "NOT_SUBMITTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PlanStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class InvestmentStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEACTIVATED = "DEACTIVATED"


class RequestStatus(enum.Enum):
    """Lifecycle shared by withdrawals, fund requests and KYC documents"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TransactionType(enum.Enum):
    INVESTMENT = "INVESTMENT"
    WITHDRAWAL = "WITHDRAWAL"
    REFERRAL = "REFERRAL"
    ADD_FUNDS = "ADD_FUNDS"
    KYC = "KYC"


class TransactionStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PayoutStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WithdrawalMethod(enum.Enum):
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"


def _money(value):
    return float(value) if value is not None else 0.0


def _iso(value):
    return value.isoformat() if value else None


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=db.func.now(),
                           onupdate=db.func.now())

# ===========================================================
# USER MODELS
# ===========================================================

class User(UserMixin, db.Model, BaseMixin):
    """Account: identity, referral position, wallet and KYC status."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    mobile = db.Column(db.String(20), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value, index=True)
    status = db.Column(db.String(20), nullable=False, default=AccountStatus.ACTIVE.value)

    referral_code = db.Column(db.String(20), unique=True, nullable=False)  # User's own referral code
    referred_by = db.Column(db.String(20), nullable=True, index=True)  # Referral code of the referrer

    wallet_balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"),
                               server_default=text("0.00"))
    total_earnings = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"),
                               server_default=text("0.00"))
    kyc_status = db.Column(db.Enum(KycStatus), nullable=False, default=KycStatus.NOT_SUBMITTED)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    investments = db.relationship('Investment', back_populates='user', lazy='dynamic')
    withdrawals = db.relationship('Withdrawal', back_populates='user', lazy='dynamic',
                                  foreign_keys='Withdrawal.user_id')

    __table_args__ = (
        CheckConstraint('wallet_balance >= 0', name='chk_wallet_non_negative'),
        Index('idx_user_referral_code', 'referral_code'),
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        return self.status == AccountStatus.ACTIVE.value

    @property
    def is_admin(self):
        return self.role == Role.ADMIN.value

    def to_dict(self):
        return {
            "id": self.id,
            "fullName": self.full_name,
            "email": self.email,
            "mobile": self.mobile,
            "role": self.role,
            "status": self.status,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "walletBalance": _money(self.wallet_balance),
            "totalEarnings": _money(self.total_earnings),
            "kycStatus": self.kyc_status.value if self.kyc_status else None,
            "createdAt": _iso(self.created_at),
        }

# ===========================================================
# PLANS & INVESTMENTS
# ===========================================================

class InvestmentPlan(db.Model, BaseMixin):
    __tablename__ = 'investment_plans'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    daily_roi = db.Column(db.Numeric(18, 2), nullable=False)
    duration = db.Column(db.Integer, nullable=False)  # days
    status = db.Column(db.String(20), nullable=False, default=PlanStatus.ACTIVE.value)

    __table_args__ = (
        CheckConstraint('amount > 0', name='chk_plan_amount_positive'),
        CheckConstraint('duration > 0', name='chk_plan_duration_positive'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "amount": _money(self.amount),
            "dailyROI": _money(self.daily_roi),
            "duration": self.duration,
            "status": self.status,
        }


class Investment(db.Model, BaseMixin):
    """A purchase of a plan; terms are copied from the plan at creation."""
    __tablename__ = 'investments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('investment_plans.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    daily_roi = db.Column(db.Numeric(18, 2), nullable=False)
    total_days = db.Column(db.Integer, nullable=False)
    remaining_days = db.Column(db.Integer, nullable=False)
    total_earned = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    status = db.Column(db.String(20), nullable=False, default=InvestmentStatus.ACTIVE.value)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship('User', back_populates='investments')
    plan = db.relationship('InvestmentPlan')

    __table_args__ = (
        # at most one ACTIVE investment per (user, plan)
        Index('uq_investment_user_plan_active', 'user_id', 'plan_id', unique=True,
              sqlite_where=text("status = 'ACTIVE'"),
              postgresql_where=text("status = 'ACTIVE'")),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "planId": self.plan_id,
            "planName": self.plan.name if self.plan else None,
            "amount": _money(self.amount),
            "dailyROI": _money(self.daily_roi),
            "totalDays": self.total_days,
            "remainingDays": self.remaining_days,
            "totalEarned": _money(self.total_earned),
            "status": self.status,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
        }

# ===========================================================
# COMMISSIONS
# ===========================================================

class CommissionSetting(db.Model, BaseMixin):
    """Configurable commission percentage for each referral level"""
    __tablename__ = 'commission_settings'

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.Integer, nullable=False, unique=True)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)  # e.g. 10 for 10%
    description = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint('level >= 1 AND level <= 20', name='chk_level_range'),
        CheckConstraint('percentage > 0 AND percentage <= 100', name='chk_percentage_range'),
    )

    def to_dict(self):
        return {
            "level": self.level,
            "percentage": _money(self.percentage),
            "description": self.description,
            "isActive": self.is_active,
        }


class ReferralCommission(db.Model):
    """Immutable ledger entry: one commission paid to one ancestor."""
    __tablename__ = 'referral_commissions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)  # beneficiary
    from_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    investment_id = db.Column(db.Integer, db.ForeignKey('investments.id'), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=db.func.now())

    beneficiary = db.relationship('User', foreign_keys=[user_id])
    from_user = db.relationship('User', foreign_keys=[from_user_id])

    __table_args__ = (
        UniqueConstraint('investment_id', 'level', name='uq_commission_investment_level'),
        CheckConstraint('amount >= 0', name='chk_commission_amount'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "fromUserId": self.from_user_id,
            "fromUser": self.from_user.full_name if self.from_user else None,
            "investmentId": self.investment_id,
            "level": self.level,
            "percentage": _money(self.percentage),
            "amount": _money(self.amount),
            "createdAt": _iso(self.created_at),
        }


class CommissionPayout(db.Model, BaseMixin):
    """Outbox row: one commission cascade to run for one investment"""
    __tablename__ = 'commission_payouts'

    id = db.Column(db.Integer, primary_key=True)
    investment_id = db.Column(db.Integer, db.ForeignKey('investments.id'), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    referral_code = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PayoutStatus.PENDING.value)
    attempt_count = db.Column(db.Integer, nullable=False, default=0)
    levels_paid = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_payout_status', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "investmentId": self.investment_id,
            "userId": self.user_id,
            "referralCode": self.referral_code,
            "amount": _money(self.amount),
            "status": self.status,
            "attemptCount": self.attempt_count,
            "levelsPaid": self.levels_paid,
            "lastError": self.last_error,
            "processedAt": _iso(self.processed_at),
        }

# ===========================================================
# WITHDRAWALS, FUND REQUESTS & TRANSACTIONS
# ===========================================================

class Withdrawal(db.Model, BaseMixin):
    __tablename__ = 'withdrawals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    method = db.Column(db.String(20), nullable=False)
    details = db.Column(db.String(255), nullable=False)  # UPI id or bank account
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value)
    admin_remark = db.Column(db.String(255))
    processed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True))

    user = db.relationship('User', back_populates='withdrawals', foreign_keys=[user_id])

    __table_args__ = (
        # at most one PENDING withdrawal per user
        Index('uq_withdrawal_user_pending', 'user_id', unique=True,
              sqlite_where=text("status = 'PENDING'"),
              postgresql_where=text("status = 'PENDING'")),
        Index('idx_withdrawal_user_status', 'user_id', 'status'),
    )

    def to_dict(self, include_user=False):
        result = {
            "id": self.id,
            "amount": _money(self.amount),
            "method": self.method,
            "status": self.status,
            "adminRemark": self.admin_remark,
            "processedAt": _iso(self.processed_at),
            "createdAt": _iso(self.created_at),
        }
        if include_user and self.user:
            result["details"] = self.details
            result["user"] = {
                "id": self.user.id,
                "fullName": self.user.full_name,
                "email": self.user.email,
                "mobile": self.user.mobile,
                "kycStatus": self.user.kyc_status.value,
            }
        return result


class FundRequest(db.Model, BaseMixin):
    __tablename__ = 'fund_requests'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    method = db.Column(db.String(50), nullable=False)
    transaction_id = db.Column(db.String(120))  # payer-supplied UTR/reference
    screenshot = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value)
    admin_remark = db.Column(db.String(255))
    processed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True))

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "amount": _money(self.amount),
            "method": self.method,
            "transactionId": self.transaction_id,
            "status": self.status,
            "adminRemark": self.admin_remark,
            "processedAt": _iso(self.processed_at),
            "createdAt": _iso(self.created_at),
        }


class Transaction(db.Model, BaseMixin):
    """Append-only audit trail entry"""
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.PENDING.value)
    description = db.Column(db.String(255))
    reference_id = db.Column(db.String(64), index=True)
    meta = db.Column("metadata", db.JSON)

    __table_args__ = (
        Index('idx_transaction_reference_type', 'reference_id', 'type'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "amount": _money(self.amount),
            "status": self.status,
            "description": self.description,
            "referenceId": self.reference_id,
            "metadata": self.meta,
            "createdAt": _iso(self.created_at),
        }

# ===========================================================
# KYC & NOTIFICATIONS
# ===========================================================

class KycDocument(db.Model, BaseMixin):
    __tablename__ = 'kyc_documents'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    aadhar_number = db.Column(db.String(12), nullable=False)
    pan_number = db.Column(db.String(10), nullable=False)
    nominee_name = db.Column(db.String(150), nullable=False)
    nominee_relation = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value)
    admin_remark = db.Column(db.String(255))
    submitted_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    reviewed_at = db.Column(db.DateTime(timezone=True))
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self, include_user=False):
        result = {
            "id": self.id,
            "status": self.status,
            "aadharNumber": f"********{self.aadhar_number[-4:]}",
            "panNumber": self.pan_number,
            "nomineeName": self.nominee_name,
            "nomineeRelation": self.nominee_relation,
            "submittedAt": _iso(self.submitted_at),
            "reviewedAt": _iso(self.reviewed_at),
            "adminRemark": self.admin_remark,
        }
        if include_user and self.user:
            result["user"] = {"id": self.user.id, "fullName": self.user.full_name, "email": self.user.email}
        return result


class Notification(db.Model, BaseMixin):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(150), nullable=False)
    message = db.Column(db.Text, nullable=False)
    payload = db.Column(db.JSON)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "payload": self.payload,
            "isRead": self.is_read,
            "createdAt": _iso(self.created_at),
        }
