#======================================================================================
#
# THIS IS ADMIN API
#
#=======================================================================================
from functools import wraps
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import IntegrityError

from blueprints.fund_helpers import FundRequestProcessor
from blueprints.investment_helpers import PlanValidator
from blueprints.kyc_helpers import KycProcessor
from blueprints.withdraw_helpers import WithdrawalProcessor, WithdrawalQueryHelper
from commission.cascade import CommissionPayoutProcessor
from commission.config import CommissionConfigHelper
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from extensions import db, login_manager
from logger import app_logger
from models import (
    CommissionPayout, CommissionSetting, FundRequest, InvestmentPlan, KycDocument,
    PayoutStatus, RequestStatus,
)
from utils import page_args, require_json

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = ("APPROVE", "REJECT")


def admin_required(f):
    """
    Decorator to restrict access to admin-only routes.
    - 401 when nobody is logged in.
    - 403 when the logged-in account is not an admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_admin:
            raise ForbiddenError("Admin access required")
        return f(*args, **kwargs)

    return decorated_function


def _status_arg(default=RequestStatus.PENDING.value, allowed=None):
    allowed = allowed or {s.value for s in RequestStatus}
    status = request.args.get("status", default).upper()
    if status not in allowed:
        raise ValidationError({"status": f"Must be one of {', '.join(sorted(allowed))}"})
    return status


def _review_action(data):
    action = str(data.get("action") or "").upper()
    if action not in REVIEW_ACTIONS:
        raise ValidationError({"action": "Must be APPROVE or REJECT"})
    return action


def _paginated(key, items, page, limit, total, **kwargs):
    return {
        key: [item.to_dict(**kwargs) for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


admin_bp = Blueprint('admin', __name__, url_prefix='/api')


#============================================================================================================
#     INVESTMENT PLANS
#============================================================================================================
@admin_bp.route("/plans", methods=["POST"])
@admin_required
def create_plan():
    data = require_json(request)
    values = PlanValidator.validate_plan_payload(data)

    plan = InvestmentPlan(**values)
    try:
        db.session.add(plan)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A plan with this name already exists")

    app_logger.info(f"Admin {current_user.id} created plan {plan.id} ({plan.name})")
    return jsonify({"message": "Plan created successfully", "plan": plan.to_dict()}), 201


@admin_bp.route("/admin/plans/<int:plan_id>", methods=["PUT"])
@admin_required
def update_plan(plan_id):
    plan = db.session.get(InvestmentPlan, plan_id)
    if not plan:
        raise NotFoundError("Investment plan not found")

    values = PlanValidator.validate_plan_payload(require_json(request), partial=True)
    for column, value in values.items():
        setattr(plan, column, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A plan with this name already exists")

    app_logger.info(f"Admin {current_user.id} updated plan {plan.id}: {sorted(values)}")
    return jsonify({"message": "Plan updated successfully", "plan": plan.to_dict()}), 200


#============================================================================================================
#     WITHDRAWALS
#============================================================================================================
@admin_bp.route("/admin/withdrawals", methods=["GET"])
@admin_required
def list_withdrawals():
    status = _status_arg()
    page, limit = page_args(request.args)
    items, total = WithdrawalQueryHelper.get_withdrawals_by_status(status, page, limit)
    return jsonify(_paginated("withdrawals", items, page, limit, total, include_user=True)), 200


@admin_bp.route("/admin/withdrawals", methods=["POST"])
@admin_required
def process_withdrawal():
    data = require_json(request)
    withdrawal_id = data.get("withdrawalId")
    if not isinstance(withdrawal_id, int) or isinstance(withdrawal_id, bool):
        raise ValidationError({"withdrawalId": "Withdrawal ID is required"})
    action = _review_action(data)
    remark = data.get("adminRemark")

    if action == "APPROVE":
        withdrawal = WithdrawalProcessor.approve(withdrawal_id, current_user.id, remark)
    else:
        withdrawal = WithdrawalProcessor.reject(withdrawal_id, current_user.id, remark)

    return jsonify({
        "message": f"Withdrawal {withdrawal.status.lower()} successfully",
        "withdrawal": withdrawal.to_dict(include_user=True),
    }), 200


#============================================================================================================
#     FUND REQUESTS
#============================================================================================================
@admin_bp.route("/admin/fund-requests", methods=["GET"])
@admin_required
def list_fund_requests():
    status = _status_arg()
    page, limit = page_args(request.args)
    query = FundRequest.query.filter_by(status=status)
    total = query.count()
    items = query.order_by(FundRequest.created_at.desc(), FundRequest.id.desc())\
                 .offset((page - 1) * limit)\
                 .limit(limit)\
                 .all()
    return jsonify(_paginated("fundRequests", items, page, limit, total)), 200


@admin_bp.route("/admin/fund-requests", methods=["POST"])
@admin_required
def process_fund_request():
    data = require_json(request)
    fund_request_id = data.get("fundRequestId")
    if not isinstance(fund_request_id, int) or isinstance(fund_request_id, bool):
        raise ValidationError({"fundRequestId": "Fund request ID is required"})
    action = _review_action(data)

    fund_request = FundRequestProcessor.review(
        fund_request_id, action, current_user.id, data.get("adminRemark")
    )
    return jsonify({
        "message": f"Fund request {fund_request.status.lower()} successfully",
        "fundRequest": fund_request.to_dict(),
    }), 200


#============================================================================================================
#     KYC
#============================================================================================================
@admin_bp.route("/admin/kyc", methods=["GET"])
@admin_required
def list_kyc_applications():
    status = _status_arg()
    page, limit = page_args(request.args)
    query = KycDocument.query.filter_by(status=status)
    total = query.count()
    items = query.order_by(KycDocument.submitted_at.asc(), KycDocument.id.asc())\
                 .offset((page - 1) * limit)\
                 .limit(limit)\
                 .all()
    return jsonify(_paginated("applications", items, page, limit, total, include_user=True)), 200


@admin_bp.route("/admin/kyc/<int:document_id>/review", methods=["POST"])
@admin_required
def review_kyc(document_id):
    data = require_json(request)
    document = KycProcessor.review(
        document_id, str(data.get("status") or "").upper(), data.get("adminRemark"), current_user.id
    )
    return jsonify({
        "message": f"KYC application {document.status.lower()} successfully",
        "application": document.to_dict(include_user=True),
    }), 200


#============================================================================================================
#     COMMISSION SETTINGS & PAYOUTS
#============================================================================================================
@admin_bp.route("/admin/commissions", methods=["GET"])
@admin_required
def get_commission_settings():
    settings = CommissionSetting.query.order_by(CommissionSetting.level.asc()).all()
    return jsonify({
        "settings": [s.to_dict() for s in settings],
        "summary": CommissionConfigHelper.get_distribution_summary(db.session),
    }), 200


@admin_bp.route("/admin/commissions", methods=["PUT"])
@admin_required
def update_commission_settings():
    data = require_json(request)
    settings = CommissionConfigHelper.replace_levels(db.session, data.get("levels"))
    db.session.commit()

    app_logger.info(f"Admin {current_user.id} updated commission levels")
    return jsonify({
        "message": "Commission settings updated successfully",
        "settings": [s.to_dict() for s in settings],
        "summary": CommissionConfigHelper.get_distribution_summary(db.session),
    }), 200


@admin_bp.route("/admin/commission-payouts", methods=["GET"])
@admin_required
def list_commission_payouts():
    status = _status_arg(default=PayoutStatus.FAILED.value, allowed={s.value for s in PayoutStatus})
    page, limit = page_args(request.args)
    query = CommissionPayout.query.filter_by(status=status)
    total = query.count()
    items = query.order_by(CommissionPayout.id.asc())\
                 .offset((page - 1) * limit)\
                 .limit(limit)\
                 .all()
    return jsonify(_paginated("payouts", items, page, limit, total)), 200


@admin_bp.route("/admin/commission-payouts/<int:payout_id>/retry", methods=["POST"])
@admin_required
def retry_commission_payout(payout_id):
    payout = db.session.get(CommissionPayout, payout_id)
    if not payout:
        raise NotFoundError("Commission payout not found")
    if payout.status == PayoutStatus.COMPLETED.value:
        raise ConflictError("Commission payout already completed")

    succeeded = CommissionPayoutProcessor.process(payout_id)
    payout = db.session.get(CommissionPayout, payout_id)
    app_logger.info(f"Admin {current_user.id} retried commission payout {payout_id}: success={succeeded}")
    return jsonify({"success": succeeded, "payout": payout.to_dict()}), 200
