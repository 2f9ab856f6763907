#======================================================================================
#
# USER WITHDRAWALS
#
#=======================================================================================
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from blueprints.withdraw_helpers import WithdrawalProcessor, WithdrawalQueryHelper, WithdrawalValidator
from utils import require_json

logger = logging.getLogger(__name__)

bp = Blueprint("withdrawals", __name__, url_prefix="/api")


@bp.route("/withdrawal", methods=["POST"])
@login_required
def request_withdrawal():
    data = require_json(request)
    amount, method, details = WithdrawalValidator.validate_withdrawal_request(data)

    withdrawal, kyc_check = WithdrawalProcessor.submit(current_user.id, amount, method, details)

    # NOTE: the wallet is only debited when an admin approves
    return jsonify({
        "message": "Withdrawal request submitted successfully",
        "withdrawal": withdrawal.to_dict(),
        "kycInfo": {
            "currentTotal": float(kyc_check.current_total),
            "limit": float(kyc_check.limit),
            "remaining": float(kyc_check.remaining),
            "requiresKYC": kyc_check.requires_kyc,
        },
    }), 201


@bp.route("/withdrawal", methods=["GET"])
@login_required
def withdrawal_history():
    withdrawals = WithdrawalQueryHelper.get_user_withdrawals(current_user.id)
    return jsonify({"withdrawals": [w.to_dict() for w in withdrawals]}), 200
