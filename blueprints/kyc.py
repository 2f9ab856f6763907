from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from blueprints.kyc_helpers import KycProcessor
from blueprints.withdraw_helpers import KycGate
from models import KycDocument
from utils import require_json

bp = Blueprint("kyc", __name__, url_prefix="/api/kyc")


@bp.route("/submit", methods=["POST"])
@login_required
def submit_kyc():
    data = require_json(request)
    document = KycProcessor.submit(current_user.id, data)
    return jsonify({
        "message": "KYC application submitted successfully",
        "application": document.to_dict(),
    }), 201


@bp.route("/status", methods=["GET"])
@login_required
def kyc_status():
    latest = KycDocument.query.filter_by(user_id=current_user.id)\
                              .order_by(KycDocument.submitted_at.desc(), KycDocument.id.desc())\
                              .first()
    return jsonify({
        "userData": KycGate.get_status_summary(current_user),
        "kycData": latest.to_dict() if latest else None,
    }), 200
