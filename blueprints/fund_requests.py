from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from blueprints.fund_helpers import FundRequestProcessor
from models import FundRequest
from utils import require_json

bp = Blueprint("fund_requests", __name__, url_prefix="/api")


@bp.route("/fund-request", methods=["POST"])
@login_required
def create_fund_request():
    data = require_json(request)
    fund_request = FundRequestProcessor.create(current_user.id, data)
    return jsonify({
        "message": "Fund request submitted successfully",
        "fundRequest": fund_request.to_dict(),
    }), 201


@bp.route("/fund-request", methods=["GET"])
@login_required
def list_fund_requests():
    fund_requests = FundRequest.query.filter_by(user_id=current_user.id)\
                                     .order_by(FundRequest.created_at.desc(), FundRequest.id.desc())\
                                     .limit(10)\
                                     .all()
    return jsonify({"fundRequests": [f.to_dict() for f in fund_requests]}), 200
