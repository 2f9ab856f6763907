#======================================================================================
#
# PLANS & INVESTMENTS
#
#=======================================================================================
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from blueprints.investment_helpers import InvestmentProcessor
from errors import ValidationError
from models import Investment, InvestmentPlan, PlanStatus
from utils import require_json

logger = logging.getLogger(__name__)

bp = Blueprint("investments", __name__, url_prefix="/api")


@bp.route("/plans", methods=["GET"])
@login_required
def get_plans():
    plans = InvestmentPlan.query.filter_by(status=PlanStatus.ACTIVE.value)\
                                .order_by(InvestmentPlan.amount.asc())\
                                .all()
    return jsonify([plan.to_dict() for plan in plans]), 200


@bp.route("/investments", methods=["POST"])
@login_required
def create_investment():
    data = require_json(request)
    plan_id = data.get("planId")
    if plan_id is None or isinstance(plan_id, bool):
        raise ValidationError({"planId": "Plan ID is required"})
    try:
        plan_id = int(plan_id)
    except (TypeError, ValueError):
        raise ValidationError({"planId": "Plan ID must be an integer"})

    user_id = current_user.id
    investment, _ = InvestmentProcessor.create_investment(user_id, plan_id)

    return jsonify({
        "message": "Investment created successfully",
        "investment": investment.to_dict(),
        "user": investment.user.to_dict(),
    }), 201


@bp.route("/investments", methods=["GET"])
@login_required
def list_investments():
    investments = Investment.query.filter_by(user_id=current_user.id)\
                                  .order_by(Investment.created_at.desc(), Investment.id.desc())\
                                  .all()
    return jsonify({"investments": [i.to_dict() for i in investments]}), 200
