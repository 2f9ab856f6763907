from decimal import Decimal
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func

from commission.config import CommissionConfigHelper
from commission.referral_chain import ReferralChainHelper
from extensions import db
from models import Notification, ReferralCommission, Transaction, User
from utils import page_args

logger = logging.getLogger(__name__)

bp = Blueprint('profile', __name__, url_prefix="/api")


# ----------------------------------------------------------------------------------
# 1️⃣ JAVASCRIPT GETS THIS DATA TO DYNAMICALLY UPDATE/ LOAD USER DATA
# ----------------------------------------------------------------------------------
@bp.route("/user/profile", methods=["GET"])
@login_required
def get_user_profile():
    user = db.session.get(User, current_user.id)
    direct_referrals = User.query.filter_by(referred_by=user.referral_code).count()
    return jsonify({"user": user.to_dict(), "directReferrals": direct_referrals}), 200


#=======================================================================================
#      COMMISSION HISTORY
#=======================================================================================
@bp.route("/user/commissions", methods=["GET"])
@login_required
def get_user_commissions():
    """
    Ledger entries where the current user is the beneficiary, newest first,
    with per-level totals over the whole history.
    """
    page, limit = page_args(request.args, default_limit=20)
    query = ReferralCommission.query.filter_by(user_id=current_user.id)
    total = query.count()
    entries = query.order_by(ReferralCommission.created_at.desc(), ReferralCommission.id.desc())\
                   .offset((page - 1) * limit)\
                   .limit(limit)\
                   .all()

    by_level = db.session.query(
        ReferralCommission.level,
        func.count(ReferralCommission.id),
        func.coalesce(func.sum(ReferralCommission.amount), 0),
    ).filter(ReferralCommission.user_id == current_user.id)\
     .group_by(ReferralCommission.level)\
     .order_by(ReferralCommission.level.asc())\
     .all()

    level_totals = [
        {"level": level, "count": count, "amount": float(Decimal(str(amount)))}
        for level, count, amount in by_level
    ]

    return jsonify({
        "commissions": [c.to_dict() for c in entries],
        "levels": level_totals,
        "totalAmount": sum(l["amount"] for l in level_totals),
        "pagination": {"page": page, "limit": limit, "total": total},
    }), 200


@bp.route("/user/transactions", methods=["GET"])
@login_required
def get_user_transactions():
    page, limit = page_args(request.args, default_limit=20)
    query = Transaction.query.filter_by(user_id=current_user.id)

    tx_type = request.args.get("type")
    if tx_type:
        query = query.filter(Transaction.type == tx_type.upper())

    total = query.count()
    transactions = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())\
                        .offset((page - 1) * limit)\
                        .limit(limit)\
                        .all()
    return jsonify({
        "transactions": [t.to_dict() for t in transactions],
        "pagination": {"page": page, "limit": limit, "total": total},
    }), 200


#=======================================================================================
#      REFERRAL NETWORK
#=======================================================================================
@bp.route("/user/network", methods=["GET"])
@login_required
def get_user_network():
    """Upline (who earns from this user) and downline head-counts per level"""
    user = db.session.get(User, current_user.id)
    max_levels = len(CommissionConfigHelper.get_active_levels(db.session)) or CommissionConfigHelper.max_levels()

    upline = ReferralChainHelper.get_upline(db.session, user, max_levels)
    downline = ReferralChainHelper.get_downline_counts(db.session, user, max_levels)

    return jsonify({
        "referralCode": user.referral_code,
        "upline": upline,
        "downline": [{"level": level, "count": count} for level, count in sorted(downline.items())],
        "totalDownline": sum(downline.values()),
    }), 200


@bp.route("/notifications", methods=["GET"])
@login_required
def get_notifications():
    notifications = Notification.query.filter_by(user_id=current_user.id)\
                                      .order_by(Notification.created_at.desc(), Notification.id.desc())\
                                      .limit(50)\
                                      .all()
    unread = Notification.query.filter_by(user_id=current_user.id, is_read=False).count()
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unreadCount": unread,
    }), 200
