from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import IntegrityError

from commission.referral_chain import ReferralChainHelper
from errors import ConflictError, ForbiddenError, ValidationError
from extensions import db
from models import AccountStatus, KycStatus, Role, User
from utils import generate_referral_code, require_fields, require_json, validate_email, validate_phone

logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/register", methods=["POST"])
def register():
    """
    Create a new account, linking it to its referrer when a referral code is given.
    """
    data = require_json(request)
    require_fields(data, "fullName", "email", "mobile", "password")

    full_name = str(data["fullName"]).strip()
    email = str(data["email"]).strip().lower()
    mobile = str(data["mobile"]).strip()
    password = str(data["password"])
    referral_code = str(data.get("referralCode") or "").strip().upper()

    errors = {}
    if not validate_email(email):
        errors["email"] = "Invalid email address"
    if not validate_phone(mobile):
        errors["mobile"] = "Invalid mobile number"
    if len(password) < 6:
        errors["password"] = "Password must be at least 6 characters"

    referrer = None
    if referral_code:
        referrer = ReferralChainHelper.resolve(db.session, referral_code)
        if not referrer:
            errors["referralCode"] = "Invalid referral code"
    if errors:
        raise ValidationError(errors)

    exists = User.query.filter((User.email == email) | (User.mobile == mobile)).first()
    if exists:
        raise ConflictError("Email or mobile already registered")

    user = User(
        full_name=full_name,
        email=email,
        mobile=mobile,
        role=Role.USER.value,
        status=AccountStatus.ACTIVE.value,
        referral_code=generate_referral_code(
            lambda code: User.query.filter_by(referral_code=code).first() is not None
        ),
        referred_by=referrer.referral_code if referrer else None,
        kyc_status=KycStatus.NOT_SUBMITTED,
    )
    user.set_password(password)

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email or mobile already registered")

    logger.info(f"New user {user.id} registered (referred_by={user.referred_by})")
    login_user(user)
    return jsonify({"message": "Registration successful", "user": user.to_dict()}), 201


@bp.route("/login", methods=["POST"])
def login():
    data = require_json(request)
    require_fields(data, "identifier", "password")
    identifier = str(data["identifier"]).strip().lower()

    user = User.query.filter((User.email == identifier) | (User.mobile == identifier)).first()
    if not user or not user.check_password(str(data["password"])):
        return jsonify({"error": "Invalid credentials"}), 401
    if user.status == AccountStatus.BLOCKED.value:
        raise ForbiddenError("User not found or blocked")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    login_user(user)
    return jsonify({"message": "Login successful", "user": user.to_dict()}), 200


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logged out"}), 200


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.to_dict()}), 200
