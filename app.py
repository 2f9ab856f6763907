import os
from datetime import datetime, timezone

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from errors import PlatformError
from extensions import db, init_extensions, login_manager
from logger import app_logger, init_app_logging
from models import User
from notifications import init_notifications


# --------------------------------------------------------------------------------------------------------
#       Application factory
# --------------------------------------------------------------------------------------------------------
def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_SECURE=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    init_app_logging(app)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)
    init_notifications(app)

    # ------------------------------------------------------------------------------------------------------------------------
    # Flask-Login user_loader - inside create_app to avoid circular imports
    # ------------------------------------------------------------------------------------------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        user = db.session.get(User, int(user_id))
        if user is None or not user.is_active:
            return None
        return user

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/healthz")
    def healthz():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}, 200

    return app


# ------------------------------------------------------------------------------------------------------------------------
# Register blueprints
# -----------------------------------------------------------------------------------------------------------------------
def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.profile import bp as profile_bp
    from blueprints.admin import admin_bp as admin_bp
    from blueprints.investments import bp as investments_bp
    from blueprints.withdrawals import bp as withdrawals_bp
    from blueprints.fund_requests import bp as fund_requests_bp
    from blueprints.kyc import bp as kyc_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(investments_bp)
    app.register_blueprint(withdrawals_bp)
    app.register_blueprint(fund_requests_bp)
    app.register_blueprint(kyc_bp)


def register_error_handlers(app):

    @app.errorhandler(PlatformError)
    def handle_platform_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        app_logger.error(f"Database error: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        app_logger.error(f"Unhandled error: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def register_commands(app):
    from commands import make_admin_command, retry_commissions_command, seed_defaults_command

    app.cli.add_command(seed_defaults_command)
    app.cli.add_command(make_admin_command)
    app.cli.add_command(retry_commissions_command)


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)
