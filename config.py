# ==========================================================================================================
# -------------- Configuration file for the PowerOYO Flask application ------------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _database_uri():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'poweroyo.db')}"

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+pg8000://", 1)
    return database_url


class Config:

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        if FLASK_ENV == "production":
            raise ValueError("SECRET_KEY must be set in production")
        SECRET_KEY = "dev_key_change_me"

    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    if not SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_recycle": 300,
        })

    SESSION_COOKIE_HTTPONLY = True

    # Cumulative APPROVED withdrawals allowed before KYC becomes mandatory
    KYC_WITHDRAWAL_LIMIT = Decimal(os.getenv("KYC_WITHDRAWAL_LIMIT", "500"))
    MIN_WITHDRAWAL_AMOUNT = Decimal(os.getenv("MIN_WITHDRAWAL_AMOUNT", "100"))
    MIN_FUND_REQUEST_AMOUNT = Decimal(os.getenv("MIN_FUND_REQUEST_AMOUNT", "50"))

    # Hard ceiling for configured commission levels (mirrors the DB check constraint)
    COMMISSION_MAX_LEVELS = 20
    # Run the commission cascade right after the investment commit
    PROCESS_COMMISSIONS_INLINE = os.getenv("PROCESS_COMMISSIONS_INLINE", "True").lower() in ("true", "1", "t")

    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")

    # Notification channels; each is enabled only when its credentials are set
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = True
    MAIL_USERNAME = os.getenv("GMAIL_USER")
    MAIL_PASSWORD = os.getenv("GMAIL_APP_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER")
    AT_USERNAME = os.getenv("AT_USERNAME")
    AT_API_KEY = os.getenv("AT_API_KEY")


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    KYC_WITHDRAWAL_LIMIT = Decimal("500")
    MIN_WITHDRAWAL_AMOUNT = Decimal("1")
    PROCESS_COMMISSIONS_INLINE = True
    LOG_TO_FILE = False
    MAIL_USERNAME = None
    AT_USERNAME = None
    AT_API_KEY = None
