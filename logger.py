# logger.py - logging for the API process and the money-moving services
import os
import logging
from logging.handlers import RotatingFileHandler

LOG_DIR = "logs"
LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"


def _file_handler(log_file, level):
    if not os.path.exists(LOG_DIR):
        os.makedirs(LOG_DIR)

    handler = RotatingFileHandler(log_file, maxBytes=10240, backupCount=10, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logger(name, log_file=None, level=logging.INFO):
    """Named logger with its own rotating file under logs/"""
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        logger.setLevel(level)
        logger.addHandler(_file_handler(log_file or os.path.join(LOG_DIR, f"{name}.log"), level))

        if os.environ.get("FLASK_ENV") != "production":
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
            logger.addHandler(console_handler)

    return logger


def init_app_logging(app):
    """
    Route app.logger to logs/app.log. Skipped when LOG_TO_FILE is False so
    test runs keep Flask's default handler.
    """
    if not app.config.get("LOG_TO_FILE", True):
        return

    app.logger.handlers.clear()
    app.logger.addHandler(_file_handler(os.path.join(LOG_DIR, "app.log"), logging.INFO))
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)


app_logger = setup_logger("app")
commission_logger = setup_logger("commissions")
withdrawal_logger = setup_logger("withdrawals")
