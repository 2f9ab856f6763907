# notifications.py - fire-and-forget notification fan-out
import logging
from typing import Callable, Dict, Any, List, Optional

import africastalking
from flask import current_app
from flask_mail import Mail, Message

from extensions import db
from models import Notification, User

logger = logging.getLogger(__name__)


class NotificationEvent:
    INVESTMENT_CREATED = "INVESTMENT_CREATED"
    COMMISSION_CREDITED = "COMMISSION_CREDITED"
    WITHDRAWAL_SUBMITTED = "WITHDRAWAL_SUBMITTED"
    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
    FUND_REQUEST_APPROVED = "FUND_REQUEST_APPROVED"
    FUND_REQUEST_REJECTED = "FUND_REQUEST_REJECTED"
    KYC_REVIEWED = "KYC_REVIEWED"


# Only money leaving the platform is worth an SMS
SMS_EVENTS = {
    NotificationEvent.WITHDRAWAL_APPROVED,
    NotificationEvent.WITHDRAWAL_REJECTED,
}

Sink = Callable[[int, str, Dict[str, Any]], None]


def _title(event_type: str, payload: Dict[str, Any]) -> str:
    return payload.get("title") or event_type.replace("_", " ").title()


def store_notification(user_id: int, event_type: str, payload: Dict[str, Any]) -> None:
    """Default sink: persist a Notification row for the dashboard"""
    try:
        db.session.add(Notification(
            user_id=user_id,
            type=event_type,
            title=_title(event_type, payload),
            message=payload.get("message") or "",
            payload=payload,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


class EmailSink:
    """Sends every event to the account's email address (Gmail SMTP via Flask-Mail)"""

    def __init__(self, mail: Mail, sender: str):
        self.mail = mail
        self.sender = sender

    def __call__(self, user_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        user = db.session.get(User, user_id)
        if not user or not user.email:
            return
        msg = Message(
            subject=_title(event_type, payload),
            sender=self.sender,
            recipients=[user.email],
            body=payload.get("message") or "",
        )
        self.mail.send(msg)
        logger.info(f"Email sent to user {user_id} ({event_type})")


class SmsSink:
    """Sends withdrawal outcomes by SMS using Africa's Talking"""

    def __init__(self, sms):
        self.sms = sms

    def __call__(self, user_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        if event_type not in SMS_EVENTS:
            return
        user = db.session.get(User, user_id)
        if not user or not user.mobile:
            return
        response = self.sms.send(payload.get("message") or _title(event_type, payload), [user.mobile])
        logger.info(f"SMS sent to user {user_id} ({event_type}): {response}")


class Notifier:
    """
    Delivers an event to every registered sink. Must only be called after the
    state change it describes has been committed; sink failures are logged
    and never propagate.
    """

    def __init__(self, sinks: Optional[List[Sink]] = None):
        self.sinks = list(sinks or [])

    def register(self, sink: Sink) -> None:
        self.sinks.append(sink)

    def emit(self, user_id: int, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(payload or {})
        for sink in self.sinks:
            try:
                sink(user_id, event_type, payload)
            except Exception as e:
                logger.error(f"Notification sink failed for user {user_id} ({event_type}): {e}")


def _default_sinks(app) -> List[Sink]:
    sinks = [store_notification]

    if app.config.get("MAIL_USERNAME"):
        sinks.append(EmailSink(Mail(app), app.config.get("MAIL_DEFAULT_SENDER") or app.config["MAIL_USERNAME"]))

    at_username = app.config.get("AT_USERNAME")
    at_api_key = app.config.get("AT_API_KEY")
    if at_username and at_api_key:
        africastalking.initialize(at_username, at_api_key)
        sinks.append(SmsSink(africastalking.SMS))
    elif not app.testing:
        logger.warning("Africa's Talking credentials not found, SMS notifications disabled")

    return sinks


def init_notifications(app, sinks: Optional[List[Sink]] = None):
    app.extensions["notifier"] = Notifier(sinks if sinks is not None else _default_sinks(app))
    return app


def notify(user_id: int, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
    notifier = current_app.extensions.get("notifier")
    if notifier is None:
        logger.warning(f"No notifier configured, dropping {event_type} for user {user_id}")
        return
    notifier.emit(user_id, event_type, payload)
