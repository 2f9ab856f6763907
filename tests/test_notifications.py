from models import Notification
from notifications import EmailSink, NotificationEvent, Notifier, SmsSink, notify


class FakeMail:
    def __init__(self):
        self.outbox = []

    def send(self, message):
        self.outbox.append(message)


class FakeSms:
    def __init__(self):
        self.sent = []

    def send(self, message, recipients):
        self.sent.append((message, recipients))
        return {"SMSMessageData": {"Recipients": recipients}}


def test_failing_sink_does_not_stop_the_others(ctx):
    delivered = []

    def broken(user_id, event_type, payload):
        raise ConnectionError("socket closed")

    notifier = Notifier([broken, lambda *args: delivered.append(args)])
    notifier.emit(7, NotificationEvent.WITHDRAWAL_APPROVED, {"amount": 10.0})

    assert delivered == [(7, "WITHDRAWAL_APPROVED", {"amount": 10.0})]


def test_default_sink_persists_notification(ctx, make_user):
    user_id = make_user()

    notify(user_id, NotificationEvent.KYC_REVIEWED, {"title": "KYC APPROVED", "message": "Approved"})

    stored = Notification.query.filter_by(user_id=user_id).one()
    assert (stored.type, stored.title, stored.message, stored.is_read) == (
        "KYC_REVIEWED", "KYC APPROVED", "Approved", False,
    )


def test_email_sink_addresses_the_account(ctx, make_user):
    user_id = make_user()
    mail = FakeMail()

    EmailSink(mail, "noreply@poweroyo.in")(user_id, NotificationEvent.INVESTMENT_CREATED, {
        "message": "Your investment is now active.",
    })

    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.recipients == ["user1@example.com"]
    assert message.subject == "Investment Created"
    assert message.body == "Your investment is now active."


def test_sms_sink_only_sends_withdrawal_outcomes(ctx, make_user):
    user_id = make_user()
    sms = FakeSms()
    sink = SmsSink(sms)

    sink(user_id, NotificationEvent.COMMISSION_CREDITED, {"message": "You earned 10"})
    sink(user_id, NotificationEvent.WITHDRAWAL_APPROVED, {"message": "Withdrawal approved"})

    assert sms.sent == [("Withdrawal approved", ["+256700000001"])]
    assert Notification.query.count() == 0
