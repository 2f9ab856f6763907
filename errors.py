# ==========================================================
#                  EXCEPTIONS
# ==========================================================
# Raised by the helpers, rendered to JSON by the handlers
# registered in app.register_error_handlers().


class PlatformError(Exception):
    """Base error carrying an HTTP status and a JSON payload"""
    status_code = 400

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self):
        body = {"error": self.message}
        body.update(self.payload)
        return body


class ValidationError(PlatformError):
    """Malformed or missing input. `fields` maps field name -> problem."""

    def __init__(self, fields, message="Validation failed"):
        super().__init__(message, {"details": fields})
        self.fields = fields


class PolicyDenied(PlatformError):
    reason = "policy_denied"

    def to_dict(self):
        body = super().to_dict()
        body.setdefault("reason", self.reason)
        return body


class InsufficientBalanceError(PolicyDenied):
    reason = "insufficient_balance"


class KycRequiredError(PolicyDenied):
    reason = "kyc_required"


class PendingWithdrawalError(PolicyDenied):
    reason = "pending_withdrawal_exists"


class PlanInactiveError(PolicyDenied):
    reason = "plan_inactive"


class KycSubmissionError(PolicyDenied):
    reason = "kyc_not_allowed"


class NotFoundError(PlatformError):
    status_code = 404


class ConflictError(PlatformError):
    status_code = 409


class ForbiddenError(PlatformError):
    status_code = 403
