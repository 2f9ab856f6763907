# fund_helpers.py - "add funds" requests credited on admin approval
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any
import logging

from flask import current_app

from errors import ConflictError, NotFoundError, ValidationError
from extensions import db
from models import FundRequest, RequestStatus, TransactionStatus, TransactionType
from notifications import NotificationEvent, notify
from utils import parse_amount, require_fields
from wallet import WalletManager

logger = logging.getLogger(__name__)


class FundRequestProcessor:

    @staticmethod
    def create(user_id: int, data: Dict[str, Any], session=None) -> FundRequest:
        session = session or db.session
        require_fields(data, "amount", "method")
        minimum = Decimal(str(current_app.config.get("MIN_FUND_REQUEST_AMOUNT", "50")))
        amount = parse_amount(data.get("amount"), minimum=minimum)

        method = data.get("method")
        if not isinstance(method, str) or len(method) > 50:
            raise ValidationError({"method": "Must be a string of at most 50 characters"})

        fund_request = FundRequest(
            user_id=user_id,
            amount=amount,
            method=method.strip(),
            transaction_id=data.get("transactionId") or None,
            screenshot=data.get("screenshot") or None,
            status=RequestStatus.PENDING.value,
        )
        session.add(fund_request)
        session.flush()

        WalletManager.record_transaction(
            session, user_id,
            TransactionType.ADD_FUNDS.value, amount,
            TransactionStatus.PENDING.value,
            description=f"Add funds request - {fund_request.method}",
            reference_id=fund_request.id,
            meta={"method": fund_request.method, "transactionId": fund_request.transaction_id,
                  "fundRequestId": fund_request.id},
        )
        session.commit()
        logger.info(f"Fund request {fund_request.id} created: user {user_id}, amount {amount}")
        return fund_request

    @staticmethod
    def _load_pending(session, fund_request_id: int) -> FundRequest:
        fund_request = session.query(FundRequest).filter(
            FundRequest.id == fund_request_id
        ).with_for_update().first()
        if not fund_request:
            raise NotFoundError("Fund request not found")
        if fund_request.status != RequestStatus.PENDING.value:
            raise ConflictError("Fund request already processed", {"status": fund_request.status})
        return fund_request

    @staticmethod
    def review(fund_request_id: int, action: str, admin_id: int,
               admin_remark: Optional[str] = None, session=None) -> FundRequest:
        session = session or db.session
        fund_request = FundRequestProcessor._load_pending(session, fund_request_id)

        if action == "APPROVE":
            WalletManager.credit(session, fund_request.user_id, fund_request.amount)
            final_status = TransactionStatus.COMPLETED.value
            fund_request.status = RequestStatus.APPROVED.value
            event = NotificationEvent.FUND_REQUEST_APPROVED
        else:
            final_status = TransactionStatus.FAILED.value
            fund_request.status = RequestStatus.REJECTED.value
            event = NotificationEvent.FUND_REQUEST_REJECTED

        WalletManager.finalize_transactions(
            session, fund_request.user_id, TransactionType.ADD_FUNDS.value, fund_request.id, final_status
        )
        fund_request.admin_remark = admin_remark
        fund_request.processed_by = admin_id
        fund_request.processed_at = datetime.now(timezone.utc)
        session.commit()

        logger.info(f"Fund request {fund_request.id} {fund_request.status} by admin {admin_id}")
        notify(fund_request.user_id, event, {
            "title": f"Fund request {fund_request.status.lower()}",
            "message": f"Your request to add ₹{fund_request.amount} was {fund_request.status.lower()}.",
            "fundRequestId": fund_request.id,
            "amount": float(fund_request.amount),
        })
        return fund_request
