# kyc_helpers.py - KYC submission and admin review
from datetime import datetime, timezone
import re
from typing import Dict, Any
import logging

from errors import ConflictError, KycSubmissionError, NotFoundError, ValidationError
from extensions import db
from models import KycDocument, KycStatus, RequestStatus, TransactionStatus, TransactionType
from notifications import NotificationEvent, notify
from utils import require_fields
from wallet import WalletManager

logger = logging.getLogger(__name__)

AADHAR_PATTERN = re.compile(r'^\d{12}$')
PAN_PATTERN = re.compile(r'^[A-Z]{5}\d{4}[A-Z]$')


class KycProcessor:

    @staticmethod
    def submit(user_id: int, data: Dict[str, Any], session=None) -> KycDocument:
        session = session or db.session
        require_fields(data, "aadharNumber", "panNumber", "nomineeName", "nomineeRelation")

        aadhar = str(data["aadharNumber"]).replace(" ", "")
        pan = str(data["panNumber"]).strip().upper()
        errors = {}
        if not AADHAR_PATTERN.match(aadhar):
            errors["aadharNumber"] = "Aadhaar number must be 12 digits"
        if not PAN_PATTERN.match(pan):
            errors["panNumber"] = "PAN must look like ABCDE1234F"
        if errors:
            raise ValidationError(errors)

        user = WalletManager.lock_user(session, user_id)
        if user.kyc_status in (KycStatus.PENDING, KycStatus.APPROVED):
            raise KycSubmissionError(f"KYC is already {user.kyc_status.value.lower()}")

        document = KycDocument(
            user_id=user_id,
            aadhar_number=aadhar,
            pan_number=pan,
            nominee_name=str(data["nomineeName"]).strip(),
            nominee_relation=str(data["nomineeRelation"]).strip(),
            status=RequestStatus.PENDING.value,
        )
        session.add(document)
        user.kyc_status = KycStatus.PENDING
        session.commit()
        logger.info(f"KYC submitted by user {user_id} - document {document.id}")
        return document

    @staticmethod
    def review(document_id: int, status: str, admin_remark: str, admin_id: int, session=None) -> KycDocument:
        session = session or db.session
        errors = {}
        if status not in (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value):
            errors["status"] = "Must be APPROVED or REJECTED"
        if not isinstance(admin_remark, str) or not admin_remark.strip():
            errors["adminRemark"] = "Admin remarks are required"
        if errors:
            raise ValidationError(errors)

        document = session.query(KycDocument).filter(
            KycDocument.id == document_id
        ).with_for_update().first()
        if not document:
            raise NotFoundError("KYC application not found")
        if document.status != RequestStatus.PENDING.value:
            raise ConflictError("Application has already been reviewed", {"status": document.status})

        document.status = status
        document.admin_remark = admin_remark.strip()
        document.reviewed_at = datetime.now(timezone.utc)
        document.reviewed_by = admin_id
        document.user.kyc_status = KycStatus(status)

        if status == RequestStatus.APPROVED.value:
            WalletManager.record_transaction(
                session, document.user_id,
                TransactionType.KYC.value, 0,
                TransactionStatus.COMPLETED.value,
                description="KYC verification approved",
                reference_id=document.id,
                meta={"kycId": document.id, "approvedBy": admin_id},
            )
        session.commit()

        logger.info(f"KYC document {document.id} {status} by admin {admin_id}")
        notify(document.user_id, NotificationEvent.KYC_REVIEWED, {
            "title": f"KYC {status}",
            "message": f"Your KYC application has been {status.lower()}. {document.admin_remark}",
            "kycId": document.id,
            "status": status,
        })
        return document
