"""
Disbursement Finalizer
Terminal APPROVED -> DISBURSED step: validates payment proof and stamps it
"""

from dataclasses import dataclass
from datetime import datetime, date
from typing import Optional, Union

from src.models.finance_request import FinanceRequest
from src.utils.exceptions import ValidationError


@dataclass
class PaymentProof:
    """Proof of payment supplied by the disbursing finance user"""
    payment_reference_number: Optional[str]
    payment_mode: Optional[str]
    payment_date: Optional[Union[datetime, date]]
    remarks: Optional[str] = None


class DisbursementFinalizer:
    """Finalizes payment against the amount already settled by the approval chain"""

    def validate_proof(self, proof: PaymentProof):
        """
        Ensure all three proof fields are present

        Raises:
            ValidationError: Listing every missing field
        """
        missing = []
        if not (proof.payment_reference_number or "").strip():
            missing.append("payment_reference_number")
        if not (proof.payment_mode or "").strip():
            missing.append("payment_mode")
        if proof.payment_date is None:
            missing.append("payment_date")

        if missing:
            raise ValidationError(
                f"Disbursement requires {', '.join(missing)}",
                details={"missing_fields": missing}
            )

    def finalize(self, request: FinanceRequest, proof: PaymentProof, actor_id: int, now: datetime):
        """
        Stamp payment proof on the request

        The disbursed amount is the net payable amount when taxes were
        settled, else the base-currency total; nothing is recomputed here.
        """
        payment_date = proof.payment_date
        if isinstance(payment_date, date) and not isinstance(payment_date, datetime):
            payment_date = datetime.combine(payment_date, datetime.min.time())

        request.payment_reference_number = proof.payment_reference_number.strip()
        request.payment_mode = proof.payment_mode.strip()
        request.payment_date = payment_date
        request.disbursement_remarks = proof.remarks
        request.disbursed_amount = request.payable_amount
        request.disbursed_by_id = actor_id
        request.disbursed_at = now
