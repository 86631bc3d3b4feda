"""
Finance Request Schemas
Pydantic models for finance request creation, edits, disbursement and responses
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date, datetime

from src.models.approval import ApprovalLevel
from src.models.finance_request import PaymentType, RequestStatus


class FinanceRequestBase(BaseModel):
    """Fields a requester supplies"""
    department: Optional[str] = Field(None, max_length=100)
    cost_center: Optional[str] = Field(None, max_length=50)
    purpose: str = Field(..., min_length=3, max_length=2000)
    vendor_name: Optional[str] = Field(None, max_length=200)
    vendor_bank_account: Optional[str] = Field(None, max_length=50)
    vendor_bank_ifsc: Optional[str] = Field(None, pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    invoice_number: Optional[str] = Field(None, max_length=100)
    payment_type: PaymentType = PaymentType.NON_CRITICAL

    amount: float = Field(..., gt=0, description="Amount in original currency")
    currency: str = Field("INR", min_length=3, max_length=3)
    exchange_rate: float = Field(1.0, gt=0)

    is_gst_applicable: bool = False
    gst_percentage: Optional[float] = Field(None, ge=0, le=100)
    is_tds_applicable: bool = False
    tds_percentage: Optional[float] = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def validate_taxes(self):
        """Tax percentages are required when the tax applies"""
        if self.is_gst_applicable and self.gst_percentage is None:
            raise ValueError("gst_percentage is required when GST is applicable")
        if self.is_tds_applicable and self.tds_percentage is None:
            raise ValueError("tds_percentage is required when TDS is applicable")
        return self


class FinanceRequestCreate(FinanceRequestBase):
    """Schema for creating a finance request"""
    entity_id: int
    save_as_draft: bool = True


class FinanceRequestUpdate(BaseModel):
    """Schema for editing a finance request; only supplied fields change"""
    department: Optional[str] = Field(None, max_length=100)
    cost_center: Optional[str] = Field(None, max_length=50)
    purpose: Optional[str] = Field(None, min_length=3, max_length=2000)
    vendor_name: Optional[str] = Field(None, max_length=200)
    vendor_bank_account: Optional[str] = Field(None, max_length=50)
    vendor_bank_ifsc: Optional[str] = Field(None, pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    invoice_number: Optional[str] = Field(None, max_length=100)
    payment_type: Optional[PaymentType] = None
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Optional[float] = Field(None, gt=0)
    is_gst_applicable: Optional[bool] = None
    gst_percentage: Optional[float] = Field(None, ge=0, le=100)
    is_tds_applicable: Optional[bool] = None
    tds_percentage: Optional[float] = Field(None, ge=0, le=100)
    expected_version: Optional[int] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class ResubmitRequest(BaseModel):
    """Resubmission with optional corrections"""
    changes: Optional[FinanceRequestUpdate] = None
    comments: Optional[str] = None
    expected_version: Optional[int] = None


class DisbursementRequest(BaseModel):
    """Payment proof for a disbursement"""
    payment_reference_number: Optional[str] = None
    payment_mode: Optional[str] = None
    payment_date: Optional[date] = None
    remarks: Optional[str] = None
    expected_version: Optional[int] = None


class FinanceRequestResponse(BaseModel):
    """Schema for finance request response"""
    id: int
    reference_number: str
    requester_id: int
    entity_id: int

    department: Optional[str] = None
    cost_center: Optional[str] = None
    purpose: str
    vendor_name: Optional[str] = None
    vendor_bank_account: Optional[str] = None
    vendor_bank_ifsc: Optional[str] = None
    invoice_number: Optional[str] = None
    payment_type: PaymentType

    amount: float
    currency: str
    exchange_rate: float
    total_amount_inr: float
    is_gst_applicable: bool
    gst_percentage: Optional[float] = None
    gst_amount: Optional[float] = None
    is_tds_applicable: bool
    tds_percentage: Optional[float] = None
    tds_amount: Optional[float] = None
    net_payable_amount: Optional[float] = None

    status: RequestStatus
    status_label: str
    current_approval_level: Optional[ApprovalLevel] = None
    resubmission_count: int
    version: int

    payment_reference_number: Optional[str] = None
    payment_mode: Optional[str] = None
    payment_date: Optional[datetime] = None
    disbursed_amount: Optional[float] = None
    disbursed_by_id: Optional[int] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
