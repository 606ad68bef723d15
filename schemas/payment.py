from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any, List, Union


class DepositRequest(BaseModel):
    amount: Union[int, float, str]
    phone_number: str = Field(..., alias="phoneNumber")
    plan_id: str = Field(..., alias="planId")
    user_id: str = Field(..., alias="userId")
    correspondent: Optional[str] = None  # resolved from the phone prefix when omitted
    description: Optional[str] = None
    is_extension: bool = Field(False, alias="isExtension")

    class Config:
        validate_by_name = True


class DepositResponse(BaseModel):
    success: bool
    payment_id: str
    deposit_id: str
    status: str
    payment_status: str
    correspondent: str
    message: str
    created: Optional[str] = None
    is_extension: bool = False


class PaymentRecordSummary(BaseModel):
    id: str
    status: str
    plan_id: str
    amount: Optional[float] = None
    is_extension: bool = False


class DepositStatusResponse(BaseModel):
    success: bool
    deposit_id: str
    status: str
    message: str
    deposited_amount: Optional[str] = None
    correspondent_ids: Optional[Dict[str, Any]] = None
    responded_by_payer: Optional[str] = None
    created: Optional[str] = None
    rejection_reason: Optional[Dict[str, Any]] = None
    payment_record: Optional[PaymentRecordSummary] = None
    user_subscription_updated: bool = False


class CorrespondentInfo(BaseModel):
    correspondent: str
    name: str
    country: Optional[str] = None
    currency: Optional[str] = None


class CorrespondentsResponse(BaseModel):
    correspondents: List[CorrespondentInfo]


class PredictCorrespondentRequest(BaseModel):
    phone_number: str = Field(..., alias="phoneNumber")

    class Config:
        validate_by_name = True


class PredictCorrespondentResponse(BaseModel):
    phone_number: str
    correspondent: str
    source: str  # "pawapay" or "prefix"
    ambiguous: bool = False


class DepositWebhookPayload(BaseModel):
    """
    Deposit callback from pawaPay. Only depositId/externalId are used to find
    the local payment; any user-identifying fields echoed back are ignored.
    """
    deposit_id: Optional[str] = Field(None, alias="depositId")
    external_id: Optional[str] = Field(None, alias="externalId")
    payment_id: Optional[str] = Field(None, alias="paymentId")
    status: str
    amount: Optional[Union[str, int, float]] = None
    requested_amount: Optional[Union[str, int, float]] = Field(None, alias="requestedAmount")
    deposited_amount: Optional[Union[str, int, float]] = Field(None, alias="depositedAmount")
    currency: Optional[str] = None
    correspondent: Optional[str] = None
    correspondent_ids: Optional[Dict[str, Any]] = Field(None, alias="correspondentIds")
    rejection_reason: Optional[Dict[str, Any]] = Field(None, alias="rejectionReason")
    created: Optional[str] = None

    class Config:
        validate_by_name = True
        extra = "allow"

    @model_validator(mode="after")
    def require_correlation_id(self):
        if not (self.deposit_id or self.external_id):
            raise ValueError("depositId or externalId is required")
        if not self.status.strip():
            raise ValueError("status is required")
        return self

    @property
    def correlation_id(self) -> str:
        return self.deposit_id or self.external_id
