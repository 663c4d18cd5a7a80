from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class Role(str, Enum):
    WORKER = "WORKER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class RegistrationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class FieldType(str, Enum):
    TEXT = "TEXT"
    NUMBER = "NUMBER"
    URL = "URL"
    FILE = "FILE"


class TransactionKind(str, Enum):
    TASK_PAYOUT = "TASK_PAYOUT"
    UPLINE_COMMISSION_L1 = "UPLINE_COMMISSION_L1"
    UPLINE_COMMISSION_L2 = "UPLINE_COMMISSION_L2"
    OPERATIONAL_BONUS = "OPERATIONAL_BONUS"
    WITHDRAWAL_DEBIT = "WITHDRAWAL_DEBIT"


ADMIN_ROLES = (Role.ADMIN, Role.SUPER_ADMIN)


class RegisterUserRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    referral_code: str = Field(..., min_length=1, description="Code this user hands out to downlines")
    upline_referral_code: Optional[str] = Field(default=None, description="Referral code of the inviting user")
    picture: Optional[str] = None
    role: Role = Role.WORKER

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Sari Pekerja",
            "email": "sari@example.com",
            "referral_code": "SARI01",
            "upline_referral_code": "BUDI01",
        }
    })


class ProjectFieldDefinition(BaseModel):
    label: str = Field(..., min_length=1)
    field_type: FieldType = FieldType.TEXT
    required: bool = True


class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    value: Decimal = Field(..., gt=0, max_digits=18, decimal_places=8, description="Payout for a correct submission")
    fields: list[ProjectFieldDefinition] = Field(default_factory=list)
    created_by: Optional[int] = None


class SubmissionValueInput(BaseModel):
    field_id: int
    value: str


class SubmitWorkRequest(BaseModel):
    values: list[SubmissionValueInput] = Field(default_factory=list)


class ReviewNoteRequest(BaseModel):
    note: Optional[str] = None


class WithdrawalRequest(BaseModel):
    amount: Decimal

    model_config = ConfigDict(json_schema_extra={"example": {"amount": "3000.00"}})


class User(BaseModel):
    id: int
    name: str
    email: str
    picture: Optional[str] = None
    referral_code: str
    upline_id: Optional[int] = None
    role: Role = Role.WORKER
    registration_status: RegistrationStatus = RegistrationStatus.PENDING
    balance: Decimal = Decimal("0.00")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class ProjectField(BaseModel):
    id: int
    project_id: int
    position: int
    label: str
    field_type: FieldType
    required: bool

    model_config = ConfigDict(from_attributes=True)


class Project(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    value: Decimal
    created_by: Optional[int] = None
    created_at: datetime
    fields: list[ProjectField] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SubmissionValue(BaseModel):
    id: int
    submission_id: int
    field_id: int
    value: str

    model_config = ConfigDict(from_attributes=True)


class Submission(BaseModel):
    id: int
    user_id: int
    project_id: int
    status: ReviewStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    admin_note: Optional[str] = None
    values: list[SubmissionValue] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class Withdrawal(BaseModel):
    id: int
    user_id: int
    requested_amount: Decimal
    status: ReviewStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    admin_note: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Transaction(BaseModel):
    id: int
    kind: TransactionKind
    amount: Decimal
    user_id: int
    balance_after: Decimal
    submission_id: Optional[int] = None
    withdrawal_id: Optional[int] = None
    description: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class SubmissionReviewResponse(BaseModel):
    submission: Submission
    transactions: list[Transaction] = Field(default_factory=list)
    total_distributed: Decimal = Decimal("0.00")
    message: str


class WithdrawalReviewResponse(BaseModel):
    withdrawal: Withdrawal
    transaction: Optional[Transaction] = None
    message: str


class AccountOverview(BaseModel):
    user: User
    upline: Optional[UserSummary] = None
    downlines: list[UserSummary] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)


class LedgerHistoryResponse(BaseModel):
    user_id: int
    entries: list[Transaction]
    total_count: int
    current_balance: Decimal
