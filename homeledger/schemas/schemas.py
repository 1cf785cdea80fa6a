from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StrictInt, model_validator


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Stored timestamps are naive UTC; offsets on incoming values are converted, not dropped.
UTCDateTime = Annotated[datetime, AfterValidator(_as_naive_utc)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Identity ---


class ProProfileRead(ORMModel):
    type: str
    business_name: Optional[str] = None
    phone: Optional[str] = None
    license_no: Optional[str] = None
    website: Optional[str] = None
    verified: bool
    rating: Optional[float] = None
    specialties: List[str] = []
    service_areas: List[str] = []


class UserRead(ORMModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str
    pro_status: Optional[str] = None
    is_suspended: bool
    created_at: datetime
    pro_profile: Optional[ProProfileRead] = None


class UserSummary(ORMModel):
    id: int
    email: str
    name: Optional[str] = None


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: Optional[str] = None
    role: Literal["HOMEOWNER", "PRO"] = "HOMEOWNER"


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    impersonated_by: Optional[int] = None


class ProApplication(BaseModel):
    type: Literal["CONTRACTOR", "REALTOR", "INSPECTOR"] = "CONTRACTOR"
    business_name: str = Field(min_length=1)
    phone: Optional[str] = None
    license_no: Optional[str] = None
    website: Optional[str] = None
    specialties: List[str] = []
    service_areas: List[str] = []


# --- Homes ---


class AddressBody(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=2)
    zip: str = Field(min_length=5)


class HomeClaim(AddressBody):
    address_line2: Optional[str] = None


class HomeVerify(BaseModel):
    method: Literal["POSTCARD", "DOCUMENT", "MANUAL"]


class HomeRead(ORMModel):
    id: int
    owner_id: Optional[int] = None
    address: str
    address_line2: Optional[str] = None
    city: str
    state: str
    zip: str
    verification_status: str
    verification_method: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime


# --- Invitations ---


class InvitationCreate(BaseModel):
    invited_email: EmailStr
    role: Literal["PRO", "HOMEOWNER"]
    home_id: int
    invited_name: Optional[str] = None
    message: Optional[str] = Field(default=None, max_length=2000)


class InvitationRead(ORMModel):
    id: int
    invited_by: int
    invited_email: str
    invited_name: Optional[str] = None
    home_id: Optional[int] = None
    role: str
    status: str
    token: str
    message: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime
    home: Optional[HomeRead] = None


# --- Connections ---


class ConnectionRead(ORMModel):
    id: int
    home_id: int
    homeowner_id: int
    contractor_id: int
    status: str
    established_via: Optional[str] = None
    verified_service_count: int
    total_spent: Decimal
    last_service_date: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    contractor: Optional[UserSummary] = None
    homeowner: Optional[UserSummary] = None


# --- Service workflow ---


class ServiceRequestCreate(BaseModel):
    connection_id: int
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    urgency: Literal["LOW", "NORMAL", "HIGH", "EMERGENCY"] = "NORMAL"
    budget_min: Optional[Decimal] = Field(default=None, ge=0)
    budget_max: Optional[Decimal] = Field(default=None, ge=0)
    desired_date: Optional[UTCDateTime] = None

    @model_validator(mode="after")
    def _check_budget(self) -> "ServiceRequestCreate":
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("budget_min cannot exceed budget_max")
        return self


class QuoteItemIn(BaseModel):
    item: str = Field(min_length=1)
    qty: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)


class QuoteItemRead(ORMModel):
    id: int
    item: str
    qty: Decimal
    unit_price: Decimal
    total: Decimal


class QuoteCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    items: List[QuoteItemIn] = Field(min_length=1)
    expires_at: Optional[UTCDateTime] = None


class QuoteUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    items: Optional[List[QuoteItemIn]] = None
    expires_at: Optional[UTCDateTime] = None


class QuoteRead(ORMModel):
    id: int
    service_request_id: int
    title: str
    description: Optional[str] = None
    total_amount: Decimal
    status: str
    expires_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    items: List[QuoteItemRead] = []


class ServiceRequestRead(ORMModel):
    id: int
    connection_id: int
    home_id: int
    homeowner_id: int
    contractor_id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    urgency: str
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    desired_date: Optional[datetime] = None
    photos: List[str] = []
    status: str
    responded_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    quotes: List[QuoteRead] = []


class CompletionRecord(BaseModel):
    service_type: Optional[str] = None
    service_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    warranty_included: bool = False
    warranty_length: Optional[str] = None
    warranty_details: Optional[str] = None


class CompleteWork(BaseModel):
    record: Optional[CompletionRecord] = None


# --- Records & warranties ---


class ServiceRecordCreate(BaseModel):
    service_type: str = Field(min_length=1)
    service_date: UTCDateTime
    description: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    warranty_included: bool = False
    warranty_length: Optional[str] = None
    warranty_details: Optional[str] = None


class ServiceRecordUpdate(BaseModel):
    service_type: Optional[str] = None
    service_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    warranty_included: Optional[bool] = None
    warranty_length: Optional[str] = None
    warranty_details: Optional[str] = None


class ServiceRecordRead(ORMModel):
    id: int
    service_request_id: Optional[int] = None
    home_id: int
    contractor_id: int
    service_type: str
    service_date: datetime
    description: Optional[str] = None
    cost: Optional[Decimal] = None
    photos: List[str] = []
    status: str
    is_verified: bool
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    warranty_included: bool
    warranty_length: Optional[str] = None
    warranty_details: Optional[str] = None
    created_at: datetime


class RejectBody(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class WarrantyCreate(BaseModel):
    item: str = Field(min_length=1)
    provider: Optional[str] = None
    policy_no: Optional[str] = None
    purchased_at: Optional[UTCDateTime] = None
    expires_at: Optional[UTCDateTime] = None
    note: Optional[str] = None
    service_record_id: Optional[int] = None


class WarrantyRead(ORMModel):
    id: int
    home_id: int
    service_record_id: Optional[int] = None
    item: str
    provider: Optional[str] = None
    policy_no: Optional[str] = None
    purchased_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    status: str
    note: Optional[str] = None
    photos: List[str] = []
    created_by: int
    accepted_by: Optional[int] = None
    accepted_at: Optional[datetime] = None


# --- Reminders ---


class ReminderCreate(BaseModel):
    title: str = Field(min_length=1)
    due_at: UTCDateTime
    note: Optional[str] = None


class ReminderUpdate(BaseModel):
    title: Optional[str] = None
    due_at: Optional[UTCDateTime] = None
    note: Optional[str] = None


class ReminderRead(ORMModel):
    id: int
    title: str
    due_at: datetime
    note: Optional[str] = None
    status: str
    created_at: datetime
    is_overdue: bool = False


class HomeReminderRead(ReminderRead):
    home_id: int
    photos: List[str] = []
    completed_at: Optional[datetime] = None


# --- Messaging ---


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)
    subject: Optional[str] = None


class AttachmentRead(ORMModel):
    id: int
    key: str
    url: str
    filename: str
    mime_type: Optional[str] = None
    size: Optional[int] = None
    created_at: datetime


class MessageRead(ORMModel):
    id: int
    connection_id: int
    thread_id: Optional[int] = None
    sender_id: int
    content: str
    created_at: datetime
    attachments: List[AttachmentRead] = []


class ConversationRead(BaseModel):
    connection: ConnectionRead
    messages: List[MessageRead]
    poll_interval_seconds: int


class ConversationSummaryRead(BaseModel):
    connection: ConnectionRead
    last_message: Optional[MessageRead] = None
    unread_count: int


class ConversationList(BaseModel):
    conversations: List[ConversationSummaryRead]
    total_unread: int
    poll_interval_seconds: int


# --- Uploads ---


class PresignBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    home_id: int = Field(alias="homeId")
    filename: str = Field(min_length=1)
    content_type: str = Field(alias="contentType", min_length=1)
    size: StrictInt = Field(ge=0)
    record_id: Optional[int] = Field(default=None, alias="recordId")
    warranty_id: Optional[int] = Field(default=None, alias="warrantyId")
    reminder_id: Optional[int] = Field(default=None, alias="reminderId")
    service_request_id: Optional[int] = Field(default=None, alias="serviceRequestId")
    connection_id: Optional[int] = Field(default=None, alias="connectionId")


class PresignResponse(BaseModel):
    key: str
    url: str
    publicUrl: str


class CommitFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    size: Optional[StrictInt] = Field(default=None, ge=0)


class CommitBody(BaseModel):
    files: List[CommitFile] = Field(min_length=1)


# --- Transfers ---


class TransferCreate(BaseModel):
    recipient_email: EmailStr
    message: Optional[str] = None


class TransferRead(ORMModel):
    id: int
    home_id: int
    from_user_id: int
    to_user_id: Optional[int] = None
    recipient_email: str
    token: str
    status: str
    message: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


# --- Notifications ---


class NotificationRead(ORMModel):
    id: int
    user_id: int
    channel: str
    subject: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime
    read_at: Optional[datetime] = None


# --- Admin ---


class UserIdBody(BaseModel):
    userId: int


class RoleChange(BaseModel):
    role: Literal["HOMEOWNER", "PRO", "ADMIN"]


class AdminUserRow(UserRead):
    pass


class AdminHomeRow(HomeRead):
    owner: Optional[UserSummary] = None


class AdminTransferRow(TransferRead):
    home: Optional[HomeRead] = None
    from_user: Optional[UserSummary] = None


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
    counts: Dict[str, int] = {}


class UserPage(PageMeta):
    items: List[AdminUserRow]


class HomePage(PageMeta):
    items: List[AdminHomeRow]


class TransferPage(PageMeta):
    items: List[AdminTransferRow]


class ConnectionPage(PageMeta):
    items: List[ConnectionRead]


class ServiceRequestPage(PageMeta):
    items: List[ServiceRequestRead]


class ImpersonationToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    impersonated_user_id: int
    expires_in_minutes: int
