from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from .enums import (
    ConnectionStatus,
    InvitationStatus,
    QuoteStatus,
    ReminderStatus,
    ServiceRecordStatus,
    ServiceRequestStatus,
    ThreadStatus,
    TransferStatus,
    VerificationStatus,
    WarrantyStatus,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what DateTime columns hand back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="HOMEOWNER")
    pro_status = Column(String, nullable=True)
    email_verified = Column(DateTime, nullable=True)
    profile_complete = Column(Boolean, default=False, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)
    suspended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    pro_profile = orm_relationship("ProProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    homes = orm_relationship("Home", back_populates="owner", foreign_keys="Home.owner_id")
    notifications = orm_relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def has_role(self, role_name: str) -> bool:
        return self.role == role_name

    def has_any_role(self, *role_names: str) -> bool:
        return self.role in role_names

    @property
    def is_approved_pro(self) -> bool:
        return self.role == "PRO" and self.pro_status == "APPROVED"


class ProProfile(Base):
    __tablename__ = "pro_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    type = Column(String, nullable=False, default="CONTRACTOR")
    business_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    license_no = Column(String, nullable=True)
    website = Column(String, nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    rating = Column(Float, nullable=True)
    specialties = Column(JSON, nullable=False, default=list)
    service_areas = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="pro_profile")


class Home(Base):
    __tablename__ = "homes"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    address = Column(String, nullable=False)
    address_line2 = Column(String, nullable=True)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    zip = Column(String, nullable=False)
    normalized_address = Column(String, nullable=False, index=True)
    meta = Column(JSON, nullable=True)
    verification_status = Column(String, nullable=False, default=VerificationStatus.UNVERIFIED.value)
    verification_method = Column(String, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = orm_relationship("User", back_populates="homes", foreign_keys=[owner_id])
    connections = orm_relationship("Connection", back_populates="home")

    @property
    def display_address(self) -> str:
        return f"{self.address}, {self.city}, {self.state} {self.zip}"


class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(Integer, primary_key=True, index=True)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invited_email = Column(String, nullable=False, index=True)
    invited_name = Column(String, nullable=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=True, index=True)
    role = Column(String, nullable=False)
    status = Column(String, nullable=False, default=InvitationStatus.PENDING.value, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    inviter = orm_relationship("User", foreign_keys=[invited_by])
    home = orm_relationship("Home")


class Connection(Base):
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("homeowner_id", "contractor_id", "home_id", name="uq_connection_homeowner_contractor_home"),
    )

    id = Column(Integer, primary_key=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    homeowner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String, nullable=False, default=ConnectionStatus.ACTIVE.value, index=True)
    established_via = Column(String, nullable=True)
    source_record_id = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    verified_service_count = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_service_date = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    home = orm_relationship("Home", back_populates="connections")
    homeowner = orm_relationship("User", foreign_keys=[homeowner_id])
    contractor = orm_relationship("User", foreign_keys=[contractor_id])


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    homeowner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    contractor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    urgency = Column(String, nullable=False, default="NORMAL")
    budget_min = Column(Numeric(12, 2), nullable=True)
    budget_max = Column(Numeric(12, 2), nullable=True)
    desired_date = Column(DateTime, nullable=True)
    photos = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=ServiceRequestStatus.PENDING.value, index=True)
    responded_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    connection = orm_relationship("Connection")
    home = orm_relationship("Home")
    quotes = orm_relationship("Quote", back_populates="service_request", cascade="all, delete-orphan")
    service_record = orm_relationship("ServiceRecord", back_populates="service_request", uselist=False)

    @property
    def active_quote(self):
        for quote in self.quotes:
            if quote.status in (QuoteStatus.SENT.value, QuoteStatus.ACCEPTED.value):
                return quote
        return None


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False)
    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default=QuoteStatus.SENT.value)
    expires_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    service_request = orm_relationship("ServiceRequest", back_populates="quotes")
    items = orm_relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id",
    )


class QuoteItem(Base):
    __tablename__ = "quote_items"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    item = Column(String, nullable=False)
    qty = Column(Numeric(12, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    quote = orm_relationship("Quote", back_populates="items")


class ServiceRecord(Base):
    __tablename__ = "service_records"

    id = Column(Integer, primary_key=True, index=True)
    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_type = Column(String, nullable=False)
    service_date = Column(DateTime, nullable=False)
    description = Column(Text, nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)
    photos = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=ServiceRecordStatus.DOCUMENTED_UNVERIFIED.value, index=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    warranty_included = Column(Boolean, nullable=False, default=False)
    warranty_length = Column(String, nullable=True)
    warranty_details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    home = orm_relationship("Home")
    contractor = orm_relationship("User", foreign_keys=[contractor_id])
    service_request = orm_relationship("ServiceRequest", back_populates="service_record")


class Warranty(Base):
    __tablename__ = "warranties"

    id = Column(Integer, primary_key=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    service_record_id = Column(Integer, ForeignKey("service_records.id"), nullable=True)
    item = Column(String, nullable=False)
    provider = Column(String, nullable=True)
    policy_no = Column(String, nullable=True)
    purchased_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=WarrantyStatus.PENDING.value)
    note = Column(Text, nullable=True)
    photos = Column(JSON, nullable=False, default=list)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    accepted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    message_id = Column(Integer, ForeignKey("messages.id"), nullable=True)
    service_record_id = Column(Integer, ForeignKey("service_records.id"), nullable=True)
    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=True)
    warranty_id = Column(Integer, ForeignKey("warranties.id"), nullable=True)
    reminder_id = Column(Integer, ForeignKey("reminders.id"), nullable=True)
    key = Column(String, nullable=False, index=True)
    url = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    size = Column(BigInteger, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    visibility = Column(String, nullable=False, default="HOME")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    due_at = Column(DateTime, nullable=False)
    note = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=ReminderStatus.PENDING.value)
    photos = Column(JSON, nullable=False, default=list)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ContractorReminder(Base):
    __tablename__ = "contractor_reminders"

    id = Column(Integer, primary_key=True, index=True)
    pro_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    due_at = Column(DateTime, nullable=False)
    note = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=ReminderStatus.PENDING.value)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Thread(Base):
    __tablename__ = "threads"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False)
    subject = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ThreadStatus.ACTIVE.value)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    thread_id = Column(Integer, ForeignKey("threads.id"), nullable=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    reads = orm_relationship("MessageRead", back_populates="message", cascade="all, delete-orphan")
    attachments = orm_relationship("Attachment")


class MessageRead(Base):
    __tablename__ = "message_reads"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_read"),)

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    read_at = Column(DateTime, default=utcnow, nullable=False)

    message = orm_relationship("Message", back_populates="reads")


class HomeTransfer(Base):
    __tablename__ = "home_transfers"

    id = Column(Integer, primary_key=True, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    recipient_email = Column(String, nullable=False, index=True)
    token = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False, default=TransferStatus.PENDING.value, index=True)
    message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    home = orm_relationship("Home")
    from_user = orm_relationship("User", foreign_keys=[from_user_id])
    to_user = orm_relationship("User", foreign_keys=[to_user_id])


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String, nullable=False, default="IN_APP")
    subject = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read_at = Column(DateTime, nullable=True)

    user = orm_relationship("User", back_populates="notifications")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    home_id = Column(Integer, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)
