from enum import Enum


class UserRole(str, Enum):
    HOMEOWNER = "HOMEOWNER"
    PRO = "PRO"
    ADMIN = "ADMIN"


class ProStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ProType(str, Enum):
    CONTRACTOR = "CONTRACTOR"
    REALTOR = "REALTOR"
    INSPECTOR = "INSPECTOR"


class VerificationStatus(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    VERIFIED_BY_POSTCARD = "VERIFIED_BY_POSTCARD"
    VERIFIED_BY_DOCUMENT = "VERIFIED_BY_DOCUMENT"
    VERIFIED_BY_MANUAL = "VERIFIED_BY_MANUAL"


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class ConnectionStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class EstablishedVia(str, Enum):
    INVITATION = "INVITATION"
    VERIFIED_SERVICE = "VERIFIED_SERVICE"
    DIRECT = "DIRECT"


class ServiceRequestStatus(str, Enum):
    PENDING = "PENDING"
    QUOTED = "QUOTED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class QuoteStatus(str, Enum):
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class ServiceRecordStatus(str, Enum):
    DOCUMENTED_UNVERIFIED = "DOCUMENTED_UNVERIFIED"
    DOCUMENTED = "DOCUMENTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class WarrantyStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class ReminderStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class ThreadStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
