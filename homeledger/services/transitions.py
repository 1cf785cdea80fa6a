from __future__ import annotations

from typing import Dict, Iterable, Set

from ..core.errors import InvalidStateError
from ..models.enums import (
    ConnectionStatus,
    InvitationStatus,
    QuoteStatus,
    ServiceRecordStatus,
    ServiceRequestStatus,
    TransferStatus,
    WarrantyStatus,
)

INVITATION_TRANSITIONS: Dict[str, Set[str]] = {
    InvitationStatus.PENDING.value: {
        InvitationStatus.ACCEPTED.value,
        InvitationStatus.DECLINED.value,
        InvitationStatus.EXPIRED.value,
        InvitationStatus.CANCELLED.value,
    },
    InvitationStatus.ACCEPTED.value: set(),
    InvitationStatus.DECLINED.value: set(),
    InvitationStatus.EXPIRED.value: set(),
    InvitationStatus.CANCELLED.value: set(),
}

CONNECTION_TRANSITIONS: Dict[str, Set[str]] = {
    ConnectionStatus.PENDING.value: {ConnectionStatus.ACTIVE.value, ConnectionStatus.ARCHIVED.value},
    ConnectionStatus.ACTIVE.value: {ConnectionStatus.ARCHIVED.value},
    ConnectionStatus.ARCHIVED.value: {ConnectionStatus.ACTIVE.value},
}

SERVICE_REQUEST_TRANSITIONS: Dict[str, Set[str]] = {
    ServiceRequestStatus.PENDING.value: {
        ServiceRequestStatus.QUOTED.value,
        ServiceRequestStatus.DECLINED.value,
        ServiceRequestStatus.CANCELLED.value,
    },
    ServiceRequestStatus.QUOTED.value: {
        ServiceRequestStatus.ACCEPTED.value,
        ServiceRequestStatus.DECLINED.value,
        ServiceRequestStatus.CANCELLED.value,
    },
    ServiceRequestStatus.ACCEPTED.value: {ServiceRequestStatus.IN_PROGRESS.value},
    ServiceRequestStatus.IN_PROGRESS.value: {ServiceRequestStatus.COMPLETED.value},
    ServiceRequestStatus.COMPLETED.value: set(),
    ServiceRequestStatus.DECLINED.value: set(),
    ServiceRequestStatus.CANCELLED.value: set(),
}

QUOTE_TRANSITIONS: Dict[str, Set[str]] = {
    QuoteStatus.SENT.value: {QuoteStatus.ACCEPTED.value, QuoteStatus.DECLINED.value, QuoteStatus.EXPIRED.value},
    QuoteStatus.ACCEPTED.value: set(),
    QuoteStatus.DECLINED.value: set(),
    QuoteStatus.EXPIRED.value: set(),
}

SERVICE_RECORD_TRANSITIONS: Dict[str, Set[str]] = {
    ServiceRecordStatus.DOCUMENTED_UNVERIFIED.value: {
        ServiceRecordStatus.APPROVED.value,
        ServiceRecordStatus.REJECTED.value,
    },
    ServiceRecordStatus.DOCUMENTED.value: {
        ServiceRecordStatus.APPROVED.value,
        ServiceRecordStatus.REJECTED.value,
    },
    ServiceRecordStatus.APPROVED.value: set(),
    ServiceRecordStatus.REJECTED.value: set(),
}

WARRANTY_TRANSITIONS: Dict[str, Set[str]] = {
    WarrantyStatus.PENDING.value: {WarrantyStatus.ACTIVE.value, WarrantyStatus.REJECTED.value},
    WarrantyStatus.ACTIVE.value: {WarrantyStatus.EXPIRED.value},
    WarrantyStatus.REJECTED.value: set(),
    WarrantyStatus.EXPIRED.value: set(),
}

TRANSFER_TRANSITIONS: Dict[str, Set[str]] = {
    TransferStatus.PENDING.value: {
        TransferStatus.ACCEPTED.value,
        TransferStatus.DECLINED.value,
        TransferStatus.EXPIRED.value,
        TransferStatus.CANCELLED.value,
    },
    TransferStatus.ACCEPTED.value: set(),
    TransferStatus.DECLINED.value: set(),
    TransferStatus.EXPIRED.value: set(),
    TransferStatus.CANCELLED.value: set(),
}

MACHINES: Dict[str, Dict[str, Set[str]]] = {
    "Invitation": INVITATION_TRANSITIONS,
    "Connection": CONNECTION_TRANSITIONS,
    "ServiceRequest": SERVICE_REQUEST_TRANSITIONS,
    "Quote": QUOTE_TRANSITIONS,
    "ServiceRecord": SERVICE_RECORD_TRANSITIONS,
    "Warranty": WARRANTY_TRANSITIONS,
    "HomeTransfer": TRANSFER_TRANSITIONS,
}


def can_transition(machine: str, current: str, target: str) -> bool:
    return target in MACHINES[machine].get(current, set())


def ensure_transition(machine: str, current: str, target: str) -> None:
    if target not in MACHINES[machine]:
        raise ValueError(f"Invalid {machine} status: {target}")
    if not can_transition(machine, current, target):
        raise InvalidStateError(f"{machine} cannot move from {current} to {target}.")


def ensure_status_in(current: str, allowed: Iterable[str], message: str) -> None:
    if current not in set(allowed):
        raise InvalidStateError(message)
