"""Re-runnable QA fixture data.

Every row created here carries the ``QA_SEED_V1`` tag (in a title, content,
token, key or meta field) so a later run can find and replace it instead of
duplicating it. Users are matched by email and updated in place.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Mapping

from sqlalchemy.orm import Session

from ..auth.jwt import get_password_hash
from ..db import atomic
from ..models.models import (
    Attachment,
    Connection,
    ContractorReminder,
    Home,
    HomeTransfer,
    Invitation,
    Message,
    MessageRead,
    ProProfile,
    Quote,
    QuoteItem,
    Reminder,
    ServiceRecord,
    ServiceRequest,
    Thread,
    User,
    Warranty,
    utcnow,
)
from ..services.access import normalize_address

logger = logging.getLogger(__name__)

SEED_TAG = "QA_SEED_V1"
DEFAULT_DOMAIN = "test.yourdomain.com"
SEED_PASSWORD = "changeme"

HOME_ADDRESS = {
    "address": "123 Seed St",
    "address_line2": "Unit 4",
    "city": "Testville",
    "state": "TX",
    "zip": "75001",
}


def seed_emails(domain: str) -> Dict[str, str]:
    return {
        "ho_primary": f"ho.primary@{domain}",
        "ho_secondary": f"ho.secondary@{domain}",
        "pro_approved": f"pro.contractor.approved@{domain}",
        "pro_pending": f"pro.contractor.pending@{domain}",
        "pro_rejected": f"pro.contractor.rejected@{domain}",
        "unverified": f"auth.unverified@{domain}",
        "invite_recipient": f"invite.recipient@{domain}",
    }


def _tagged(text: str) -> str:
    return f"[{SEED_TAG}] {text}"


def assert_safe(env: Mapping[str, str]) -> None:
    if env.get("QA_SEED") != "1":
        raise RuntimeError("Refusing to run seed. Set QA_SEED=1 to run this script.")
    if (env.get("APP_ENV") or "").strip().lower() == "production":
        raise RuntimeError("Refusing to run seed in production.")


@dataclass
class SeedSummary:
    domain: str
    homeowner_id: int
    contractor_id: int
    home_id: int
    connection_id: int


def _upsert_user(session: Session, email: str, name: str, role: str, *, pro_status=None, verified=True) -> User:
    user = session.query(User).filter(User.email == email).first()
    if not user:
        user = User(email=email, hashed_password=get_password_hash(SEED_PASSWORD))
        session.add(user)
    user.name = name
    user.role = role
    user.pro_status = pro_status
    user.email_verified = utcnow() if verified else None
    user.profile_complete = True
    user.is_suspended = False
    session.flush()
    return user


def _upsert_users(session: Session, emails: Dict[str, str]) -> Dict[str, User]:
    users = {
        "ho_primary": _upsert_user(session, emails["ho_primary"], "QA Homeowner Primary", "HOMEOWNER"),
        "ho_secondary": _upsert_user(session, emails["ho_secondary"], "QA Homeowner Secondary", "HOMEOWNER"),
        "pro_approved": _upsert_user(
            session, emails["pro_approved"], "QA Contractor Approved", "PRO", pro_status="APPROVED"
        ),
        "pro_pending": _upsert_user(
            session, emails["pro_pending"], "QA Contractor Pending", "PRO", pro_status="PENDING"
        ),
        "pro_rejected": _upsert_user(
            session, emails["pro_rejected"], "QA Contractor Rejected", "PRO", pro_status="REJECTED"
        ),
        "unverified": _upsert_user(session, emails["unverified"], "QA Unverified", "HOMEOWNER", verified=False),
    }

    contractor = users["pro_approved"]
    profile = session.query(ProProfile).filter(ProProfile.user_id == contractor.id).first()
    if not profile:
        profile = ProProfile(user_id=contractor.id)
        session.add(profile)
    profile.type = "CONTRACTOR"
    profile.business_name = "QA Contracting Co."
    profile.verified = True
    profile.rating = 4.9
    profile.phone = "5551234567"
    profile.specialties = ["Plumbing", "Appliance"]
    profile.service_areas = ["Testville"]
    session.flush()
    return users


def _find_home(session: Session, owner_id: int):
    return (
        session.query(Home)
        .filter(
            Home.owner_id == owner_id,
            Home.address == HOME_ADDRESS["address"],
            Home.city == HOME_ADDRESS["city"],
            Home.state == HOME_ADDRESS["state"],
            Home.zip == HOME_ADDRESS["zip"],
        )
        .first()
    )


def _get_or_create_home(session: Session, owner: User) -> Home:
    home = _find_home(session, owner.id)
    if not home:
        home = Home(
            owner_id=owner.id,
            address=HOME_ADDRESS["address"],
            city=HOME_ADDRESS["city"],
            state=HOME_ADDRESS["state"],
            zip=HOME_ADDRESS["zip"],
            normalized_address=normalize_address(
                HOME_ADDRESS["address"], HOME_ADDRESS["city"], HOME_ADDRESS["state"], HOME_ADDRESS["zip"]
            ),
        )
        session.add(home)
    home.address_line2 = HOME_ADDRESS["address_line2"]
    home.meta = {"seed": SEED_TAG}
    home.verification_status = "VERIFIED_BY_POSTCARD"
    home.verification_method = "POSTCARD"
    home.verified_at = utcnow()
    home.verified_by_user_id = owner.id
    session.flush()
    return home


def _find_connection(session: Session, home_id: int, homeowner_id: int, contractor_id: int):
    return (
        session.query(Connection)
        .filter(
            Connection.home_id == home_id,
            Connection.homeowner_id == homeowner_id,
            Connection.contractor_id == contractor_id,
        )
        .first()
    )


def _get_or_create_connection(session: Session, home: Home, homeowner: User, contractor: User) -> Connection:
    connection = _find_connection(session, home.id, homeowner.id, contractor.id)
    if not connection:
        connection = Connection(home_id=home.id, homeowner_id=homeowner.id, contractor_id=contractor.id)
        session.add(connection)
    now = utcnow()
    connection.status = "ACTIVE"
    connection.invited_by = homeowner.id
    connection.established_via = "INVITATION"
    connection.accepted_at = now
    connection.archived_at = None
    connection.tags = [SEED_TAG]
    # Rollups reflect the single approved record created below.
    connection.verified_service_count = 1
    connection.total_spent = Decimal("1200.00")
    connection.last_service_date = now - timedelta(days=18)
    session.flush()
    return connection


def _delete_connection_graph(session: Session, connection_id: int, tagged_only: bool) -> None:
    def scoped(query, column):
        return query.filter(column.startswith(_tagged(""))) if tagged_only else query

    def remove(model, column, ids) -> None:
        session.query(model).filter(column.in_(ids)).delete(synchronize_session=False)

    message_ids = scoped(
        session.query(Message.id).filter(Message.connection_id == connection_id), Message.content
    ).scalar_subquery()
    thread_ids = scoped(
        session.query(Thread.id).filter(Thread.connection_id == connection_id), Thread.subject
    ).scalar_subquery()
    request_ids = scoped(
        session.query(ServiceRequest.id).filter(ServiceRequest.connection_id == connection_id), ServiceRequest.title
    ).scalar_subquery()
    quote_ids = session.query(Quote.id).filter(Quote.service_request_id.in_(request_ids)).scalar_subquery()

    remove(Attachment, Attachment.message_id, message_ids)
    remove(MessageRead, MessageRead.message_id, message_ids)
    remove(Message, Message.id, message_ids)
    session.query(Message).filter(Message.thread_id.in_(thread_ids)).update(
        {Message.thread_id: None}, synchronize_session=False
    )
    remove(Thread, Thread.id, thread_ids)

    remove(Attachment, Attachment.service_request_id, request_ids)
    session.query(ServiceRecord).filter(ServiceRecord.service_request_id.in_(request_ids)).update(
        {ServiceRecord.service_request_id: None}, synchronize_session=False
    )
    remove(QuoteItem, QuoteItem.quote_id, quote_ids)
    remove(Quote, Quote.id, quote_ids)
    remove(ServiceRequest, ServiceRequest.id, request_ids)


def _delete_home_graph(session: Session, home_id: int, contractor_id: int, tagged_only: bool) -> None:
    attachments = session.query(Attachment).filter(Attachment.home_id == home_id)
    if tagged_only:
        attachments = attachments.filter(Attachment.key.startswith(f"{SEED_TAG}/"))
    attachments.delete(synchronize_session=False)

    warranties = session.query(Warranty).filter(Warranty.home_id == home_id)
    reminders = session.query(Reminder).filter(Reminder.home_id == home_id)
    records = session.query(ServiceRecord).filter(ServiceRecord.home_id == home_id)
    if tagged_only:
        warranties = warranties.filter(Warranty.item.startswith(_tagged("")))
        reminders = reminders.filter(Reminder.title.startswith(_tagged("")))
        records = records.filter(
            ServiceRecord.contractor_id == contractor_id, ServiceRecord.description.contains(SEED_TAG)
        )
    warranties.delete(synchronize_session=False)
    reminders.delete(synchronize_session=False)
    # Untagged warranties may still point at seeded records.
    record_ids = records.with_entities(ServiceRecord.id).scalar_subquery()
    session.query(Warranty).filter(Warranty.service_record_id.in_(record_ids)).update(
        {Warranty.service_record_id: None}, synchronize_session=False
    )
    session.query(Attachment).filter(Attachment.service_record_id.in_(record_ids)).delete(
        synchronize_session=False
    )
    records.delete(synchronize_session=False)


def _reset(session: Session, emails: Dict[str, str]) -> None:
    homeowner = session.query(User).filter(User.email == emails["ho_primary"]).first()
    contractor = session.query(User).filter(User.email == emails["pro_approved"]).first()
    home = _find_home(session, homeowner.id) if homeowner else None

    if home:
        for connection in session.query(Connection).filter(Connection.home_id == home.id).all():
            _delete_connection_graph(session, connection.id, tagged_only=False)
        session.query(Connection).filter(Connection.home_id == home.id).delete(synchronize_session=False)
        _delete_home_graph(session, home.id, contractor.id if contractor else 0, tagged_only=False)
        session.query(Invitation).filter(Invitation.home_id == home.id).delete(synchronize_session=False)
        session.query(HomeTransfer).filter(HomeTransfer.home_id == home.id).delete(synchronize_session=False)
        session.query(Home).filter(Home.id == home.id).delete(synchronize_session=False)

    if contractor:
        session.query(ContractorReminder).filter(ContractorReminder.pro_id == contractor.id).delete(
            synchronize_session=False
        )
        session.query(ProProfile).filter(ProProfile.user_id == contractor.id).delete(synchronize_session=False)

    session.query(Invitation).filter(
        Invitation.invited_email.in_(list(emails.values())) | Invitation.token.startswith(SEED_TAG)
    ).delete(synchronize_session=False)
    session.flush()
    session.expire_all()
    logger.info("QA seed reset complete.")


def _cleanup_tagged(session: Session, connection: Connection, home: Home, contractor: User) -> None:
    _delete_connection_graph(session, connection.id, tagged_only=True)
    _delete_home_graph(session, home.id, contractor.id, tagged_only=True)
    session.query(ContractorReminder).filter(
        ContractorReminder.pro_id == contractor.id, ContractorReminder.title.startswith(_tagged(""))
    ).delete(synchronize_session=False)
    session.query(Invitation).filter(Invitation.token.startswith(SEED_TAG)).delete(synchronize_session=False)
    session.flush()


def _seed_messages(session: Session, connection: Connection, homeowner: User, contractor: User) -> None:
    now = utcnow()
    first = Message(
        connection_id=connection.id,
        sender_id=homeowner.id,
        content=_tagged("Hi! Can you look at the water heater leak?"),
        created_at=now - timedelta(hours=2),
    )
    reply = Message(
        connection_id=connection.id,
        sender_id=contractor.id,
        content=_tagged("Yep, I can come by tomorrow afternoon."),
        created_at=now - timedelta(minutes=90),
    )
    photo = Message(
        connection_id=connection.id,
        sender_id=homeowner.id,
        content=_tagged("Great. Here's a photo of the leak."),
        created_at=now - timedelta(minutes=10),
    )
    session.add_all([first, reply, photo])
    session.flush()

    session.add(MessageRead(message_id=reply.id, user_id=homeowner.id))
    session.add(
        Attachment(
            home_id=connection.home_id,
            message_id=photo.id,
            key=f"{SEED_TAG}/messages/leak.jpg",
            url="https://example.com/qa/leak.jpg",
            filename="leak.jpg",
            mime_type="image/jpeg",
            size=245123,
            uploaded_by=homeowner.id,
        )
    )
    session.add(
        Thread(
            connection_id=connection.id,
            home_id=connection.home_id,
            subject=_tagged("Water heater discussion thread"),
        )
    )


def _seed_reminders(session: Session, home: Home, homeowner: User, contractor: User) -> None:
    now = utcnow()
    session.add_all(
        [
            Reminder(
                home_id=home.id,
                title=_tagged("Follow up with contractor"),
                due_at=now - timedelta(days=1),
                note="Overdue reminder to test past-due UI.",
                created_by=homeowner.id,
            ),
            Reminder(
                home_id=home.id,
                title=_tagged("Change HVAC filter"),
                due_at=now + timedelta(days=7),
                note="Upcoming reminder to test soon UI.",
                created_by=homeowner.id,
            ),
            ContractorReminder(
                pro_id=contractor.id,
                title=_tagged("Send estimate follow-up"),
                due_at=now + timedelta(days=3),
                status="PENDING",
                note="Contractor reminder (personal).",
            ),
            ContractorReminder(
                pro_id=contractor.id,
                title=_tagged("Close out completed job"),
                due_at=now - timedelta(days=2),
                status="DONE",
                note="Completed reminder state.",
            ),
        ]
    )


def _seed_service_workflow(session: Session, connection: Connection, homeowner: User, contractor: User) -> ServiceRecord:
    now = utcnow()
    common = dict(
        connection_id=connection.id,
        home_id=connection.home_id,
        homeowner_id=homeowner.id,
        contractor_id=contractor.id,
    )
    pending = ServiceRequest(
        title=_tagged("Fix water heater leak"),
        description="Leak near base of tank. Please inspect and advise.",
        urgency="NORMAL",
        status="PENDING",
        **common,
    )
    quoted = ServiceRequest(
        title=_tagged("Replace valve"),
        description="Replace faulty valve and verify operation.",
        urgency="HIGH",
        status="QUOTED",
        responded_at=now - timedelta(days=2),
        **common,
    )
    completed = ServiceRequest(
        title=_tagged("Completed valve replacement"),
        description="Work completed and tested.",
        urgency="NORMAL",
        status="COMPLETED",
        responded_at=now - timedelta(days=20),
        completed_at=now - timedelta(days=18),
        **common,
    )
    session.add_all([pending, quoted, completed])
    session.flush()

    quote = Quote(
        connection_id=connection.id,
        home_id=connection.home_id,
        service_request_id=quoted.id,
        title=_tagged("Valve replacement quote"),
        description="Parts + labor",
        total_amount=Decimal("1200.00"),
        status="SENT",
        expires_at=now + timedelta(days=14),
    )
    quote.items = [
        QuoteItem(item="Valve", qty=Decimal("1"), unit_price=Decimal("400.00"), total=Decimal("400.00")),
        QuoteItem(item="Labor", qty=Decimal("1"), unit_price=Decimal("800.00"), total=Decimal("800.00")),
    ]
    session.add(quote)

    approved = ServiceRecord(
        service_request_id=completed.id,
        home_id=connection.home_id,
        contractor_id=contractor.id,
        service_type=f"Valve Replacement ({SEED_TAG})",
        service_date=now - timedelta(days=18),
        description=f"Replaced valve and verified operation. ({SEED_TAG})",
        cost=Decimal("1200.00"),
        status="APPROVED",
        is_verified=True,
        approved_by=homeowner.id,
        approved_at=now - timedelta(days=17),
        verified_by=homeowner.id,
        verified_at=now - timedelta(days=17),
        warranty_included=True,
        warranty_length="12 months",
        warranty_details="Covers workmanship and parts for 12 months.",
    )
    unverified = ServiceRecord(
        home_id=connection.home_id,
        contractor_id=contractor.id,
        service_type=f"Water Heater Inspection ({SEED_TAG})",
        service_date=now - timedelta(days=5),
        description=f"Inspected unit; recommended replacement of valve. ({SEED_TAG})",
        cost=Decimal("250.00"),
        status="DOCUMENTED_UNVERIFIED",
        is_verified=False,
        warranty_included=False,
    )
    session.add_all([approved, unverified])
    session.flush()

    session.add(
        Attachment(
            home_id=connection.home_id,
            service_record_id=approved.id,
            key=f"{SEED_TAG}/service-records/invoice.pdf",
            url="https://example.com/qa/invoice.pdf",
            filename="invoice.pdf",
            mime_type="application/pdf",
            size=912345,
            uploaded_by=contractor.id,
        )
    )
    return approved


def _seed_warranties(session: Session, home: Home, homeowner: User, contractor: User, record: ServiceRecord) -> None:
    now = utcnow()
    session.add_all(
        [
            Warranty(
                home_id=home.id,
                item=_tagged("Water Heater Coverage"),
                provider="QA Warranty Co.",
                policy_no="QA-PENDING-001",
                purchased_at=now - timedelta(days=10),
                expires_at=now + timedelta(days=20),
                status="PENDING",
                created_by=contractor.id,
                service_record_id=record.id,
                note="Pending acceptance warranty.",
            ),
            Warranty(
                home_id=home.id,
                item=_tagged("Valve Replacement Warranty"),
                provider="QA Warranty Co.",
                policy_no="QA-ACTIVE-001",
                purchased_at=now - timedelta(days=30),
                expires_at=now + timedelta(days=10),
                status="ACTIVE",
                accepted_by=homeowner.id,
                accepted_at=now - timedelta(days=29),
                created_by=contractor.id,
                service_record_id=record.id,
                note="Accepted warranty (active).",
            ),
            Warranty(
                home_id=home.id,
                item=_tagged("Old Heater Coverage"),
                provider="QA Warranty Co.",
                policy_no="QA-REJECT-001",
                purchased_at=now - timedelta(days=200),
                expires_at=now - timedelta(days=10),
                status="REJECTED",
                created_by=contractor.id,
                note="Rejected warranty state.",
            ),
        ]
    )


def _seed_invitations(session: Session, home: Home, homeowner: User, contractor: User, emails: Dict[str, str]) -> None:
    now = utcnow()
    session.add_all(
        [
            Invitation(
                invited_by=contractor.id,
                invited_email=emails["invite_recipient"],
                invited_name="Invite Recipient",
                home_id=home.id,
                role="HOMEOWNER",
                status="PENDING",
                token=f"{SEED_TAG}_INV_PENDING_HOMEOWNER",
                message="Join this home to view service details.",
                expires_at=now + timedelta(days=7),
            ),
            Invitation(
                invited_by=homeowner.id,
                invited_email=emails["pro_approved"],
                invited_name="Invited Contractor",
                home_id=home.id,
                role="PRO",
                status="EXPIRED",
                token=f"{SEED_TAG}_INV_EXPIRED_PRO",
                message="Expired invitation state.",
                expires_at=now - timedelta(days=1),
            ),
        ]
    )


def run_qa_seed(session: Session, domain: str = DEFAULT_DOMAIN, reset: bool = False) -> SeedSummary:
    emails = seed_emails(domain)
    with atomic(session):
        if reset:
            _reset(session, emails)

        users = _upsert_users(session, emails)
        homeowner = users["ho_primary"]
        contractor = users["pro_approved"]
        home = _get_or_create_home(session, homeowner)
        connection = _get_or_create_connection(session, home, homeowner, contractor)

        _cleanup_tagged(session, connection, home, contractor)

        _seed_messages(session, connection, homeowner, contractor)
        _seed_reminders(session, home, homeowner, contractor)
        record = _seed_service_workflow(session, connection, homeowner, contractor)
        _seed_warranties(session, home, homeowner, contractor, record)
        _seed_invitations(session, home, homeowner, contractor, emails)
        session.flush()

        summary = SeedSummary(
            domain=domain,
            homeowner_id=homeowner.id,
            contractor_id=contractor.id,
            home_id=home.id,
            connection_id=connection.id,
        )

    logger.info(
        "QA seed complete for %s: home %s (%s), connection %s",
        domain,
        summary.home_id,
        home.display_address,
        summary.connection_id,
    )
    return summary
