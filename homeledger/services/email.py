import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..config import Settings

logger = logging.getLogger(__name__)

MAX_LOG_RECIPIENTS = 3
MAX_SUBJECT_PREVIEW = 12


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]

    @property
    def ok(self) -> bool:
        return self.error is None


def _mask_email(value: str) -> str:
    if "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if not name:
        masked = "***"
    elif len(name) <= 2:
        masked = f"{name[0]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if not subject:
        return ""
    return f"{subject[:MAX_SUBJECT_PREVIEW]}... (len={len(subject)})"


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        cleaned = (email or "").strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        normalized.append(cleaned)
    return normalized


class EmailService:
    """Sends transactional mail through the backend named in the settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.backend = (settings.email_backend or "local").strip().strip("'\"").lower()

    def log_configuration(self) -> None:
        s = self.settings
        logger.info(
            "Email configuration: backend=%s sendgrid_api_key=%s email_host=%s email_host_user=%s "
            "email_from_address=%s email_reply_to=%s",
            self.backend,
            bool(s.sendgrid_api_key),
            bool(s.email_host),
            bool(s.email_host_user),
            bool(s.email_from_address),
            bool(s.email_reply_to),
        )

    def _resolve_sender(self) -> Tuple[str, str]:
        from_address = self.settings.email_from_address or "no-reply@homeledger.app"
        return from_address, self.settings.email_from_name or "HomeLedger"

    def _write_local_email(self, subject: str, body: str, recipients: List[str]) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        safe_subject = "".join(ch for ch in subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
        output_dir = Path(self.settings.email_output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"{timestamp}_{safe_subject.replace(' ', '_')}.txt"
        path.write_text("\n".join([f"Subject: {subject}", f"Recipients: {', '.join(recipients)}", "", body]))
        logger.info("[LOCAL EMAIL] %s", path)
        return str(path)

    def _send_via_sendgrid(self, subject: str, body: str, recipients: List[str]) -> SendResult:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Email, Mail

        from_address, display_name = self._resolve_sender()
        if not self.settings.sendgrid_api_key:
            raise RuntimeError("SendGrid backend requires SENDGRID_API_KEY.")
        message = Mail(
            from_email=Email(email=from_address, name=display_name),
            to_emails=recipients,
            subject=subject,
            plain_text_content=body,
        )
        message.reply_to = Email(email=self.settings.email_reply_to or from_address)
        response = SendGridAPIClient(self.settings.sendgrid_api_key).send(message)
        request_id = None
        if isinstance(response.headers, dict):
            request_id = response.headers.get("X-Message-Id") or response.headers.get("X-Request-Id")
        logger.info(
            "Sent email via SendGrid to %d recipients (status=%s request_id=%s).",
            len(recipients),
            response.status_code,
            request_id,
        )
        return SendResult(backend="sendgrid", status_code=response.status_code, request_id=request_id, error=None)

    def _send_via_smtp(self, subject: str, body: str, recipients: List[str]) -> SendResult:
        s = self.settings
        if not s.email_host:
            raise RuntimeError("SMTP backend requires EMAIL_HOST.")
        from_address, display_name = self._resolve_sender()

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((display_name, from_address))
        message["To"] = ", ".join(recipients)
        message["Reply-To"] = s.email_reply_to or from_address
        message.set_content(body)

        with smtplib.SMTP(s.email_host, s.email_port or 587) as connection:
            connection.ehlo()
            if s.email_use_tls:
                connection.starttls(context=ssl.create_default_context())
                connection.ehlo()
            if s.email_host_user and s.email_host_password:
                connection.login(s.email_host_user, s.email_host_password)
            connection.send_message(message)
        logger.info("Sent email via SMTP to %d recipients.", len(recipients))
        return SendResult(backend="smtp", status_code=250, request_id=None, error=None)

    def send(self, subject: str, body: str, recipients: Iterable[str]) -> SendResult:
        """Deliver one message; failures are logged and reported in the result, never raised."""
        recipient_list = _normalize_recipients(recipients)
        if not recipient_list:
            logger.info("Email dispatch skipped: no recipients (subject=%s).", _mask_subject(subject))
            return SendResult(backend=self.backend, status_code=None, request_id=None, error="No recipients provided.")

        masked = [_mask_email(addr) for addr in recipient_list[:MAX_LOG_RECIPIENTS]]
        if len(recipient_list) > MAX_LOG_RECIPIENTS:
            masked.append(f"+{len(recipient_list) - MAX_LOG_RECIPIENTS} more")
        logger.info("Dispatching email backend=%s to=%s subject=%s", self.backend, masked, _mask_subject(subject))

        try:
            if self.backend == "sendgrid":
                return self._send_via_sendgrid(subject, body, recipient_list)
            if self.backend == "smtp":
                return self._send_via_smtp(subject, body, recipient_list)
            if self.backend != "local":
                logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local stub.", self.backend)
            self._write_local_email(subject, body, recipient_list)
            return SendResult(backend="local", status_code=200, request_id=None, error=None)
        except Exception as exc:
            logger.exception("Email dispatch failed for backend=%s.", self.backend)
            return SendResult(backend=self.backend, status_code=None, request_id=None, error=str(exc))

    # --- Composed messages ---

    def _link(self, path: str) -> str:
        return f"{self.settings.app_base_url.rstrip('/')}/{path.lstrip('/')}"

    def send_invitation(self, invitation, inviter_name: str, home_address: Optional[str]) -> SendResult:
        where = f" for {home_address}" if home_address else ""
        subject = f"{inviter_name} invited you to connect on HomeLedger"
        lines = [
            f"{inviter_name} has invited you to join as a {invitation.role.lower()}{where}.",
        ]
        if invitation.message:
            lines.extend(["", invitation.message])
        lines.extend(
            [
                "",
                f"Accept the invitation: {self._link(f'invite/{invitation.token}')}",
                f"This invitation expires on {invitation.expires_at:%B %d, %Y}.",
            ]
        )
        return self.send(subject, "\n".join(lines), [invitation.invited_email])

    def send_transfer(self, transfer, sender_name: str, home_address: str) -> SendResult:
        subject = f"{sender_name} wants to transfer {home_address} to you"
        body = "\n".join(
            [
                f"{sender_name} has started a transfer of {home_address} on HomeLedger.",
                "Accepting moves the home, its records and warranties to your account.",
                "",
                f"Review the transfer: {self._link(f'transfers/{transfer.token}')}",
                f"This transfer expires on {transfer.expires_at:%B %d, %Y}.",
            ]
        )
        return self.send(subject, body, [transfer.recipient_email])

    def send_disconnect_notice(self, contractor_email: str, homeowner_name: str, home_address: str) -> SendResult:
        subject = f"{homeowner_name} ended your connection for {home_address}"
        body = "\n".join(
            [
                f"{homeowner_name} has disconnected from you for {home_address}.",
                "Open service requests on this connection were cancelled.",
                "Your documented service history remains on record.",
            ]
        )
        return self.send(subject, body, [contractor_email])
