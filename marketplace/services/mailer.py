# marketplace/services/mailer.py
import base64
import logging
import time
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from typing import Optional

import requests

from marketplace.core.config import settings
from marketplace.core.errors import (
    EmailAuthError,
    EmailNotConfigured,
    MarketplaceError,
    RateLimited,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


@dataclass
class OutgoingEmail:
    to: str
    to_name: str
    from_display_name: str
    reply_to: str
    subject: str
    body: str


def build_mime(email: OutgoingEmail, sender_address: str = "") -> EmailMessage:
    msg = EmailMessage()
    msg["To"] = formataddr((email.to_name, email.to))
    msg["From"] = formataddr((email.from_display_name, sender_address)) if sender_address else email.from_display_name
    if email.reply_to:
        msg["Reply-To"] = email.reply_to
    msg["Subject"] = email.subject
    msg.set_content(email.body)
    return msg


def map_provider_error(status: int, reason: str = "") -> MarketplaceError:
    r = (reason or "").lower()
    if status == 429 or "ratelimit" in r or "quota" in r:
        return RateLimited("EMAIL_RATE_LIMITED", "Too many emails right now. Please try again later.")
    if status in (401, 403) or "invalid_grant" in r or "unauthorized_client" in r:
        return EmailAuthError()
    return UpstreamUnavailable("EMAIL_PROVIDER_DOWN", "Email could not be sent. Please try again.")


class Mailer:
    name = "unknown"

    def send(self, email: OutgoingEmail) -> str:
        """Deliver the message and return the provider's message id."""
        raise NotImplementedError


class ConsoleMailer(Mailer):
    name = "console"

    def send(self, email: OutgoingEmail) -> str:
        message_id = f"console-{uuid.uuid4().hex[:16]}"
        logger.info(
            "EMAIL (not sent) id=%s to=%s subject=%r reply_to=%s\n%s",
            message_id, email.to, email.subject, email.reply_to, email.body,
        )
        return message_id


class GmailMailer(Mailer):
    """Sends through the Gmail REST API with an offline refresh token."""

    name = "gmail"

    def __init__(self, *, client_id: str, client_secret: str, refresh_token: str,
                 sender_address: str = "", timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.sender_address = sender_address
        self.timeout = timeout
        self.session = session or requests.Session()
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    def _reason(self, r: requests.Response) -> str:
        try:
            data = r.json()
        except ValueError:
            return ""
        if not isinstance(data, dict):
            return ""
        err = data.get("error")
        if isinstance(err, dict):
            reasons = [str(e.get("reason") or "") for e in err.get("errors") or [] if isinstance(e, dict)]
            return " ".join([str(err.get("status") or ""), *reasons])
        return str(err or "")

    def access_token(self) -> str:
        if self._access_token and time.time() < self._expires_at - 60:
            return self._access_token
        try:
            r = self.session.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("gmail token refresh failed: %s", e)
            raise UpstreamUnavailable("EMAIL_PROVIDER_DOWN", "Email could not be sent. Please try again.")
        if r.status_code != 200:
            reason = self._reason(r)
            logger.error("gmail token refresh http_%s reason=%s", r.status_code, reason)
            raise map_provider_error(r.status_code, reason)
        try:
            data = r.json()
        except ValueError:
            data = None
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("gmail token refresh returned no access_token")
            raise UpstreamUnavailable("EMAIL_PROVIDER_DOWN", "Email could not be sent. Please try again.")
        try:
            expires_in = int(data.get("expires_in") or 3600)
        except (TypeError, ValueError):
            expires_in = 3600
        self._access_token = str(token)
        self._expires_at = time.time() + expires_in
        return self._access_token

    def send(self, email: OutgoingEmail) -> str:
        msg = build_mime(email, self.sender_address)
        raw = base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
        token = self.access_token()
        try:
            r = self.session.post(
                GMAIL_SEND_URL,
                json={"raw": raw},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("gmail send failed to=%s: %s", email.to, e)
            raise UpstreamUnavailable("EMAIL_PROVIDER_DOWN", "Email could not be sent. Please try again.")
        if r.status_code == 401:
            self._access_token = None
        if not 200 <= r.status_code < 300:
            reason = self._reason(r)
            logger.error("gmail send http_%s to=%s reason=%s", r.status_code, email.to, reason)
            raise map_provider_error(r.status_code, reason)
        try:
            data = r.json()
        except ValueError:
            data = None
        # a 2xx means Gmail accepted the message; only the id is lost
        message_id = str(data.get("id") or "") if isinstance(data, dict) else ""
        if not message_id:
            logger.warning("gmail send http_%s to=%s returned no message id", r.status_code, email.to)
        logger.info("gmail sent id=%s to=%s", message_id, email.to)
        return message_id


def build_mailer(cfg) -> Mailer:
    mode = (getattr(cfg, "EMAIL_MODE", "console") or "console").strip().lower()
    if mode == "console":
        return ConsoleMailer()
    if mode != "gmail":
        logger.error("unknown EMAIL_MODE=%s", mode)
        raise EmailNotConfigured()
    missing = [
        key for key in ("GMAIL_CLIENT_ID", "GMAIL_CLIENT_SECRET", "GMAIL_REFRESH_TOKEN")
        if not (getattr(cfg, key, "") or "").strip()
    ]
    if missing:
        logger.error("gmail mailer misconfigured, missing %s", ", ".join(missing))
        raise EmailNotConfigured()
    return GmailMailer(
        client_id=cfg.GMAIL_CLIENT_ID,
        client_secret=cfg.GMAIL_CLIENT_SECRET,
        refresh_token=cfg.GMAIL_REFRESH_TOKEN,
        sender_address=cfg.EMAIL_SENDER_ADDRESS,
        timeout=cfg.EMAIL_TIMEOUT_SECONDS,
    )


class DisabledMailer(Mailer):
    name = "disabled"

    def send(self, email: OutgoingEmail) -> str:
        raise EmailNotConfigured()


@lru_cache()
def get_mailer() -> Mailer:
    try:
        return build_mailer(settings)
    except EmailNotConfigured:
        return DisabledMailer()
