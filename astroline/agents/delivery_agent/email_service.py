"""
email_service.py — Report delivery email via the Resend HTTP API.

EmailService.send_report(report) renders the report PDF, attaches it and
posts one message to Resend (POST /emails). Plain HTML body with a link
back to the report page; no template engine.

Errors:
  EmailNotConfiguredError — no RESEND_API_KEY
  EmailDeliveryError      — transport error, timeout or non-2xx from Resend
Callers on the payment path log these; they never undo an unlock.
"""
import asyncio
import base64
import html
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from astroline.agents.report_agent.pdf_generator import generate_report_pdf
from astroline.agents.report_agent.schemas import FullReport

logger = logging.getLogger(__name__)


class EmailError(Exception):
    pass


class EmailNotConfiguredError(EmailError):
    pass


class EmailDeliveryError(EmailError):
    pass


@dataclass
class EmailResult:
    message_id: Optional[str]
    recipient: str


def _mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}" if domain else "***"


class EmailService:

    def __init__(
        self,
        api_key: str,
        base_url: str,
        sender: str,
        reply_to: str,
        public_base_url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._sender = sender
        self._reply_to = reply_to
        self._public_base_url = public_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def report_url(self, report_id: str) -> str:
        return f"{self._public_base_url}/report/{report_id}"

    def build_html(self, report: FullReport) -> str:
        chart = report.natal_chart
        sun = html.escape(f"{chart.sun_sign.symbol} {chart.sun_sign.name}")
        link = html.escape(self.report_url(report.id), quote=True)
        return (
            "<div style=\"font-family:Arial,sans-serif;max-width:560px\">"
            "<h1>Your astrology report is ready</h1>"
            f"<p>Sun sign: <strong>{sun}</strong></p>"
            "<p>Your full report is attached as a PDF. You can also open it online at any time:</p>"
            f"<p><a href=\"{link}\">{link}</a></p>"
            "<p style=\"color:#888;font-size:12px\">Astroline</p>"
            "</div>"
        )

    async def send_report(self, report: FullReport, to: Optional[str] = None) -> EmailResult:
        if not self.enabled:
            raise EmailNotConfiguredError("RESEND_API_KEY is not configured")
        recipient = to or report.user_data.email

        pdf = await asyncio.to_thread(generate_report_pdf, report)
        payload = {
            "from": self._sender,
            "to": [recipient],
            "reply_to": self._reply_to,
            "subject": f"✨ Your astrology report is ready, {report.natal_chart.sun_sign.name}!",
            "html": self.build_html(report),
            "attachments": [{
                "filename": f"astroline-report-{report.id}.pdf",
                "content": base64.b64encode(pdf.getvalue()).decode("ascii"),
            }],
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_key}"},
                transport=self._transport,
            ) as client:
                response = await client.post("/emails", json=payload)
        except httpx.TimeoutException as exc:
            raise EmailDeliveryError(f"Resend timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Resend transport error: {exc}") from exc

        if response.status_code >= 300:
            raise EmailDeliveryError(f"Resend returned HTTP {response.status_code}")

        message_id = response.json().get("id")
        logger.info(
            "Report email sent report_id=%s to=%s message_id=%s",
            report.id, _mask_email(recipient), message_id,
        )
        return EmailResult(message_id=message_id, recipient=recipient)


def make_unlock_callback(report_store, email_service: EmailService):
    """
    Build the reconciler's on_unlock hook: email the freshly unlocked report.

    Skipped (logged) when email is not configured or the report is missing.
    EmailError propagates to the reconciler, which logs it.
    """

    async def deliver_report(report_id: str) -> None:
        if not email_service.enabled:
            logger.info("Email not configured, skipping delivery report_id=%s", report_id)
            return
        report = await report_store.get(report_id)
        if report is None:
            logger.warning("Unlocked report not found for delivery report_id=%s", report_id)
            return
        await email_service.send_report(report)

    return deliver_report
