"""
Email Service for the License Server
Sends transactional HTML email through the Resend HTTP API.
"""
import asyncio
from html import escape
from typing import Any, Dict, Optional

import aiohttp
import structlog

from config import Settings
from errors import EmailNotConfigured, EmailSendFailed

logger = structlog.get_logger(component="email_service")


class EmailService:
    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    @property
    def configured(self) -> bool:
        return bool(self.settings.resend_api_key)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.email_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def send(
        self,
        sender: str,
        to: str,
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send one HTML message to a single recipient."""
        if not self.configured:
            raise EmailNotConfigured()

        payload: Dict[str, Any] = {
            "from": sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if reply_to:
            payload["reply_to"] = reply_to

        headers = {"Authorization": f"Bearer {self.settings.resend_api_key}"}
        try:
            async with self._get_session().post(
                f"{self.settings.resend_base_url}/emails", json=payload, headers=headers
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error("email_send_rejected", status=response.status, body=body, subject=subject)
                    raise EmailSendFailed(detail={"status": response.status, "body": body})
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    # accepted with a 2xx; only the receipt body is unreadable
                    logger.warning("email_response_not_json", status=response.status, subject=subject)
                    data = {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("email_transport_error", error=str(e), subject=subject)
            raise EmailSendFailed(detail=str(e)) from e

        logger.info("email_sent", subject=subject, id=data.get("id") if isinstance(data, dict) else None)
        return data if isinstance(data, dict) else {}


# ============= Message templates =============

def format_sender(display_name: str, address: str) -> str:
    return f'"{display_name}" <{address}>'


def customer_receipt_html(license_key: str, domain: str, transaction_id: str, record_id: Optional[str], product_name: str) -> str:
    return (
        "<h1>Thank you for your purchase!</h1>"
        "<p>Your license key and order details are below.</p>"
        "<ul>"
        f"<li><strong>Order ID:</strong> {escape(record_id or 'N/A')}</li>"
        f"<li><strong>Domain:</strong> {escape(domain)}</li>"
        f"<li><strong>License Key:</strong> <code>{escape(license_key)}</code></li>"
        f"<li><strong>Transaction ID:</strong> {escape(transaction_id)}</li>"
        "</ul>"
        f"<p>Thank you for choosing {escape(product_name)}.</p>"
    )


def admin_sale_html(
    license_key: str,
    domain: str,
    email: str,
    transaction_id: str,
    record_id: Optional[str],
    saved: bool,
) -> str:
    color = "green" if saved else "red"
    status = "Saved successfully." if saved else "SAVE FAILED."
    return (
        "<h1>New Sale!</h1>"
        "<p>A new license has been generated:</p>"
        "<ul>"
        f"<li><strong>Order ID:</strong> {escape(record_id or 'N/A')}</li>"
        f"<li><strong>Domain:</strong> {escape(domain)}</li>"
        f"<li><strong>Customer Email:</strong> {escape(email)}</li>"
        f"<li><strong>License Key:</strong> <code>{escape(license_key)}</code></li>"
        f"<li><strong>PayPal Transaction ID:</strong> {escape(transaction_id)}</li>"
        "</ul>"
        f'<p style="color: {color};"><strong>Database Status:</strong> {status}</p>'
    )


def contact_form_html(name: str, email: str, message: str) -> str:
    return (
        "<p>You have a new contact form submission from:</p>"
        "<ul>"
        f"<li><strong>Name:</strong> {escape(name)}</li>"
        f"<li><strong>Email:</strong> {escape(email)}</li>"
        "</ul>"
        "<p><strong>Message:</strong></p>"
        f"<p>{escape(message)}</p>"
    )
