"""
Order Service for the License Server
Orchestrates payment capture, license issuance and notifications.

Flow for a capture:
1. Acquire a PayPal access token
2. Capture the order
3. Generate a license key and persist it
4. Email the customer and the admin (concurrently)

Once the capture has COMPLETED, nothing downstream may turn the response
into an error: the customer has paid. Persistence and email failures are
logged at critical severity for manual reconciliation instead.
"""
import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog
from starlette.concurrency import run_in_threadpool

from config import Settings
from email_service import (
    EmailService,
    admin_sale_html,
    contact_form_html,
    customer_receipt_html,
    format_sender,
)
from errors import (
    InvalidInput,
    LicenseNotVerified,
    LicenseServiceError,
    MalformedProviderResponse,
    PaymentNotCompleted,
)
from license_keys import generate_license_key
from license_store import LicenseStore
from paypal_gateway import PayPalGateway

logger = structlog.get_logger(component="order_service")


class FulfillmentState(str, Enum):
    TOKEN_ACQUIRED = "token_acquired"
    CAPTURE_REQUESTED = "capture_requested"
    CAPTURE_COMPLETED = "capture_completed"
    CAPTURE_REJECTED = "capture_rejected"
    LICENSE_PERSISTED = "license_persisted"
    LICENSE_PERSIST_FAILED = "license_persist_failed"
    NOTIFIED = "notified"
    NOTIFY_FAILED = "notify_failed"


class FulfillmentResult:
    """Result of a successful capture"""
    def __init__(
        self,
        license_key: str,
        transaction_id: str,
        record_id: Optional[str] = None,
        states: Optional[List[FulfillmentState]] = None
    ):
        self.license_key = license_key
        self.transaction_id = transaction_id
        self.record_id = record_id
        self.states = states or []

    @property
    def persisted(self) -> bool:
        return FulfillmentState.LICENSE_PERSISTED in self.states

    def to_dict(self) -> Dict[str, Any]:
        return {
            "licenseKey": self.license_key,
            "transactionId": self.transaction_id
        }


class OrderService:
    def __init__(
        self,
        store: LicenseStore,
        gateway: PayPalGateway,
        mailer: EmailService,
        settings: Settings
    ):
        self.store = store
        self.gateway = gateway
        self.mailer = mailer
        self.settings = settings

    # ============= Orders =============

    async def create_order(self) -> Tuple[int, Any]:
        return await self.gateway.create_order()

    async def capture_and_issue_license(
        self,
        order_id: Optional[str],
        domain: Optional[str],
        email: Optional[str]
    ) -> FulfillmentResult:
        if not order_id or not domain or not email:
            raise InvalidInput("Missing required fields: orderID, domain, and email.")

        log = logger.bind(order_id=order_id, domain=domain)
        states: List[FulfillmentState] = []

        token = await self.gateway.get_access_token()
        states.append(FulfillmentState.TOKEN_ACQUIRED)

        states.append(FulfillmentState.CAPTURE_REQUESTED)
        captured = await self.gateway.capture_order(order_id, access_token=token)

        if not captured.completed:
            states.append(FulfillmentState.CAPTURE_REJECTED)
            log.warning("payment_not_completed", status=captured.status)
            raise PaymentNotCompleted(captured.raw)
        states.append(FulfillmentState.CAPTURE_COMPLETED)

        try:
            transaction_id = captured.transaction_id()
        except MalformedProviderResponse:
            log.critical(
                "capture_response_malformed",
                message="Capture reported COMPLETED without a capture id. Manual intervention required.",
                provider_order_id=captured.id,
            )
            raise

        log = log.bind(transaction_id=transaction_id)
        license_key = generate_license_key(domain, prefix=self.settings.license_key_prefix)

        record_id = await self._persist_license(log, license_key, domain, email, transaction_id, states)
        await self._notify_sale(log, license_key, domain, email, transaction_id, record_id, states)

        log.info("license_issued", states=[s.value for s in states])
        return FulfillmentResult(license_key, transaction_id, record_id, states)

    async def _persist_license(
        self,
        log,
        license_key: str,
        domain: str,
        email: str,
        transaction_id: str,
        states: List[FulfillmentState]
    ) -> Optional[str]:
        record = {
            "license": license_key,
            "domain": domain,
            "email": email,
            "amount": self.settings.license_amount,
            "transactionId": transaction_id,
        }
        try:
            record_id = (await run_in_threadpool(self.store.insert, record))["id"]
        except LicenseServiceError as e:
            states.append(FulfillmentState.LICENSE_PERSIST_FAILED)
            log.critical(
                "payment_captured_license_not_saved",
                message="Payment successful, but failed to save license. Manual intervention required.",
                license_key=license_key,
                email=email,
                error=str(e.detail or e.message),
            )
            return None
        states.append(FulfillmentState.LICENSE_PERSISTED)
        return record_id

    async def _notify_sale(
        self,
        log,
        license_key: str,
        domain: str,
        email: str,
        transaction_id: str,
        record_id: Optional[str],
        states: List[FulfillmentState]
    ) -> None:
        if not self.mailer.configured:
            log.warning("email_not_configured", message="Skipping sale notifications.")
            return

        from_address = self.settings.from_email
        customer = self.mailer.send(
            format_sender(self.settings.product_name, from_address),
            email,
            f"Your {self.settings.product_name} License - Order Confirmation",
            customer_receipt_html(license_key, domain, transaction_id, record_id, self.settings.product_name),
        )
        admin = self.mailer.send(
            format_sender("Sales Notification", from_address),
            self.settings.admin_email,
            f"New Sale! License for {domain}",
            admin_sale_html(license_key, domain, email, transaction_id, record_id, saved=record_id is not None),
        )
        outcomes = await asyncio.gather(customer, admin, return_exceptions=True)

        failed = False
        for recipient, outcome in zip(("customer", "admin"), outcomes):
            if isinstance(outcome, Exception):
                failed = True
                log.critical(
                    "payment_captured_email_failed",
                    recipient=recipient,
                    license_key=license_key,
                    error=str(getattr(outcome, "detail", None) or outcome),
                )
        states.append(FulfillmentState.NOTIFY_FAILED if failed else FulfillmentState.NOTIFIED)

    # ============= Licenses =============

    def create_license(
        self,
        license: Optional[str],
        domain: Optional[str],
        email: Optional[str],
        amount: Optional[float]
    ) -> Dict[str, str]:
        """Store a license record supplied by an administrator."""
        if not license or not domain or not email or amount is None:
            raise InvalidInput()
        return self.store.insert({
            "license": license,
            "domain": domain,
            "email": email,
            "amount": amount,
        })

    def verify(self, key: Optional[str], domain: Optional[str]) -> Dict[str, Any]:
        """
        Verify a license for a domain.

        The response never includes email, amount or transaction id, and the
        not-found message does not say which field mismatched.
        """
        if self.settings.verify_require_key:
            if not key or not domain:
                raise InvalidInput("Key and domain are required for verification.")
        elif not domain:
            raise InvalidInput("Domain is required for verification.")

        record = self.store.find_one({"license": key or None, "domain": domain})
        if record is None:
            raise LicenseNotVerified()

        return {
            "license": record.get("license"),
            "domain": record.get("domain"),
            "verified": True,
        }

    # ============= Contact form =============

    async def send_contact_message(
        self,
        name: Optional[str],
        email: Optional[str],
        subject: Optional[str],
        message: Optional[str]
    ) -> None:
        if not name or not email or not subject or not message:
            raise InvalidInput("All fields are required.")

        await self.mailer.send(
            format_sender("Contact Form", self.settings.from_email),
            self.settings.admin_email,
            f"New Contact Form Submission: {subject}",
            contact_form_html(name, email, message),
            reply_to=email,
        )
        logger.info("contact_message_sent", reply_to=email)
