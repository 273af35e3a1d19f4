"""
PayPal Gateway for the License Server
Obtains OAuth2 access tokens and creates/captures Orders v2 orders.

Tokens are not cached: every operation exchanges the client credentials
for a fresh bearer token.
"""
import asyncio
import base64
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp
import structlog
from pydantic import BaseModel, Field, ValidationError

from config import Settings
from errors import (
    CredentialsMissing,
    MalformedProviderResponse,
    TokenRequestFailed,
    UpstreamFailure,
)

logger = structlog.get_logger(component="paypal_gateway")

CAPTURE_COMPLETED = "COMPLETED"


# ============= Provider payload models =============

class CaptureRef(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None


class UnitPayments(BaseModel):
    captures: List[CaptureRef] = Field(default_factory=list)


class PurchaseUnit(BaseModel):
    payments: Optional[UnitPayments] = None


class CaptureResult(BaseModel):
    """The parts of a PayPal capture response this service relies on."""
    id: Optional[str] = None
    status: Optional[str] = None
    purchase_units: List[PurchaseUnit] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_provider(cls, body: Any) -> "CaptureResult":
        if not isinstance(body, dict):
            raise MalformedProviderResponse(detail={"body": body})
        try:
            result = cls.model_validate(body)
        except ValidationError as e:
            raise MalformedProviderResponse(detail={"body": body, "errors": e.errors()}) from e
        result.raw = body
        return result

    @property
    def completed(self) -> bool:
        return self.status == CAPTURE_COMPLETED

    def transaction_id(self) -> str:
        """Capture id of the first purchase unit."""
        for unit in self.purchase_units[:1]:
            if unit.payments and unit.payments.captures:
                capture_id = unit.payments.captures[0].id
                if capture_id:
                    return capture_id
        raise MalformedProviderResponse(
            "Capture response is missing purchase_units[0].payments.captures[0].id",
            detail=self.raw,
        )


# ============= Gateway =============

class PayPalGateway:
    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self.settings.paypal_base_url

    @property
    def configured(self) -> bool:
        return bool(self.settings.paypal_client_id and self.settings.paypal_client_secret)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.paypal_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def get_access_token(self) -> str:
        """Exchange client id/secret for a bearer token (client-credentials grant)."""
        if not self.configured:
            logger.error("paypal_credentials_missing")
            raise CredentialsMissing()

        credentials = f"{self.settings.paypal_client_id}:{self.settings.paypal_client_secret}"
        auth = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
        try:
            async with self._get_session().post(
                f"{self.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                headers={
                    "Authorization": f"Basic {auth}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error("paypal_token_request_failed", status=response.status, body=body)
                    raise TokenRequestFailed(response.status, body)
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    body = await response.text()
                    logger.error("paypal_token_response_not_json", status=response.status, body=body)
                    raise MalformedProviderResponse(
                        detail={"status": response.status, "body": body}
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("paypal_token_transport_error", error=str(e))
            raise UpstreamFailure("Failed to reach payment provider.", detail=str(e)) from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise MalformedProviderResponse("Token response has no access_token", detail=data)
        return token

    async def _post_json(self, url: str, token: str, payload: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        try:
            async with self._get_session().post(url, json=payload, headers=headers) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    text = await response.text()
                    raise MalformedProviderResponse(
                        detail={"status": response.status, "body": text}
                    ) from e
                return response.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("paypal_transport_error", url=url, error=str(e))
            raise UpstreamFailure("Failed to reach payment provider.", detail=str(e)) from e

    def order_payload(self) -> Dict[str, Any]:
        return {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "description": self.settings.product_description,
                    "amount": {
                        "currency_code": self.settings.license_currency,
                        "value": self.settings.license_price,
                    },
                }
            ],
        }

    async def create_order(self, access_token: Optional[str] = None) -> Tuple[int, Any]:
        """
        Create a purchase intent for the single lifetime-license SKU.

        Returns the provider status code and body unchanged.
        """
        token = access_token or await self.get_access_token()
        status, body = await self._post_json(
            f"{self.base_url}/v2/checkout/orders", token, self.order_payload()
        )
        logger.info(
            "paypal_order_created",
            status=status,
            order_id=body.get("id") if isinstance(body, dict) else None,
        )
        return status, body

    async def capture_order(self, order_id: str, access_token: Optional[str] = None) -> CaptureResult:
        """Finalize payment for a previously approved order."""
        token = access_token or await self.get_access_token()
        status, body = await self._post_json(
            f"{self.base_url}/v2/checkout/orders/{quote(order_id, safe='')}/capture", token
        )
        result = CaptureResult.from_provider(body)
        logger.info("paypal_order_captured", order_id=order_id, http_status=status, status=result.status)
        return result
