"""
License Server - FastAPI Backend
Sells and verifies license keys for the WhatsApp Pro Chat extension

ARCHITECTURE:
- PayPal Gateway: Creates and captures orders (Orders v2 API)
- License Store: MongoDB ``licenses`` collection, append-only
- Email Service: Customer receipts, admin sale notices, contact form (Resend)
- Order Service: Orchestrates capture -> license -> persist -> notify

Each dependency is optional: when one is not configured only the endpoints
that need it answer 503, the rest keep working.
"""
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import Settings
from email_service import EmailService
from errors import (
    InvalidInput,
    LicenseServiceError,
    PaymentNotCompleted,
    StoreUnavailable,
)
from license_store import LicenseStore
from logging_setup import configure_logging
from order_service import OrderService
from paypal_gateway import PayPalGateway

logger = structlog.get_logger(component="api")

SERVICE_NAME = "License Server"
SERVICE_VERSION = "1.0.0"


# ============= Request/Response Models =============

class LicenseCreateRequest(BaseModel):
    """Administrative license insert"""
    license: Optional[str] = None
    domain: Optional[str] = None
    email: Optional[str] = None
    amount: Optional[float] = None


class LicenseCreateResponse(BaseModel):
    message: str
    id: str


class CaptureOrderRequest(BaseModel):
    """Capture a PayPal order and issue a license for ``domain``"""
    order_id: Optional[str] = Field(None, alias="orderID")
    domain: Optional[str] = None
    email: Optional[str] = None


class CaptureOrderResponse(BaseModel):
    licenseKey: str
    transactionId: str


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class VerifyResponse(BaseModel):
    license: str
    domain: str
    verified: bool


# ============= Dependencies =============

def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def require_store(service: OrderService = Depends(get_order_service)) -> OrderService:
    """Reject the request before any work when the database is not connected."""
    if not service.store.available:
        raise StoreUnavailable()
    return service


# ============= API Endpoints =============

router = APIRouter()


@router.get("/status")
async def status(service: OrderService = Depends(get_order_service)):
    """Connection status of the server and database"""
    if service.store.available:
        return {"message": "Server is running and database is connected."}
    return JSONResponse(
        status_code=503,
        content={"message": "Service Unavailable: Database connection failed."},
    )


@router.get("/config")
async def public_config(service: OrderService = Depends(get_order_service)):
    """Public configuration for the checkout page"""
    client_id = service.settings.paypal_client_id
    if not client_id:
        logger.error("paypal_client_id_missing")
        return JSONResponse(
            status_code=500,
            content={"error": "Payment provider configuration is missing."},
        )
    return {"paypalClientId": client_id}


@router.post("/license", status_code=201, response_model=LicenseCreateResponse)
def create_license(request: LicenseCreateRequest, service: OrderService = Depends(require_store)):
    """Create and store a license record"""
    result = service.create_license(
        license=request.license,
        domain=request.domain,
        email=request.email,
        amount=request.amount,
    )
    return LicenseCreateResponse(message="License created successfully", id=result["id"])


@router.post("/create-order")
async def create_order(service: OrderService = Depends(get_order_service)):
    """Create a PayPal order for the lifetime license"""
    try:
        status_code, body = await service.create_order()
    except LicenseServiceError as e:
        logger.error("create_order_failed", error=e.message, detail=e.detail)
        return JSONResponse(status_code=500, content={"error": "Failed to create order."})
    return JSONResponse(status_code=status_code, content=body)


@router.post("/capture-order", response_model=CaptureOrderResponse)
async def capture_order(request: CaptureOrderRequest, service: OrderService = Depends(require_store)):
    """
    Capture a PayPal order and issue a license.

    Once the capture is COMPLETED the response is 200 even if the license
    could not be saved or the emails could not be sent.
    """
    try:
        result = await service.capture_and_issue_license(
            order_id=request.order_id,
            domain=request.domain,
            email=request.email,
        )
    except PaymentNotCompleted as e:
        return JSONResponse(status_code=400, content=e.to_dict())
    except InvalidInput as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    except LicenseServiceError as e:
        logger.error("capture_order_failed", order_id=request.order_id, error=e.message, detail=e.detail)
        return JSONResponse(status_code=500, content={"error": "Failed to capture order."})
    return CaptureOrderResponse(**result.to_dict())


@router.post("/send-email")
async def send_email(request: ContactRequest, service: OrderService = Depends(get_order_service)):
    """Forward a contact form submission to the admin"""
    await service.send_contact_message(
        name=request.name,
        email=request.email,
        subject=request.subject,
        message=request.message,
    )
    return {"message": "Thank you! Your message has been sent."}


@router.get("/verify", response_model=VerifyResponse)
def verify(
    key: Optional[str] = None,
    domain: Optional[str] = None,
    service: OrderService = Depends(require_store),
):
    """Verify a license key for a domain"""
    return service.verify(key=key, domain=domain)


# ============= Error Handlers =============

async def service_error_handler(request: Request, exc: LicenseServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, errors=exc.errors())
    return JSONResponse(status_code=400, content={"message": "Invalid request body."})


# ============= Application =============

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[LicenseStore] = None,
    gateway: Optional[PayPalGateway] = None,
    mailer: Optional[EmailService] = None,
) -> FastAPI:
    """
    Build the application with explicitly constructed adapters.

    Anything not passed in is created from ``settings`` (environment by
    default).
    """
    if settings is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)

    if store is None:
        store = LicenseStore.from_uri(settings.mongo_uri, settings.database_name, settings.license_collection)
    if gateway is None:
        gateway = PayPalGateway(settings)
    if mailer is None:
        mailer = EmailService(settings)
        if not mailer.configured:
            logger.error("resend_api_key_missing", message="Email functionality will be disabled.")

    order_service = OrderService(store, gateway, mailer, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("startup", store_available=store.available, paypal_base_url=gateway.base_url)
        yield
        await gateway.close()
        await mailer.close()
        store.close()
        logger.info("shutdown")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Sells and verifies license keys",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.order_service = order_service

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LicenseServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION
        }

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


# Run with: uvicorn main:app --host 0.0.0.0 --port 8000 --reload
