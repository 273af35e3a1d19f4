"""
Configuration for the License Server
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    return value.lower() in ("1", "true", "yes", "on")


# MongoDB Configuration
MONGO_URI = os.getenv("MONGO_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "license_db")
LICENSE_COLLECTION = os.getenv("LICENSE_COLLECTION", "licenses")

# PayPal Configuration
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET")
PAYPAL_ENV = os.getenv("PAYPAL_ENV", "sandbox")
PAYPAL_BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "production": "https://api-m.paypal.com",
}
PAYPAL_BASE_URL = os.getenv("PAYPAL_BASE_URL")
PAYPAL_TIMEOUT_SECONDS = float(os.getenv("PAYPAL_TIMEOUT_SECONDS", "30"))

# Resend Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_BASE_URL = os.getenv("RESEND_BASE_URL", "https://api.resend.com")
FROM_EMAIL = os.getenv("FROM_EMAIL", "")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "30"))

# Product (single SKU)
PRODUCT_NAME = "WhatsApp Pro Chat"
PRODUCT_DESCRIPTION = "WhatsApp Pro Chat - Lifetime License"
LICENSE_PRICE = "49.00"
LICENSE_CURRENCY = "USD"
LICENSE_KEY_PREFIX = "PRO"

# API behaviour
VERIFY_REQUIRE_KEY = _env_flag("VERIFY_REQUIRE_KEY", True)
API_PREFIX = os.getenv("API_PREFIX", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass
class Settings:
    """Runtime settings handed to the adapters and the workflow."""
    mongo_uri: Optional[str] = None
    database_name: str = DATABASE_NAME
    license_collection: str = LICENSE_COLLECTION

    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_env: str = "sandbox"
    paypal_base_url_override: Optional[str] = None
    paypal_timeout_seconds: float = PAYPAL_TIMEOUT_SECONDS

    resend_api_key: Optional[str] = None
    resend_base_url: str = RESEND_BASE_URL
    from_email: str = ""
    admin_email: str = ""
    email_timeout_seconds: float = EMAIL_TIMEOUT_SECONDS

    product_name: str = PRODUCT_NAME
    product_description: str = PRODUCT_DESCRIPTION
    license_price: str = LICENSE_PRICE
    license_currency: str = LICENSE_CURRENCY
    license_key_prefix: str = LICENSE_KEY_PREFIX

    verify_require_key: bool = True
    api_prefix: str = ""
    log_level: str = "INFO"
    cors_origins: list = field(default_factory=lambda: ["*"])

    @property
    def paypal_base_url(self) -> str:
        if self.paypal_base_url_override:
            return self.paypal_base_url_override.rstrip("/")
        try:
            return PAYPAL_BASE_URLS[self.paypal_env]
        except KeyError:
            raise ValueError(
                f"PAYPAL_ENV must be one of {sorted(PAYPAL_BASE_URLS)}, got {self.paypal_env!r}"
            )

    @property
    def license_amount(self) -> float:
        return float(self.license_price)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongo_uri=MONGO_URI,
            paypal_client_id=PAYPAL_CLIENT_ID,
            paypal_client_secret=PAYPAL_CLIENT_SECRET,
            paypal_env=PAYPAL_ENV,
            paypal_base_url_override=PAYPAL_BASE_URL,
            resend_api_key=RESEND_API_KEY,
            from_email=FROM_EMAIL,
            admin_email=ADMIN_EMAIL,
            verify_require_key=VERIFY_REQUIRE_KEY,
            api_prefix=API_PREFIX,
            log_level=LOG_LEVEL,
        )
