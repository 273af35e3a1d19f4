"""
Error taxonomy for the License Server

Every failure carries the HTTP status it maps to, a message that is safe to
show to the client, and an optional operator-only detail that goes to logs.
"""
from typing import Any, Dict, Optional


class LicenseServiceError(Exception):
    status_code = 500
    message = "Internal server error."

    def __init__(self, message: Optional[str] = None, detail: Any = None):
        if message is not None:
            self.message = message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


# ============= Client errors =============

class InvalidInput(LicenseServiceError):
    status_code = 400
    message = "Invalid input. All fields are required."


class PaymentNotCompleted(InvalidInput):
    """The provider answered the capture with a status other than COMPLETED."""
    message = "Payment not completed."

    def __init__(self, details: Dict[str, Any]):
        super().__init__(detail=details)
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.details}


class NotFound(LicenseServiceError):
    status_code = 404
    message = "Not found."


class LicenseNotVerified(NotFound):
    message = "Invalid license key or domain."

    def to_dict(self) -> Dict[str, Any]:
        return {"verified": False, "message": self.message}


# ============= Dependency errors =============

class Unavailable(LicenseServiceError):
    status_code = 503
    message = "Service Unavailable."


class StoreUnavailable(Unavailable):
    message = "Service Unavailable: Database not connected."


class EmailNotConfigured(Unavailable):
    message = "Service Unavailable: Email service not configured."


class CredentialsMissing(Unavailable):
    message = "Payment provider configuration is missing."


class UpstreamFailure(LicenseServiceError):
    status_code = 500
    message = "Upstream provider error."


class TokenRequestFailed(UpstreamFailure):
    message = "Failed to generate PayPal Access Token."

    def __init__(self, status: int, body: str):
        super().__init__(detail={"status": status, "body": body})
        self.status = status
        self.body = body


class MalformedProviderResponse(UpstreamFailure):
    message = "Payment provider returned an unexpected response."


class EmailSendFailed(UpstreamFailure):
    message = "Sorry, something went wrong. Please try again later."


# ============= Internal errors =============

class InternalFailure(LicenseServiceError):
    status_code = 500


class WriteFailure(InternalFailure):
    message = "Error creating license."


class QueryFailure(InternalFailure):
    message = "Error verifying license."
