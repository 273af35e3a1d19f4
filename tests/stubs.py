"""
In-memory stand-ins for MongoDB, PayPal and Resend used across the tests.
"""
import threading
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from errors import EmailNotConfigured, EmailSendFailed
from paypal_gateway import CaptureResult

COMPLETED_CAPTURE = {
    "id": "O1",
    "status": "COMPLETED",
    "purchase_units": [{"payments": {"captures": [{"id": "TXN1"}]}}],
}


class _InsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents

    def limit(self, n: int) -> "FakeCursor":
        return FakeCursor(self._documents[:n])

    def __iter__(self):
        return iter(self._documents)


class FakeCollection:
    """Equality-only subset of a pymongo collection."""

    def __init__(self, fail_writes: bool = False, fail_reads: bool = False):
        self.documents: List[Dict[str, Any]] = []
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads
        self.queries: List[Dict[str, Any]] = []
        self.insert_threads: List[int] = []

    def insert_one(self, document: Dict[str, Any]) -> _InsertResult:
        self.insert_threads.append(threading.get_ident())
        if self.fail_writes:
            raise PyMongoError("write refused")
        document["_id"] = f"id-{len(self.documents) + 1}"
        self.documents.append(dict(document))
        return _InsertResult(document["_id"])

    def find(self, query: Dict[str, Any]) -> FakeCursor:
        if self.fail_reads:
            raise PyMongoError("read refused")
        self.queries.append(query)
        matches = [
            doc for doc in self.documents
            if all(doc.get(k) == v for k, v in query.items())
        ]
        return FakeCursor(matches)


class StubGateway:
    base_url = "https://paypal.invalid"

    def __init__(
        self,
        capture_body: Optional[Dict[str, Any]] = None,
        token_error: Optional[Exception] = None,
        create_response=(201, {"id": "O1", "status": "CREATED"}),
        create_error: Optional[Exception] = None,
    ):
        self.capture_body = COMPLETED_CAPTURE if capture_body is None else capture_body
        self.token_error = token_error
        self.create_response = create_response
        self.create_error = create_error
        self.calls: List[Any] = []

    async def get_access_token(self) -> str:
        self.calls.append("token")
        if self.token_error is not None:
            raise self.token_error
        return "TOKEN"

    async def create_order(self, access_token: Optional[str] = None):
        self.calls.append("create")
        if self.create_error is not None:
            raise self.create_error
        return self.create_response

    async def capture_order(self, order_id: str, access_token: Optional[str] = None) -> CaptureResult:
        self.calls.append(("capture", order_id, access_token))
        return CaptureResult.from_provider(self.capture_body)

    async def close(self) -> None:
        pass


class StubMailer:
    def __init__(self, configured: bool = True, fail_for: Optional[set] = None):
        self.configured = configured
        self.fail_for = fail_for or set()
        self.sent: List[Dict[str, Any]] = []

    async def send(self, sender, to, subject, html, reply_to=None):
        if not self.configured:
            raise EmailNotConfigured()
        if to in self.fail_for:
            raise EmailSendFailed(detail="provider said no")
        message = {"from": sender, "to": to, "subject": subject, "html": html, "reply_to": reply_to}
        self.sent.append(message)
        return {"id": f"msg-{len(self.sent)}"}

    async def close(self) -> None:
        pass
