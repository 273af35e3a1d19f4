"""
tests/test_email_service.py

EmailService against an in-process fake Resend API, plus the HTML templates.
"""
import unittest

from aiohttp import test_utils, web

from config import Settings
from email_service import (
    EmailService,
    admin_sale_html,
    contact_form_html,
    customer_receipt_html,
    format_sender,
)
from errors import EmailNotConfigured, EmailSendFailed


class FakeResend:
    def __init__(self):
        self.status = 200
        self.html = False
        self.requests = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/emails", self.emails)
        return app

    async def emails(self, request: web.Request) -> web.Response:
        self.requests.append({
            "authorization": request.headers.get("Authorization"),
            "body": await request.json(),
        })
        if self.status != 200:
            return web.json_response({"message": "domain not verified"}, status=self.status)
        if self.html:
            return web.Response(text="<html>maintenance</html>", content_type="text/html")
        return web.json_response({"id": "email-1"})


class TestEmailService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.resend = FakeResend()
        self.server = test_utils.TestServer(self.resend.app())
        await self.server.start_server()
        self.settings = Settings(
            resend_api_key="re_test",
            resend_base_url=str(self.server.make_url("")).rstrip("/"),
        )
        self.mailer = EmailService(self.settings)

    async def asyncTearDown(self) -> None:
        await self.mailer.close()
        await self.server.close()

    async def test_send_posts_single_recipient(self) -> None:
        result = await self.mailer.send("from@x.com", "to@y.com", "Hello", "<p>hi</p>", reply_to="r@z.com")
        self.assertEqual(result, {"id": "email-1"})
        sent = self.resend.requests[0]
        self.assertEqual(sent["authorization"], "Bearer re_test")
        self.assertEqual(sent["body"], {
            "from": "from@x.com",
            "to": ["to@y.com"],
            "subject": "Hello",
            "html": "<p>hi</p>",
            "reply_to": "r@z.com",
        })

    async def test_reply_to_omitted_when_not_given(self) -> None:
        await self.mailer.send("from@x.com", "to@y.com", "Hello", "<p>hi</p>")
        self.assertNotIn("reply_to", self.resend.requests[0]["body"])

    async def test_accepted_reply_without_json_counts_as_sent(self) -> None:
        self.resend.html = True
        result = await self.mailer.send("from@x.com", "to@y.com", "Hello", "<p>hi</p>")
        self.assertEqual(result, {})
        self.assertEqual(len(self.resend.requests), 1)

    async def test_provider_error_raises(self) -> None:
        self.resend.status = 422
        with self.assertRaises(EmailSendFailed):
            await self.mailer.send("from@x.com", "to@y.com", "Hello", "<p>hi</p>")

    async def test_not_configured(self) -> None:
        mailer = EmailService(Settings())
        self.assertFalse(mailer.configured)
        with self.assertRaises(EmailNotConfigured):
            await mailer.send("from@x.com", "to@y.com", "Hello", "<p>hi</p>")
        self.assertEqual(self.resend.requests, [])


class TestTemplates(unittest.TestCase):
    def test_sender_format(self) -> None:
        self.assertEqual(format_sender("Sales Notification", "s@x.com"), '"Sales Notification" <s@x.com>')

    def test_customer_receipt(self) -> None:
        html = customer_receipt_html("PRO-AAAA-BBBB-CCCC-DDDD", "example.com", "TXN1", None, "WhatsApp Pro Chat")
        self.assertIn("<code>PRO-AAAA-BBBB-CCCC-DDDD</code>", html)
        self.assertIn("N/A", html)
        self.assertIn("TXN1", html)

    def test_admin_notice_reports_persistence(self) -> None:
        saved = admin_sale_html("K", "example.com", "a@b.com", "TXN1", "id-1", saved=True)
        failed = admin_sale_html("K", "example.com", "a@b.com", "TXN1", None, saved=False)
        self.assertIn("Saved successfully.", saved)
        self.assertIn("color: green", saved)
        self.assertIn("SAVE FAILED.", failed)
        self.assertIn("color: red", failed)

    def test_contact_form_escapes_user_input(self) -> None:
        html = contact_form_html("<b>Eve</b>", "eve@x.com", "<script>alert(1)</script>")
        self.assertNotIn("<script>", html)
        self.assertIn("&lt;script&gt;", html)
        self.assertIn("&lt;b&gt;Eve&lt;/b&gt;", html)


if __name__ == "__main__":
    unittest.main()
