"""
Email service for CRM documents using Resend API.

Features:
- Quote / invoice e-mails carrying the public link
- Notification to the tenant when a client answers a quote
- Configurable via environment variables

Sending is best effort: every method returns False instead of raising, so a
mail failure never fails the request that triggered it.
"""
import logging
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


def public_document_url(kind: str, token: str) -> str:
    """Frontend URL of a public quote or invoice page."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/public/{kind}/{token}"


class EmailService:
    """Service for sending CRM e-mails via Resend."""

    def __init__(self):
        self._client = None

    @property
    def client(self):
        """Lazy-load Resend client."""
        if self._client is None and settings.email_enabled:
            import resend
            resend.api_key = settings.RESEND_API_KEY
            self._client = resend
        return self._client

    def _wrap_html(self, title: str, body: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: #1f2937; padding: 24px; border-radius: 10px 10px 0 0;">
                <h1 style="color: white; margin: 0; font-size: 22px;">{title}</h1>
            </div>
            <div style="background: #ffffff; padding: 30px; border: 1px solid #e0e0e0; border-top: none; border-radius: 0 0 10px 10px;">
                {body}
            </div>
        </body>
        </html>
        """

    async def _send(self, to_email: str, subject: str, html: str, text: str, event: str) -> bool:
        if not settings.email_enabled:
            logger.warning(
                "Email sending disabled (RESEND_API_KEY not configured). "
                f"'{subject}' for {to_email} not sent."
            )
            return False

        try:
            self.client.Emails.send({
                "from": settings.RESEND_FROM_EMAIL,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })
            logger.info(
                "Email sent",
                extra={"event": f"{event}_sent", "to_email": to_email},
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to send email: {e}",
                extra={"event": f"{event}_failed", "to_email": to_email, "error": str(e)},
            )
            return False

    async def send_document_link(
        self,
        to_email: str,
        kind: str,
        number: str,
        token: str,
        company_name: str,
        contact_name: Optional[str] = None,
    ) -> bool:
        """
        Send a quote or invoice link to the client.

        Args:
            to_email: Client e-mail address
            kind: "quote" or "invoice"
            number: Document number (DEV-... / FAC-...)
            token: Public token of the document
            company_name: Sender (tenant) name shown in the mail
            contact_name: Optional client contact for the greeting
        """
        url = public_document_url(kind, token)
        greeting = f"Hello {contact_name}," if contact_name else "Hello,"
        label = "quote" if kind == "quote" else "invoice"
        action = "review and answer" if kind == "quote" else "view"

        html = self._wrap_html(
            company_name,
            f"""
                <p style="margin-top: 0;">{greeting}</p>
                <p>{company_name} has sent you {label} <strong>{number}</strong>. You can {action} it online.</p>
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{url}" style="background: #2563eb; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: 600; display: inline-block;">Open {label}</a>
                </div>
            """,
        )
        text = f"""
{greeting}

{company_name} has sent you {label} {number}. You can {action} it online:
{url}
        """
        return await self._send(
            to_email,
            f"{label.capitalize()} {number} from {company_name}",
            html,
            text,
            event=f"{kind}_link",
        )

    async def send_quote_response_notification(
        self,
        to_email: str,
        quote_number: str,
        client_name: str,
        accepted: bool,
    ) -> bool:
        """Tell the tenant that a client accepted or declined a quote."""
        verb = "accepted" if accepted else "declined"
        html = self._wrap_html(
            f"Quote {quote_number} {verb}",
            f"""
                <p style="margin-top: 0;">{client_name} has {verb} quote <strong>{quote_number}</strong>.</p>
            """,
        )
        text = f"{client_name} has {verb} quote {quote_number}."
        return await self._send(
            to_email,
            f"Quote {quote_number} {verb} by {client_name}",
            html,
            text,
            event="quote_response_notification",
        )


# Global instance
email_service = EmailService()
