"""SendGrid email service for magic-link delivery.

Handles one transactional email, the sign-in link, with a template per
intent (trial / login / subscribe). Every interpolated value is
HTML-escaped.

For On-Call Engineers:
    EMAIL_DISPATCH_FAILED in the issuer logs means SendGrid rejected or
    timed out. Check the `http_status` field: 401/403 is the API key,
    429 is the SendGrid plan quota.
"""

import html
import logging

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from src.lambdas.shared.errors.auth_errors import NotificationDispatchError
from src.lambdas.shared.logging_utils import email_domain_for_log, get_safe_error_info

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "Explain My Numbers"


class EmailService:
    """SendGrid email service for transactional emails."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        app_name: str = DEFAULT_APP_NAME,
        timeout_seconds: float = 8,
        client: SendGridAPIClient | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.app_name = app_name
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def client(self) -> SendGridAPIClient:
        """Get or create SendGrid client."""
        if self._client is None:
            self._client = SendGridAPIClient(self.api_key)
            # Child request builders inherit this timeout
            self._client.client.timeout = self.timeout_seconds
        return self._client

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        plain_content: str | None = None,
    ) -> None:
        """Send a single email via SendGrid.

        Raises:
            NotificationDispatchError: Any rejection, timeout or transport error
        """
        message = Mail(
            from_email=self.from_email,
            to_emails=to_email,
            subject=subject,
            plain_text_content=plain_content or None,
            html_content=html_content,
        )

        log_extra = {"recipient_domain": email_domain_for_log(to_email)}
        try:
            response = self.client.send(message)
        except HTTPError as e:
            logger.error(
                "SendGrid rejected email",
                extra={
                    **log_extra,
                    "http_status": getattr(e, "status_code", None),
                    **get_safe_error_info(e),
                },
            )
            raise NotificationDispatchError() from e
        except Exception as e:
            logger.error(
                "SendGrid request failed",
                extra={**log_extra, **get_safe_error_info(e)},
            )
            raise NotificationDispatchError() from e

        # 202 = Accepted (queued for sending)
        if not 200 <= response.status_code < 300:
            logger.error(
                "Unexpected status code from SendGrid",
                extra={**log_extra, "http_status": response.status_code},
            )
            raise NotificationDispatchError()

        logger.info(
            "Email sent",
            extra={**log_extra, "http_status": response.status_code},
        )

    def send_magic_link(
        self,
        to_email: str,
        magic_link: str,
        intent: str,
        trial_days: int,
        expires_in_minutes: int = 15,
    ) -> None:
        """Send magic link authentication email for ``intent``."""
        subject, lead = self._magic_link_copy(intent, trial_days)
        html_content = self._build_magic_link_html(
            magic_link, lead, expires_in_minutes
        )
        plain_content = "\n".join(
            [
                self.app_name,
                "",
                lead,
                magic_link,
                "",
                f"This link expires in {expires_in_minutes} minutes and works once.",
            ]
        )

        self.send_email(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            plain_content=plain_content,
        )

    def _magic_link_copy(self, intent: str, trial_days: int) -> tuple[str, str]:
        if intent == "trial":
            return (
                f"Your magic link ({trial_days}-day free trial)",
                f"Here is your magic link to start your {trial_days}-day "
                "unlimited trial:",
            )
        if intent == "subscribe":
            return (
                f"Finish subscribing to {self.app_name}",
                "Here is your magic link to sign in and complete your subscription:",
            )
        return (
            f"Your sign-in link for {self.app_name}",
            f"Here is your magic link to sign in to {self.app_name}:",
        )

    def _build_magic_link_html(
        self, magic_link: str, lead: str, expires_in_minutes: int
    ) -> str:
        """Build HTML for magic link email."""
        safe_app = html.escape(self.app_name)
        safe_lead = html.escape(lead)
        safe_url = html.escape(magic_link)
        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; line-height: 1.5;">
            <h2 style="margin: 0 0 12px 0;">{safe_app}</h2>
            <p>{safe_lead}</p>
            <p style="margin: 24px 0;">
                <a href="{safe_url}"
                   style="padding: 10px 14px; border-radius: 10px; border: 1px solid #ddd;
                          text-decoration: none; display: inline-block;">
                    Sign in
                </a>
            </p>
            <p style="color: #666; font-size: 13px;">
                This link expires in {expires_in_minutes} minutes and works once.
            </p>
            <p style="color: #666; font-size: 13px;">
                If the button doesn't work, paste this into your browser:
            </p>
            <p style="font-size: 13px; word-break: break-all;">{safe_url}</p>
            <p style="color: #666; font-size: 12px;">
                If you didn't request this link, you can safely ignore this email.
            </p>
        </body>
        </html>
        """
