"""Mock email service for magic-link delivery in tests.

Captures sent links for test assertions without hitting SendGrid API.
"""

from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

from src.lambdas.shared.errors.auth_errors import NotificationDispatchError


@dataclass
class CapturedMagicLink:
    """Represents a captured magic-link email for test verification."""

    to_email: str
    magic_link: str
    intent: str
    trial_days: int
    expires_in_minutes: int

    @property
    def token(self) -> str:
        """Token query parameter of the emailed link."""
        return parse_qs(urlsplit(self.magic_link).query)["token"][0]


@dataclass
class MockEmailService:
    """Drop-in for EmailService that captures magic links.

    Can simulate a SendGrid rejection with ``fail_mode``.
    """

    fail_mode: bool = False
    sent: list[CapturedMagicLink] = field(default_factory=list)

    def reset(self) -> None:
        """Reset all captured state."""
        self.sent.clear()
        self.fail_mode = False

    def send_magic_link(
        self,
        to_email: str,
        magic_link: str,
        intent: str,
        trial_days: int,
        expires_in_minutes: int = 15,
    ) -> None:
        if self.fail_mode:
            raise NotificationDispatchError()
        self.sent.append(
            CapturedMagicLink(
                to_email=to_email,
                magic_link=magic_link,
                intent=intent,
                trial_days=trial_days,
                expires_in_minutes=expires_in_minutes,
            )
        )

    @property
    def last(self) -> CapturedMagicLink:
        return self.sent[-1]
