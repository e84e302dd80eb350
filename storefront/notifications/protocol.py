"""Email sender protocol and message types.

Security contract:
- Senders never raise; every failure comes back as a SendResult
- API keys come from settings, never logged
- Recipient addresses are logged, message bodies are not
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class EmailMessage:
    """A rendered email ready for delivery."""
    to: str
    subject: str
    html: str
    sender: str = ""


@dataclass
class SendResult:
    """Result of handing a message to the email provider."""
    success: bool
    provider: str
    error: str = ""
    response_id: str = ""  # Provider message id
    status_code: int | None = None


@runtime_checkable
class EmailSender(Protocol):
    """Protocol for transactional email providers."""

    @property
    def provider(self) -> str:
        """Provider name (resend, smtp, ...)."""
        ...

    @property
    def is_configured(self) -> bool:
        """Whether credentials are present."""
        ...

    def send(self, message: EmailMessage) -> SendResult:
        """Deliver a message. Never raises."""
        ...
