"""Resend email sender: posts rendered HTML to the Resend REST API.

Credentials: RESEND_API_KEY (bearer token). A missing key, a transport error
or a non-2xx response is logged and returned as a failed SendResult.
"""

from __future__ import annotations

import logging

import httpx

from storefront.notifications.protocol import EmailMessage, SendResult

logger = logging.getLogger(__name__)

_DEFAULT_API_URL = "https://api.resend.com/emails"


class ResendSender:
    """EmailSender backed by the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        default_from: str,
        api_url: str = _DEFAULT_API_URL,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ):
        self._api_key = api_key
        self._default_from = default_from
        self._api_url = api_url
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def provider(self) -> str:
        return "resend"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def send(self, message: EmailMessage) -> SendResult:
        if not self.is_configured:
            logger.info("RESEND_API_KEY not set, skipping email to %s", message.to)
            return SendResult(
                success=False,
                provider=self.provider,
                error="Email not configured (missing RESEND_API_KEY)",
            )

        payload = {
            "from": message.sender or self._default_from,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        try:
            response = self._client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("Email send exception for %s: %s", message.to, e)
            return SendResult(success=False, provider=self.provider, error=str(e))

        if not response.is_success:
            logger.error(
                "Email send error for %s: HTTP %d %s",
                message.to,
                response.status_code,
                response.text,
            )
            return SendResult(
                success=False,
                provider=self.provider,
                error=response.text,
                status_code=response.status_code,
            )

        try:
            email_id = str(response.json().get("id", ""))
        except ValueError:
            email_id = ""
        logger.info("Email sent to %s: %s (id=%s)", message.to, message.subject, email_id)
        return SendResult(
            success=True,
            provider=self.provider,
            response_id=email_id,
            status_code=response.status_code,
        )

    def close(self) -> None:
        self._client.close()
