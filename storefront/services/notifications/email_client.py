"""
AWS SES client wrapper for transactional order email.

boto3 is synchronous, so ``send`` runs the SES call in a worker thread to
keep the event loop free. There is no retry; callers treat email as
best-effort.
"""

import asyncio
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class EmailClientError(Exception):
    """Raised when SES rejects or fails to accept a message."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class EmailClient:
    """
    AWS SES client wrapper.

    Args:
        settings: Optional settings override
        client: Optional pre-built boto3 SES client
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client or boto3.client(
            "ses",
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            region_name=self.settings.aws_region,
        )

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> str:
        """
        Send an email via SES.

        Args:
            to_addresses: Recipient addresses
            subject: Subject line
            body_html: HTML body
            body_text: Optional plain-text body
            from_address: Sender, defaults to the configured sender

        Returns:
            SES message id

        Raises:
            EmailClientError: If no recipients are given or SES fails
        """
        if not to_addresses:
            raise EmailClientError("At least one recipient email address is required")

        body: dict[str, Any] = {"Html": {"Data": body_html, "Charset": "UTF-8"}}
        if body_text:
            body["Text"] = {"Data": body_text, "Charset": "UTF-8"}

        try:
            response = self._client.send_email(
                Source=from_address or self.settings.email_sender,
                Destination={"ToAddresses": to_addresses},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": body,
                },
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            logger.warning(
                "SES client error",
                error_code=error.get("Code", "Unknown"),
                error_message=error.get("Message", str(e)),
                to_addresses=to_addresses,
            )
            raise EmailClientError(
                f"SES error: {error.get('Message', str(e))}",
                error_code=error.get("Code", "Unknown"),
            ) from e
        except BotoCoreError as e:
            logger.warning("SES connection error", error=str(e), to_addresses=to_addresses)
            raise EmailClientError(f"SES connection error: {e}") from e

        message_id = response["MessageId"]
        logger.info(
            "Email sent via SES",
            message_id=message_id,
            to_addresses=to_addresses,
            subject=subject,
        )
        return message_id

    async def send(
        self,
        to_addresses: list[str],
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> str:
        """Async wrapper around ``send_email``."""
        return await asyncio.to_thread(
            self.send_email,
            to_addresses,
            subject,
            body_html,
            body_text,
        )
